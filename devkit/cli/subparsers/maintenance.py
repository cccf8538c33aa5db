"""devkit offline / flush / update subcommands."""

import argparse

from devkit.config import set_offline
from devkit.logging import get_logger
from devkit.maintenance import FLUSH_TARGETS, flush

from . import _shared

logger = get_logger(__name__)


def _handle_offline(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    if namespace.state is None:
        _shared.output.print(f'Offline mode: {"enabled" if ctx.config.offline else "disabled"}')
        return 0
    config = set_offline(ctx.layout, offline=namespace.state == 'enable')
    logger.info('offline_mode_changed', offline=config.offline)
    return 0


def _handle_flush(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    targets = [namespace.target] if namespace.target else list(FLUSH_TARGETS)
    for target in targets:
        flush(ctx.layout, target, include_recent=namespace.all)
    return 0


def _handle_update(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    if ctx.config.offline:
        logger.warning('update_skipped_offline')
        return 0
    if ctx.catalog.refresh():
        message = ctx.catalog.broadcast()
        if message:
            _shared.output.print(message)
    return 0


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the offline, flush and update subcommands."""
    parent = _shared.build_common_parent()

    offline = subparsers.add_parser(
        'offline',
        parents=[parent],
        help='Enable or disable offline mode, or show it',
    )
    offline.add_argument(
        'state',
        nargs='?',
        choices=['enable', 'disable'],
        help='New offline mode; omit to show the current one',
    )
    offline.set_defaults(handler=_handle_offline, operation='offline')

    flush_parser = subparsers.add_parser(
        'flush',
        parents=[parent],
        help='Clear cached archives, scratch space or cached messages',
    )
    flush_parser.add_argument(
        'target',
        nargs='?',
        choices=FLUSH_TARGETS,
        help='What to flush (default: everything)',
    )
    flush_parser.add_argument(
        '--all',
        action='store_true',
        help='Also remove recent tmp entries that may belong to a running install',
    )
    flush_parser.set_defaults(handler=_handle_flush, operation='flush')

    update = subparsers.add_parser(
        'update',
        parents=[parent],
        help='Refresh the catalog of available versions',
    )
    update.set_defaults(handler=_handle_update, operation='update')
