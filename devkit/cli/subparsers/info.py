"""devkit home / version / broadcast / config subcommands."""

import argparse
import sys

import yaml

from devkit import __version__
from devkit.logging import get_logger

from . import _shared

logger = get_logger(__name__)


def _handle_home(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    installed = ctx.registry.get(namespace.candidate, namespace.version)
    sys.stdout.write(f'{installed.path}\n')
    return 0


def _handle_version(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    _shared.output.print(f'devkit {__version__}')
    version_file = ctx.layout.version_file
    if version_file.exists():
        remote = version_file.read_text(encoding='utf-8').strip()
        if remote and remote != __version__:
            logger.info('newer_devkit_available', installed=__version__, available=remote)
    return 0


def _handle_broadcast(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    message = ctx.catalog.broadcast()
    if message is None:
        logger.info('no_broadcast_message')
        return 0
    _shared.output.print(message)
    return 0


def _handle_config(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    sys.stdout.write(f'# {ctx.layout.config_file}\n')
    sys.stdout.write(yaml.safe_dump(ctx.config.model_dump(), sort_keys=True, default_flow_style=False))
    return 0


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the home, version, broadcast and config subcommands."""
    parent = _shared.build_common_parent()

    home = subparsers.add_parser(
        'home',
        parents=[parent],
        aliases=['h'],
        help='Print the install path of a version',
    )
    _shared.candidate_argument(home)
    _shared.version_argument(home)
    home.set_defaults(handler=_handle_home, operation='home')

    version = subparsers.add_parser(
        'version',
        parents=[parent],
        aliases=['v'],
        help='Show the devkit version',
    )
    version.set_defaults(handler=_handle_version, operation='version')

    broadcast = subparsers.add_parser(
        'broadcast',
        parents=[parent],
        aliases=['b'],
        help='Show the latest catalog announcement',
    )
    broadcast.set_defaults(handler=_handle_broadcast, operation='broadcast')

    config = subparsers.add_parser(
        'config',
        parents=[parent],
        help='Show the effective configuration',
    )
    config.set_defaults(handler=_handle_config, operation='config')
