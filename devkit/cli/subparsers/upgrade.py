"""devkit upgrade subcommand."""

import argparse

from rich.table import Table

from devkit.logging import get_logger
from devkit.upgrade import Upgrade, apply_upgrade, find_upgrades

from . import _shared

logger = get_logger(__name__)


def _upgrade_table(upgrades: list[Upgrade]) -> Table:
    table = Table(title='Upgrades available')
    table.add_column('Candidate')
    table.add_column('Default')
    table.add_column('Latest')
    table.add_column('Installed')
    for upgrade in upgrades:
        table.add_row(upgrade.candidate, upgrade.current, upgrade.latest, 'yes' if upgrade.installed else 'no')
    return table


def _handle(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    ctx.refresh_catalog_if_stale()
    upgrades = find_upgrades(ctx.registry, ctx.catalog, namespace.candidate, ctx.installer.platform_tag())
    if not upgrades:
        logger.info('defaults_up_to_date', candidate=namespace.candidate)
        return 0

    _shared.output.print(_upgrade_table(upgrades))
    if namespace.dry_run:
        return 0

    for upgrade in upgrades:
        export = apply_upgrade(upgrade, ctx.installer, ctx.switcher, environ=ctx.environ)
        ctx.emit_default(export)
    return 0


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the upgrade subcommand."""
    parent = _shared.build_common_parent()
    parser = subparsers.add_parser(
        'upgrade',
        parents=[parent],
        aliases=['ug'],
        help='Install the latest stable versions and make them the defaults',
    )
    _shared.candidate_argument(parser, optional=True)
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Only show which defaults are outdated',
    )
    parser.set_defaults(handler=_handle, operation='upgrade')
