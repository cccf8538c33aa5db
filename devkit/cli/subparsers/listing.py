"""devkit list subcommand."""

import argparse

from rich.table import Table

from devkit.errors import NoneInstalledError, NoSuchCandidateError
from devkit.models import version_key

from . import _shared


def _current_version(ctx: _shared.DevkitContext, candidate: str) -> str | None:
    try:
        return ctx.registry.get_current(candidate, ctx.session_id).version
    except NoneInstalledError:
        return None


def _list_candidates(ctx: _shared.DevkitContext) -> Table:
    catalog = _shared.catalog_or_none(ctx)
    installed = {name: ctx.registry.list(name) for name in ctx.registry.candidates()}

    table = Table(title='Candidates')
    table.add_column('Candidate')
    table.add_column('Name')
    table.add_column('Installed', justify='right')
    table.add_column('Current')
    table.add_column('Latest')

    names = set(installed)
    infos = {}
    if catalog is not None:
        infos = {info.name: info for info in catalog.candidates()}
        names |= set(infos)

    for name in sorted(names):
        info = infos.get(name)
        latest = ''
        if catalog is not None and info is not None:
            latest = catalog.latest_stable(name) if catalog.list(name) else ''
        table.add_row(
            name,
            info.label if info else ctx.registry.info(name).label,
            str(len(installed.get(name, []))),
            _current_version(ctx, name) or '',
            latest,
        )
    return table


def _list_versions(ctx: _shared.DevkitContext, candidate: str) -> Table:
    catalog = _shared.catalog_or_none(ctx)
    installed = {iv.version: iv for iv in ctx.registry.list(candidate)}
    current = _current_version(ctx, candidate)

    available = {}
    if catalog is not None:
        try:
            available = {entry.version: entry for entry in catalog.list(candidate)}
        except NoSuchCandidateError:
            # local-only candidates are still listable
            if not installed:
                raise
    elif not installed:
        # neither cached nor installed: surface the catalog error
        ctx.catalog.list(candidate)

    table = Table(title=candidate)
    table.add_column(' ')
    table.add_column('Version')
    table.add_column('Status')
    table.add_column('Source')

    for version in sorted(set(available) | set(installed), key=version_key, reverse=True):
        marker = '>' if version == current else ('*' if version in installed else '')
        status = 'installed' if version in installed else 'available'
        if version in available and available[version].latest:
            status += ', latest'
        source = installed[version].source if version in installed else 'remote'
        table.add_row(marker, version, status, source)
    return table


def _handle(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    if namespace.candidate:
        table = _list_versions(ctx, namespace.candidate)
    else:
        table = _list_candidates(ctx)
    _shared.output.print(table)
    return 0


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the list subcommand."""
    parent = _shared.build_common_parent()
    parser = subparsers.add_parser(
        'list',
        parents=[parent],
        aliases=['ls'],
        help='List candidates, or the versions of one candidate',
    )
    _shared.candidate_argument(parser, optional=True)
    parser.set_defaults(handler=_handle, operation='list')
