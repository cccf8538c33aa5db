"""devkit use / default / current subcommands."""

import argparse

from devkit.errors import NoneInstalledError, NotInstalledError
from devkit.logging import get_logger
from devkit.switcher import Scope

from . import _shared

logger = get_logger(__name__)


def _handle_use(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    export = ctx.switcher.switch(
        namespace.candidate,
        namespace.version,
        Scope.SESSION,
        session_id=ctx.session_id,
        environ=ctx.environ,
    )
    ctx.emit([export])
    logger.info('using_version_in_session', candidate=namespace.candidate, version=namespace.version)
    return 0


def _handle_default(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    version = namespace.version
    if version is None:
        ctx.refresh_catalog_if_stale()
        version = ctx.installer.resolve_version(namespace.candidate)
        if not ctx.registry.is_installed(namespace.candidate, version):
            msg = f'latest {namespace.candidate} {version} is not installed; run: devkit install {namespace.candidate}'
            raise NotInstalledError(msg, candidate=namespace.candidate, version=version)

    export = ctx.switcher.switch(
        namespace.candidate,
        version,
        Scope.GLOBAL,
        session_id=ctx.session_id,
        environ=ctx.environ,
        release_session=namespace.clear_override,
    )
    ctx.emit_default(export)
    logger.info('default_version_set', candidate=namespace.candidate, version=version)
    return 0


def _handle_current(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    if namespace.candidate:
        try:
            installed = ctx.switcher.current(namespace.candidate, ctx.session_id)
        except NoneInstalledError:
            logger.warning('not_using_any_version', candidate=namespace.candidate)
            raise
        _shared.output.print(f'Using {installed.candidate} version {installed.version}')
        return 0

    current = ctx.switcher.current_all(ctx.session_id)
    if not current:
        logger.warning('no_candidates_in_use')
        return 0
    _shared.output.print('Using:')
    for candidate, installed in current.items():
        _shared.output.print(f'{candidate}: {installed.version}')
    return 0


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the use, default and current subcommands."""
    parent = _shared.build_common_parent()

    use = subparsers.add_parser(
        'use',
        parents=[parent],
        aliases=['u'],
        help='Use a version in the current shell session only',
    )
    _shared.candidate_argument(use)
    _shared.version_argument(use)
    use.set_defaults(handler=_handle_use, operation='use')

    default = subparsers.add_parser(
        'default',
        parents=[parent],
        aliases=['d'],
        help='Make a version the default for new shells',
    )
    _shared.candidate_argument(default)
    _shared.version_argument(default, optional=True)
    default.add_argument(
        '--clear-override',
        action='store_true',
        help="Also drop this shell session's override so it follows the new default",
    )
    default.set_defaults(handler=_handle_default, operation='default')

    current = subparsers.add_parser(
        'current',
        parents=[parent],
        aliases=['c'],
        help='Show the version in use',
    )
    _shared.candidate_argument(current, optional=True)
    current.set_defaults(handler=_handle_current, operation='current')
