"""devkit install / uninstall subcommands."""

import argparse
from pathlib import Path

from devkit.errors import NoneInstalledError
from devkit.logging import get_logger
from devkit.switcher import Scope

from . import _shared

logger = get_logger(__name__)


def _handle_install(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    local_path = Path(namespace.local_path) if namespace.local_path else None
    if local_path is None:
        ctx.refresh_catalog_if_stale()

    installed = ctx.installer.install(namespace.candidate, namespace.version, local_path)
    logger.info(
        'install_complete',
        candidate=installed.candidate,
        version=installed.version,
        source=installed.source,
        path=str(installed.path),
    )

    if ctx.config.auto_default and not namespace.no_default:
        try:
            ctx.registry.get_current(installed.candidate)
        except NoneInstalledError:
            export = ctx.switcher.switch(
                installed.candidate,
                installed.version,
                Scope.GLOBAL,
                session_id=ctx.session_id,
                environ=ctx.environ,
            )
            logger.info('default_version_set', candidate=installed.candidate, version=installed.version)
            ctx.emit_default(export)
    return 0


def _handle_uninstall(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    removed = ctx.installer.uninstall(namespace.candidate, namespace.version, force=namespace.force)
    logger.info(
        'uninstall_complete',
        candidate=removed.candidate,
        version=removed.version,
        kept_external_path=str(removed.path) if removed.is_local else None,
    )
    return 0


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the install and uninstall subcommands."""
    parent = _shared.build_common_parent()

    install = subparsers.add_parser(
        'install',
        parents=[parent],
        aliases=['i'],
        help='Install a candidate version, or link a local installation',
    )
    _shared.candidate_argument(install)
    _shared.version_argument(install, optional=True)
    install.add_argument(
        'local_path',
        nargs='?',
        help='Path to an existing local installation to register instead of downloading',
    )
    install.add_argument(
        '--no-default',
        action='store_true',
        help='Do not make the first installed version the default',
    )
    install.set_defaults(handler=_handle_install, operation='install')

    uninstall = subparsers.add_parser(
        'uninstall',
        parents=[parent],
        aliases=['rm'],
        help='Remove an installed candidate version',
    )
    _shared.candidate_argument(uninstall)
    _shared.version_argument(uninstall)
    uninstall.add_argument(
        '--force',
        action='store_true',
        help='Remove the version even if it is the current default',
    )
    uninstall.set_defaults(handler=_handle_uninstall, operation='uninstall')
