"""devkit env / init subcommands."""

import argparse
import sys
from pathlib import Path

from devkit.environment import find_rc, init_script, load_rc, write_rc
from devkit.errors import DevkitConfigError, NoSessionError
from devkit.logging import get_logger
from devkit.switcher import Scope

from . import _shared

logger = get_logger(__name__)


def _require_rc() -> tuple[Path, dict[str, str]]:
    rc_path = find_rc(Path.cwd())
    if rc_path is None:
        msg = 'no .devkitrc found in this directory or its parents; run: devkit env init'
        raise DevkitConfigError(msg)
    return rc_path, load_rc(rc_path)


def _require_session(ctx: _shared.DevkitContext) -> str:
    if not ctx.session_id:
        msg = 'no active devkit session; run: eval "$(devkit init)"'
        raise NoSessionError(msg)
    return ctx.session_id


def _env_init(ctx: _shared.DevkitContext, namespace: argparse.Namespace) -> int:
    current = ctx.switcher.current_all(ctx.session_id)
    write_rc(Path.cwd(), current, force=namespace.force)
    return 0


def _env_apply(ctx: _shared.DevkitContext, *, install_missing: bool) -> int:
    session_id = _require_session(ctx)
    rc_path, pinned = _require_rc()
    logger.info('applying_rc_file', path=str(rc_path), candidates=sorted(pinned))

    if install_missing:
        ctx.refresh_catalog_if_stale()
    for candidate, version in pinned.items():
        if install_missing and not ctx.registry.is_installed(candidate, version):
            ctx.installer.install(candidate, version)
        export = ctx.switcher.switch(
            candidate,
            version,
            Scope.SESSION,
            session_id=session_id,
            environ=ctx.environ,
        )
        ctx.emit([export])
    return 0


def _env_clear(ctx: _shared.DevkitContext) -> int:
    session_id = _require_session(ctx)
    _, pinned = _require_rc()
    for candidate in pinned:
        if candidate not in ctx.registry.candidates():
            continue
        ctx.emit([ctx.switcher.clear(candidate, session_id, ctx.environ)])
    logger.info('session_restored_to_defaults', candidates=sorted(pinned))
    return 0


def _handle_env(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    action = namespace.action
    if action == 'init':
        return _env_init(ctx, namespace)
    if action == 'clear':
        return _env_clear(ctx)
    return _env_apply(ctx, install_missing=action == 'install')


def _handle_init(namespace: argparse.Namespace) -> int:
    ctx = _shared.build_context(namespace)
    script = init_script(ctx.layout, ctx.registry.defaults(), ctx.environ, session_id=ctx.args.session)
    sys.stdout.write(script)
    return 0


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the env and init subcommands."""
    parent = _shared.build_common_parent()

    env = subparsers.add_parser(
        'env',
        parents=[parent],
        aliases=['e'],
        help='Apply, create or clear the project .devkitrc',
    )
    env.add_argument(
        'action',
        nargs='?',
        choices=['init', 'install', 'clear'],
        help='init: write .devkitrc; install: install and use it; clear: restore defaults',
    )
    env.add_argument(
        '--force',
        action='store_true',
        help='Overwrite an existing .devkitrc (env init)',
    )
    env.set_defaults(handler=_handle_env, operation='env')

    init = subparsers.add_parser(
        'init',
        parents=[parent],
        help='Print the shell integration snippet: eval "$(devkit init)"',
    )
    init.set_defaults(handler=_handle_init, operation='init')
