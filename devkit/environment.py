"""Project rc files and shell integration."""

from __future__ import annotations

import os
import uuid
from collections.abc import Iterable, Mapping
from pathlib import Path

from devkit.config import ENV_FILE_ENV, ROOT_ENV, SESSION_ENV, DevkitLayout
from devkit.errors import DevkitConfigError
from devkit.logging import get_logger
from devkit.models import EnvExport, InstalledVersion, validate_identifier
from devkit.symlinks import CURRENT_LINK_NAME

logger = get_logger(__name__)

RC_FILENAME = '.devkitrc'

SHELL_FUNCTION = """\
devkit() {
    local __devkit_env __devkit_rc
    __devkit_env="$(mktemp)"
    DEVKIT_ENV_FILE="$__devkit_env" command devkit "$@"
    __devkit_rc=$?
    if [ -s "$__devkit_env" ]; then
        . "$__devkit_env"
    fi
    rm -f "$__devkit_env"
    return $__devkit_rc
}"""


def parse_rc(content: str, *, source: str = RC_FILENAME) -> dict[str, str]:
    """Parse ``candidate=version`` lines. Blank lines and ``#`` comments are ignored."""
    entries: dict[str, str] = {}
    for lineno, raw_line in enumerate(content.splitlines(), start=1):
        line = raw_line.split('#', 1)[0].strip()
        if not line:
            continue
        candidate, sep, version = line.partition('=')
        if not sep:
            msg = f'{source}:{lineno}: expected candidate=version'
            raise DevkitConfigError(msg)
        try:
            entries[validate_identifier(candidate, 'candidate')] = validate_identifier(version, 'version')
        except ValueError as exc:
            msg = f'{source}:{lineno}: {exc}'
            raise DevkitConfigError(msg) from exc
    return entries


def find_rc(start: Path) -> Path | None:
    """Look for an rc file in start and its parents."""
    for directory in (start, *start.parents):
        candidate = directory / RC_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_rc(path: Path) -> dict[str, str]:
    return parse_rc(path.read_text(encoding='utf-8'), source=str(path))


def render_rc(versions: Mapping[str, str]) -> str:
    lines = ['# Enable auto-env through the devkit shell integration', '# Pin candidate versions for this project']
    lines.extend(f'{candidate}={version}' for candidate, version in sorted(versions.items()))
    return '\n'.join(lines) + '\n'


def write_rc(directory: Path, current: Mapping[str, InstalledVersion], *, force: bool = False) -> Path:
    """Write an rc file pinning the given versions."""
    path = directory / RC_FILENAME
    if path.exists() and not force:
        msg = f'{path} already exists'
        raise FileExistsError(msg)
    path.write_text(render_rc({name: iv.version for name, iv in current.items()}), encoding='utf-8')
    logger.info('rc_file_written', path=str(path), candidates=sorted(current))
    return path


def new_session_id() -> str:
    return uuid.uuid4().hex


def init_script(
    layout: DevkitLayout,
    defaults: Mapping[str, InstalledVersion],
    environ: Mapping[str, str] | None = None,
    session_id: str | None = None,
) -> str:
    """Shell snippet that starts a session and wires up the current links."""
    environ = os.environ if environ is None else environ
    session_id = session_id or new_session_id()
    lines = [
        f'export {ROOT_ENV}="{layout.root}"',
        f'export {SESSION_ENV}="{session_id}"',
    ]
    for candidate, installed in defaults.items():
        current = layout.candidate_dir(candidate) / CURRENT_LINK_NAME
        bin_dir = current / installed.bin_dir.relative_to(installed.path)
        if str(bin_dir) not in environ.get('PATH', '').split(os.pathsep):
            lines.append(f'export PATH="{bin_dir}:$PATH"')
    lines.append(SHELL_FUNCTION)
    return '\n'.join(lines) + '\n'


def apply_export(environ: Mapping[str, str], export: EnvExport) -> dict[str, str]:
    """Environment as it will look after the shell applies export.

    Used to chain several switches in one command so PATH edits accumulate.
    """
    updated = dict(environ)
    for name, value in export.variables.items():
        if value is None:
            updated.pop(name, None)
        else:
            updated[name] = value
    return updated


def emit_exports(exports: Iterable[EnvExport], environ: Mapping[str, str] | None = None) -> str:
    """Deliver exports to the shell integration.

    When the shell function set DEVKIT_ENV_FILE the statements go to that
    file (sourced after the command exits); otherwise they are returned for
    printing so ``eval "$(devkit ...)"`` works too.
    """
    environ = os.environ if environ is None else environ
    script = '\n'.join(export.render() for export in exports if export.variables)
    if not script:
        return ''
    env_file = environ.get(ENV_FILE_ENV)
    if env_file:
        with Path(env_file).open('a', encoding='utf-8') as fh:
            fh.write(script + '\n')
        logger.debug('exports_written', path=env_file)
        return ''
    return script + '\n'


__all__ = [
    'RC_FILENAME',
    'apply_export',
    'emit_exports',
    'find_rc',
    'init_script',
    'load_rc',
    'parse_rc',
    'render_rc',
    'write_rc',
]
