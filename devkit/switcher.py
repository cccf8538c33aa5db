"""Switching the current version of a candidate.

A process cannot change its parent shell's environment, so every switch
returns an EnvExport describing what the shell integration has to apply.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from enum import StrEnum
from pathlib import Path

from devkit.errors import NoneInstalledError, NoSessionError
from devkit.logging import get_logger
from devkit.models import EnvExport, InstalledVersion
from devkit.registry import InstallationRegistry
from devkit.symlinks import CURRENT_LINK_NAME

logger = get_logger(__name__)


class Scope(StrEnum):
    GLOBAL = 'global'
    SESSION = 'session'


def _under(entry: str, directory: Path) -> bool:
    return Path(entry).is_relative_to(directory)


def rebuild_path(current_path: str, candidate_dir: Path, prepend: list[Path], extra: list[Path] | None = None) -> str:
    """Drop PATH entries belonging to a candidate and prepend new ones.

    Entries in extra (for example a previous local-path install) are dropped
    as well.
    """
    owned = [candidate_dir, *(extra or [])]
    kept = [entry for entry in current_path.split(os.pathsep) if entry and not any(_under(entry, d) for d in owned)]
    return os.pathsep.join([*(str(p) for p in prepend), *kept])


class VersionSwitcher:
    """Changes global defaults and session overrides."""

    def __init__(self, registry: InstallationRegistry) -> None:
        self.registry = registry

    def _candidate_dir(self, candidate: str) -> Path:
        return self.registry.layout.candidate_dir(candidate)

    def _previous_paths(self, candidate: str, session_id: str | None) -> list[Path]:
        try:
            previous = self.registry.get_current(candidate, session_id)
        except NoneInstalledError:
            return []
        return [previous.bin_dir] if previous.is_local else []

    def export_for(
        self,
        installed: InstalledVersion,
        environ: Mapping[str, str] | None = None,
        *,
        previous: list[Path] | None = None,
        use_current_link: bool = False,
    ) -> EnvExport:
        """Describe the environment that activates an installed version."""
        environ = os.environ if environ is None else environ
        info = self.registry.info(installed.candidate)
        home = installed.path
        if use_current_link and not installed.is_local:
            home = self._candidate_dir(installed.candidate) / CURRENT_LINK_NAME
        bin_dir = home / installed.bin_dir.relative_to(installed.path)
        path = rebuild_path(
            environ.get('PATH', ''),
            self._candidate_dir(installed.candidate),
            [bin_dir],
            extra=previous,
        )
        return EnvExport(
            candidate=installed.candidate,
            version=installed.version,
            variables={info.home_variable: str(home), 'PATH': path},
        )

    def switch(
        self,
        candidate: str,
        version: str,
        scope: Scope,
        *,
        session_id: str | None = None,
        environ: Mapping[str, str] | None = None,
        release_session: bool = False,
    ) -> EnvExport:
        """Make version current for the given scope.

        Global changes are persisted and seen by every new session. Running
        sessions keep their overrides; with release_session the calling
        session drops its override and follows the new default. Session
        changes only affect the session identified by session_id.
        """
        if scope is Scope.SESSION and not session_id:
            msg = 'no active devkit session; run: eval "$(devkit init)"'
            raise NoSessionError(msg, candidate=candidate, version=version)

        previous = self._previous_paths(candidate, session_id)
        if scope is Scope.GLOBAL:
            installed = self.registry.set_global_default(candidate, version)
            if release_session and session_id and self.registry.clear_session(session_id, candidate):
                logger.info('session_override_released', candidate=candidate, session=session_id)
        else:
            installed = self.registry.set_session_override(session_id, candidate, version)

        logger.info(
            'version_switched',
            candidate=candidate,
            version=version,
            scope=scope.value,
            _verbose_session=session_id,
        )
        return self.export_for(installed, environ, previous=previous)

    def clear(
        self,
        candidate: str,
        session_id: str,
        environ: Mapping[str, str] | None = None,
    ) -> EnvExport:
        """Drop a session override and fall back to the global default."""
        previous = self._previous_paths(candidate, session_id)
        self.registry.clear_session(session_id, candidate)
        try:
            installed = self.registry.get_current(candidate)
        except NoneInstalledError:
            environ = os.environ if environ is None else environ
            info = self.registry.info(candidate)
            path = rebuild_path(environ.get('PATH', ''), self._candidate_dir(candidate), [], extra=previous)
            return EnvExport(candidate=candidate, variables={info.home_variable: None, 'PATH': path})
        return self.export_for(installed, environ, previous=previous)

    def current(self, candidate: str, session_id: str | None = None) -> InstalledVersion:
        return self.registry.get_current(candidate, session_id)

    def current_all(self, session_id: str | None = None) -> dict[str, InstalledVersion]:
        """Version in effect for every candidate that has one."""
        result = {}
        for candidate in self.registry.candidates():
            try:
                result[candidate] = self.registry.get_current(candidate, session_id)
            except NoneInstalledError:
                continue
        return result


__all__ = ['Scope', 'VersionSwitcher', 'rebuild_path']
