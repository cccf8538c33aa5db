"""On-disk registry of installed candidate versions.

The registry index is a single JSON file. Every mutation is a read-modify-write
performed under an exclusive file lock, and the new index is committed with an
atomic rename, so readers (which take no lock) always see a complete index.
Session overrides are stored one file per session and never need the lock.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from filelock import FileLock, Timeout
from pydantic import ValidationError

from devkit.atomic import atomic_write_model
from devkit.config import DevkitLayout
from devkit.errors import (
    AlreadyInstalledError,
    DevkitError,
    IsCurrentError,
    NoneInstalledError,
    NotInstalledError,
    RegistryLockedError,
    UninstallIncompleteError,
)
from devkit.logging import get_logger
from devkit.models import (
    UNVERIFIED,
    CandidateInfo,
    CandidateRecord,
    InstalledVersion,
    InstallSource,
    RegistryIndex,
    SessionState,
    validate_identifier,
)
from devkit.symlinks import sync_current_link

logger = get_logger(__name__)


def _checked(candidate: str, version: str) -> tuple[str, str]:
    return validate_identifier(candidate, 'candidate'), validate_identifier(version, 'version')


class InstallationRegistry:
    """Source of truth for installed versions and current pointers."""

    def __init__(self, layout: DevkitLayout, *, lock_timeout: float = 30.0) -> None:
        self.layout = layout
        self.lock_timeout = lock_timeout

    @contextmanager
    def _locked(self) -> Iterator[None]:
        self.layout.registry_lock.parent.mkdir(parents=True, exist_ok=True)
        lock = FileLock(str(self.layout.registry_lock), timeout=self.lock_timeout)
        try:
            lock.acquire()
        except Timeout as exc:
            msg = f'registry is locked by another process: {self.layout.registry_lock}'
            raise RegistryLockedError(msg) from exc
        try:
            yield
        finally:
            lock.release()

    @contextmanager
    def _transaction(self) -> Iterator[RegistryIndex]:
        """Yield the index for mutation; commit only if the block succeeds."""
        with self._locked():
            index = self.load()
            yield index
            atomic_write_model(self.layout.registry_file, index)

    def load(self) -> RegistryIndex:
        """Read the current index. A missing file is an empty registry."""
        path = self.layout.registry_file
        if not path.exists():
            return RegistryIndex()
        try:
            return RegistryIndex.model_validate_json(path.read_text(encoding='utf-8'))
        except ValidationError as exc:
            msg = f'registry index is corrupt: {path}'
            raise DevkitError(msg) from exc

    def _record(self, index: RegistryIndex, candidate: str, version: str | None = None) -> CandidateRecord:
        record = index.candidates.get(candidate)
        if record is None or (version is not None and version not in record.versions):
            label = f'{candidate} {version}' if version else candidate
            msg = f'{label} is not installed'
            raise NotInstalledError(msg, candidate=candidate, version=version)
        return record

    def register(
        self,
        candidate: str,
        version: str,
        path: Path,
        source: InstallSource,
        *,
        integrity: str = UNVERIFIED,
        info: CandidateInfo | None = None,
    ) -> InstalledVersion:
        """Record a fully installed version."""
        candidate, version = _checked(candidate, version)
        installed = InstalledVersion(
            candidate=candidate,
            version=version,
            path=path,
            source=source,
            installed_at=datetime.now(UTC),
            integrity=integrity,
        )
        with self._transaction() as index:
            record = index.candidates.get(candidate)
            if record is None:
                record = CandidateRecord(info=info or CandidateInfo(name=candidate))
                index.candidates[candidate] = record
            elif info is not None:
                record.info = info
            if version in record.versions:
                msg = f'{candidate} {version} is already installed'
                raise AlreadyInstalledError(msg, candidate=candidate, version=version)
            record.versions[version] = installed

        logger.info(
            'version_registered',
            candidate=candidate,
            version=version,
            source=source,
            _verbose_path=str(path),
        )
        return installed

    def unregister(self, candidate: str, version: str, *, force: bool = False) -> InstalledVersion:
        """Forget an installed version and remove its directory if devkit owns it.

        Removing the global default fails with IsCurrent unless force is set,
        in which case the candidate is left without a default.
        """
        candidate, version = _checked(candidate, version)
        cleared_default = False
        with self._transaction() as index:
            record = self._record(index, candidate, version)
            if record.default == version:
                if not force:
                    msg = f'{candidate} {version} is the current default; use --force to remove it'
                    raise IsCurrentError(msg, candidate=candidate, version=version)
                record.default = None
                cleared_default = True
            installed = record.versions.pop(version)
            if not record.versions:
                del index.candidates[candidate]

        if cleared_default:
            sync_current_link(self.layout.candidate_dir(candidate), None)
        if not installed.is_local:
            self._remove_install_dir(installed)

        logger.info(
            'version_unregistered',
            candidate=candidate,
            version=version,
            cleared_default=cleared_default,
        )
        return installed

    def _remove_install_dir(self, installed: InstalledVersion) -> None:
        path = installed.path
        owner = self.layout.candidate_dir(installed.candidate)
        if not path.is_relative_to(owner):
            logger.warning('skipping_foreign_directory', path=str(path))
            return
        if not path.exists():
            return
        # Move aside first so the final path disappears in one step
        try:
            self.layout.tmp_dir.mkdir(parents=True, exist_ok=True)
            trash = Path(tempfile.mkdtemp(prefix=f'remove-{installed.candidate}-', dir=self.layout.tmp_dir))
            try:
                os.rename(path, trash / installed.version)
            except OSError:
                shutil.rmtree(trash, ignore_errors=True)
                raise
        except OSError as exc:
            msg = f'{installed.candidate} {installed.version} was unregistered but {path} could not be removed: {exc}'
            raise UninstallIncompleteError(
                msg,
                candidate=installed.candidate,
                version=installed.version,
                state_changed=True,
                leftover=path,
            ) from exc
        shutil.rmtree(trash, ignore_errors=True)

    def list(self, candidate: str | None = None) -> list[InstalledVersion]:
        """Installed versions, optionally for a single candidate."""
        index = self.load()
        if candidate is not None:
            record = index.candidates.get(candidate)
            return record.sorted_versions() if record else []
        return [
            installed
            for name in sorted(index.candidates)
            for installed in index.candidates[name].sorted_versions()
        ]

    def get(self, candidate: str, version: str) -> InstalledVersion:
        """Look up one installed version."""
        record = self._record(self.load(), candidate, version)
        return record.versions[version]

    def is_installed(self, candidate: str, version: str) -> bool:
        record = self.load().candidates.get(candidate)
        return record is not None and version in record.versions

    def candidates(self) -> list[str]:
        """Names of candidates with at least one installed version."""
        return sorted(self.load().candidates)

    def info(self, candidate: str) -> CandidateInfo:
        """Stored description of an installed candidate."""
        return self._record(self.load(), candidate).info

    def global_default(self, candidate: str) -> str | None:
        record = self.load().candidates.get(candidate)
        return record.default if record else None

    def defaults(self) -> dict[str, InstalledVersion]:
        """Global default installation for every configured candidate."""
        index = self.load()
        return {
            name: record.versions[record.default]
            for name, record in sorted(index.candidates.items())
            if record.default is not None
        }

    def set_global_default(self, candidate: str, version: str) -> InstalledVersion:
        """Persist the global default and repoint the candidate's current link."""
        candidate, version = _checked(candidate, version)
        with self._transaction() as index:
            record = self._record(index, candidate, version)
            record.default = version
            installed = record.versions[version]

        sync_current_link(self.layout.candidate_dir(candidate), installed.path)
        logger.debug('global_default_set', candidate=candidate, version=version)
        return installed

    def get_current(self, candidate: str, session_id: str | None = None) -> InstalledVersion:
        """Resolve the version in effect for a session.

        A session override wins while it references an installed version;
        otherwise the global default applies.
        """
        if session_id is not None:
            override = self.session_override(session_id, candidate)
            if override is not None:
                return override

        record = self.load().candidates.get(candidate)
        if record is None or record.default is None:
            msg = f'no current version of {candidate}'
            raise NoneInstalledError(msg, candidate=candidate)
        return record.versions[record.default]

    def load_session(self, session_id: str) -> SessionState:
        """Read a session's overrides. Unknown sessions have none."""
        session_id = validate_identifier(session_id, 'session')
        path = self.layout.session_file(session_id)
        if not path.exists():
            return SessionState(session_id=session_id)
        try:
            return SessionState.model_validate_json(path.read_text(encoding='utf-8'))
        except ValidationError:
            logger.warning('session_state_unreadable', session=session_id, _verbose_path=str(path))
            return SessionState(session_id=session_id)

    def session_override(self, session_id: str, candidate: str) -> InstalledVersion | None:
        """The installation a session override still refers to, if any.

        An override is tied to the installation it was made against. Once that
        version is uninstalled the override is dropped for good, even if the
        same version is installed again later.
        """
        state = self.load_session(session_id)
        version = state.overrides.get(candidate)
        if version is None:
            return None
        record = self.load().candidates.get(candidate)
        installed = record.versions.get(version) if record else None
        pinned = state.pinned_at.get(candidate)
        if installed is not None and (pinned is None or pinned == installed.installed_at):
            return installed

        logger.warning(
            'session_override_invalidated',
            candidate=candidate,
            version=version,
            session=session_id,
        )
        self.clear_session(session_id, candidate)
        return None

    def set_session_override(self, session_id: str, candidate: str, version: str) -> InstalledVersion:
        """Shadow the global default for one session."""
        installed = self.get(candidate, version)
        state = self.load_session(session_id)
        state.overrides[candidate] = version
        state.pinned_at[candidate] = installed.installed_at
        state.updated_at = datetime.now(UTC)
        atomic_write_model(self.layout.session_file(state.session_id), state)
        logger.debug('session_override_set', candidate=candidate, version=version, session=session_id)
        return installed

    def clear_session(self, session_id: str, candidate: str | None = None) -> bool:
        """Drop one override, or the whole session when candidate is None."""
        state = self.load_session(session_id)
        path = self.layout.session_file(state.session_id)
        if candidate is None:
            if path.exists():
                path.unlink()
                return True
            return False
        state.pinned_at.pop(candidate, None)
        if state.overrides.pop(candidate, None) is None:
            return False
        state.updated_at = datetime.now(UTC)
        atomic_write_model(path, state)
        return True


__all__ = ['InstallationRegistry']
