"""Installing candidate versions.

Downloads and extraction happen in a private staging directory under tmp/.
The extracted payload is promoted to candidates/<candidate>/<version> with a
single rename and only then registered, so an interrupted install never leaves
a registry entry or a half-populated final directory behind.
"""

import hashlib
import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout

from devkit.catalog import CatalogStore
from devkit.collaborators import Downloader, Extractor, PlatformTag, archive_suffix, current_os_arch
from devkit.config import DevkitLayout
from devkit.errors import (
    AlreadyInstallingError,
    CorruptArchiveError,
    InstallIncompleteError,
    InvalidLocalPathError,
    NoSuchCandidateError,
    NotFoundError,
    NotInstalledError,
    NoVersionsAvailableError,
)
from devkit.logging import get_logger
from devkit.models import UNVERIFIED, CandidateInfo, CatalogEntry, InstalledVersion, validate_identifier
from devkit.registry import InstallationRegistry
from devkit.symlinks import CURRENT_LINK_NAME, remove_tree

logger = get_logger(__name__)

_HASH_CHUNK = 1024 * 1024


def find_by_entrypoint(extract_dir: Path, entrypoint: str | None) -> Path | None:
    """Find the directory (top level or one below) that contains the entrypoint."""
    if not entrypoint:
        return None
    if (extract_dir / entrypoint).exists():
        return extract_dir
    for item in sorted(extract_dir.iterdir()):
        if item.is_dir() and (item / entrypoint).exists():
            logger.debug('payload_found_by_entrypoint', directory=item.name)
            return item
    return None


def find_single_directory(extract_dir: Path) -> Path | None:
    """Unwrap archives whose content sits in one top-level directory."""
    visible = [item for item in extract_dir.iterdir() if not item.name.startswith('.') and item.name != '__MACOSX']
    if len(visible) == 1 and visible[0].is_dir():
        logger.debug('payload_found_single_directory', directory=visible[0].name)
        return visible[0]
    return None


def find_payload_root(extract_dir: Path, entrypoint: str | None = None) -> Path:
    """Locate the directory that becomes the installed version."""
    result = find_by_entrypoint(extract_dir, entrypoint)
    if result is None:
        result = find_single_directory(extract_dir)
    return result or extract_dir


def parse_checksum(checksum: str) -> tuple[str, str]:
    """Split ``algo:hexdigest``; a bare digest is taken as sha256."""
    algorithm, sep, digest = checksum.partition(':')
    if not sep:
        algorithm, digest = 'sha256', checksum
    algorithm = algorithm.strip().lower()
    if algorithm not in hashlib.algorithms_available:
        msg = f'unsupported checksum algorithm: {algorithm}'
        raise CorruptArchiveError(msg)
    return algorithm, digest.strip().lower()


def file_digest(path: Path, algorithm: str) -> str:
    digest = hashlib.new(algorithm)
    with path.open('rb') as fh:
        for chunk in iter(lambda: fh.read(_HASH_CHUNK), b''):
            digest.update(chunk)
    return digest.hexdigest()


def verify_archive(archive: Path, entry: CatalogEntry) -> str:
    """Check the archive against the catalog checksum.

    Returns the integrity marker to record, or ``unverified`` when the
    catalog has no checksum.
    """
    if not entry.checksum:
        logger.warning('archive_unverified', candidate=entry.candidate, version=entry.version)
        return UNVERIFIED
    algorithm, expected = parse_checksum(entry.checksum)
    actual = file_digest(archive, algorithm)
    if actual != expected:
        msg = f'checksum mismatch for {entry.candidate} {entry.version}: expected {expected}, got {actual}'
        raise CorruptArchiveError(msg, candidate=entry.candidate, version=entry.version)
    return f'{algorithm}:{actual}'


class InstallManager:
    """Acquires, verifies, promotes and registers candidate versions."""

    def __init__(
        self,
        registry: InstallationRegistry,
        catalog: CatalogStore,
        downloader: Downloader,
        extractor: Extractor,
        *,
        platform_tag: PlatformTag = current_os_arch,
        strict: bool = False,
        lock_timeout: float = 300.0,
        keep_archives: bool = True,
    ) -> None:
        self.registry = registry
        self.catalog = catalog
        self.downloader = downloader
        self.extractor = extractor
        self.platform_tag = platform_tag
        self.strict = strict
        self.lock_timeout = lock_timeout
        self.keep_archives = keep_archives

    @property
    def layout(self) -> DevkitLayout:
        return self.registry.layout

    @contextmanager
    def _install_lock(self, candidate: str, version: str) -> Iterator[None]:
        """Serialize installs of one (candidate, version) across processes."""
        lock_path = self.layout.install_lock(candidate, version)
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock = FileLock(str(lock_path), timeout=0 if self.strict else self.lock_timeout)
        try:
            lock.acquire()
        except Timeout as exc:
            msg = f'{candidate} {version} is being installed by another process'
            raise AlreadyInstallingError(msg, candidate=candidate, version=version) from exc
        try:
            yield
        finally:
            lock.release()

    def resolve_version(self, candidate: str) -> str:
        """Latest stable version from the catalog that this platform can install."""
        try:
            return self.catalog.latest_stable(candidate, self.platform_tag())
        except (NoSuchCandidateError, NoVersionsAvailableError):
            raise
        except NotFoundError as exc:
            # nothing cached at all
            if candidate in self.registry.candidates():
                msg = f'no versions of {candidate} are available'
                raise NoVersionsAvailableError(msg, candidate=candidate) from exc
            msg = f'unknown candidate: {candidate}'
            raise NoSuchCandidateError(msg, candidate=candidate) from exc

    def candidate_info(self, candidate: str) -> CandidateInfo:
        """Best known description: catalog, then registry, then a bare name."""
        try:
            return self.catalog.info(candidate)
        except NotFoundError:
            pass
        try:
            return self.registry.info(candidate)
        except NotInstalledError:
            return CandidateInfo(name=candidate)

    def install(
        self,
        candidate: str,
        version: str | None = None,
        local_path: Path | None = None,
    ) -> InstalledVersion:
        """Install a version from the catalog, or register a local installation."""
        candidate = validate_identifier(candidate, 'candidate')
        if local_path is not None:
            if version is None:
                msg = 'a version name is required when installing from a local path'
                raise InvalidLocalPathError(msg, candidate=candidate)
            return self.install_local(candidate, version, local_path)
        if version is None:
            version = self.resolve_version(candidate)
            logger.info('resolved_latest_version', candidate=candidate, version=version)
        return self.install_remote(candidate, version)

    def install_local(self, candidate: str, version: str, local_path: Path) -> InstalledVersion:
        """Register an existing directory by reference. Nothing is copied."""
        version = validate_identifier(version, 'version')
        path = local_path.expanduser().resolve()
        if not path.is_dir():
            msg = f'local path does not exist or is not a directory: {path}'
            raise InvalidLocalPathError(msg, candidate=candidate, version=version)

        info = self.candidate_info(candidate)
        if info.entrypoint and not (path / info.entrypoint).exists():
            msg = f'{path} does not contain {info.entrypoint}'
            raise InvalidLocalPathError(msg, candidate=candidate, version=version)

        with self._install_lock(candidate, version):
            installed = self.registry.register(
                candidate,
                version,
                path,
                'local-path',
                integrity=UNVERIFIED,
                info=info,
            )
        logger.info('local_version_linked', candidate=candidate, version=version, path=str(path))
        return installed

    def install_remote(self, candidate: str, version: str) -> InstalledVersion:
        """Download, verify, extract and promote a catalog version."""
        version = validate_identifier(version, 'version')
        if version == CURRENT_LINK_NAME:
            msg = f'"{CURRENT_LINK_NAME}" is reserved and cannot be used as a version'
            raise ValueError(msg)
        entry = self.catalog.entry(candidate, version)
        info = self.catalog.info(candidate)
        platform = self.platform_tag()
        if not entry.supports(platform):
            msg = f'{candidate} {version} is not available for {platform}'
            raise NotFoundError(msg, candidate=candidate, version=version)

        with self._install_lock(candidate, version):
            if self.registry.is_installed(candidate, version):
                logger.info('already_installed', candidate=candidate, version=version)
                return self.registry.get(candidate, version)
            return self._install_locked(entry, info, platform)

    def _install_locked(self, entry: CatalogEntry, info: CandidateInfo, platform: str) -> InstalledVersion:
        candidate, version = entry.candidate, entry.version
        self.layout.tmp_dir.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f'{candidate}-{version}-', dir=self.layout.tmp_dir))
        final = self.layout.version_dir(candidate, version)
        keep_staging = False
        logger.info('installing', candidate=candidate, version=version, _verbose_staging=str(staging))

        try:
            archive, integrity = self._acquire_archive(entry, platform, staging)
            extract_dir = staging / 'extract'
            self.extractor.extract(archive, extract_dir)
            payload = find_payload_root(extract_dir, info.entrypoint)
            if info.entrypoint and not (payload / info.entrypoint).exists():
                msg = f'archive for {candidate} {version} does not contain {info.entrypoint}'
                raise CorruptArchiveError(msg, candidate=candidate, version=version)

            self._clear_orphan(final)
            final.parent.mkdir(parents=True, exist_ok=True)
            try:
                os.rename(payload, final)
            except OSError as exc:
                keep_staging = True
                msg = f'could not move {candidate} {version} into place: {exc}'
                raise InstallIncompleteError(
                    msg,
                    candidate=candidate,
                    version=version,
                    state_changed=True,
                    leftover=staging,
                ) from exc

            try:
                installed = self.registry.register(
                    candidate,
                    version,
                    final,
                    'remote',
                    integrity=integrity,
                    info=info,
                )
            except BaseException:
                shutil.rmtree(final, ignore_errors=True)
                raise
        finally:
            if not keep_staging:
                shutil.rmtree(staging, ignore_errors=True)

        logger.info('installed', candidate=candidate, version=version, path=str(final))
        return installed

    def _archive_cache_path(self, entry: CatalogEntry, platform: str, url: str) -> Path:
        return self.layout.archives_dir / f'{entry.candidate}-{entry.version}-{platform}{archive_suffix(url)}'

    def _acquire_archive(self, entry: CatalogEntry, platform: str, staging: Path) -> tuple[Path, str]:
        url = entry.download_url(platform)
        cached = self._archive_cache_path(entry, platform, url)
        if cached.exists():
            try:
                integrity = verify_archive(cached, entry)
            except CorruptArchiveError:
                logger.warning('cached_archive_corrupt', archive=str(cached))
                cached.unlink(missing_ok=True)
            else:
                logger.info('using_cached_archive', archive=str(cached))
                return cached, integrity

        logger.info('downloading_archive', candidate=entry.candidate, version=entry.version, url=url)
        downloaded = self.downloader.fetch(url)
        archive = staging / f'archive{archive_suffix(url)}'
        shutil.move(downloaded, archive)
        integrity = verify_archive(archive, entry)
        if self.keep_archives:
            self._cache_archive(archive, cached)
        return archive, integrity

    @staticmethod
    def _cache_archive(archive: Path, cached: Path) -> None:
        cached.parent.mkdir(parents=True, exist_ok=True)
        tmp = cached.with_name(f'.{cached.name}.{os.getpid()}.tmp')
        shutil.copy2(archive, tmp)
        os.replace(tmp, cached)

    def _clear_orphan(self, final: Path) -> None:
        """Remove a final directory that exists without a registry entry.

        This happens when a process died between promotion and registration.
        The caller holds the install lock, so nobody else owns it.
        """
        if not (final.exists() or final.is_symlink()):
            return
        logger.warning('removing_orphaned_install', path=str(final))
        remove_tree(final)

    def uninstall(self, candidate: str, version: str, *, force: bool = False) -> InstalledVersion:
        """Remove an installed version without racing an install of the same version."""
        candidate = validate_identifier(candidate, 'candidate')
        version = validate_identifier(version, 'version')
        with self._install_lock(candidate, version):
            return self.registry.unregister(candidate, version, force=force)


__all__ = [
    'InstallManager',
    'find_payload_root',
    'parse_checksum',
    'verify_archive',
]
