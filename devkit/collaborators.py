"""Capabilities the core consumes: download, extraction and platform tag.

The core only depends on the protocols; the classes here are the defaults
wired up by the CLI.
"""

import gzip
import os
import platform
import tarfile
import tempfile
import zipfile
import zlib
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

import httpx

from devkit.errors import CorruptArchiveError, NetworkUnavailableError, NotFoundError
from devkit.logging import get_logger

logger = get_logger(__name__)

PlatformTag = Callable[[], str]

_ARCH_ALIASES = {
    'x86_64': 'x64',
    'amd64': 'x64',
    'aarch64': 'arm64',
    'arm64': 'arm64',
    'i386': 'x86',
    'i686': 'x86',
    'armv7l': 'arm32',
}

_ARCHIVE_SUFFIXES = ('.tar.gz', '.tgz', '.tar.bz2', '.tar.xz', '.tar', '.zip')


class Downloader(Protocol):
    """Fetches a URL into a local temporary file."""

    def fetch(self, url: str) -> Path: ...


class Extractor(Protocol):
    """Unpacks an archive into an existing directory."""

    def extract(self, archive: Path, dest: Path) -> None: ...


def current_os_arch() -> str:
    """Platform tag used to pick catalog download URLs, e.g. ``linux-x64``."""
    system = platform.system().lower() or 'unknown'
    machine = platform.machine().lower()
    return f'{system}-{_ARCH_ALIASES.get(machine, machine or "unknown")}'


def archive_suffix(url: str) -> str:
    """Best-effort archive suffix of a download URL."""
    path = url.split('?', 1)[0].lower()
    for suffix in _ARCHIVE_SUFFIXES:
        if path.endswith(suffix):
            return suffix
    return '.zip'


class HttpDownloader:
    """Download capability backed by httpx."""

    def __init__(
        self,
        dest_dir: Path,
        *,
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.dest_dir = dest_dir
        self.timeout = timeout
        self._client = client

    def _open_client(self) -> httpx.Client:
        if self._client is not None:
            return self._client
        return httpx.Client(timeout=self.timeout, follow_redirects=True)

    def fetch(self, url: str) -> Path:
        """Stream url into a temporary file under dest_dir."""
        self.dest_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix='download-', suffix=archive_suffix(url), dir=self.dest_dir)
        os.close(fd)
        target = Path(tmp_name)
        logger.debug('downloading', url=url, _verbose_target=str(target))

        client = self._open_client()
        try:
            with client.stream('GET', url) as response:
                if response.status_code == httpx.codes.NOT_FOUND:
                    msg = f'not found: {url}'
                    raise NotFoundError(msg)
                response.raise_for_status()
                with target.open('wb') as fh:
                    for chunk in response.iter_bytes():
                        fh.write(chunk)
        except httpx.HTTPStatusError as exc:
            target.unlink(missing_ok=True)
            msg = f'download failed with HTTP {exc.response.status_code}: {url}'
            raise NetworkUnavailableError(msg) from exc
        except httpx.TransportError as exc:
            target.unlink(missing_ok=True)
            msg = f'network unavailable while fetching {url}: {exc}'
            raise NetworkUnavailableError(msg) from exc
        except BaseException:
            target.unlink(missing_ok=True)
            raise
        finally:
            if client is not self._client:
                client.close()

        logger.debug('downloaded', url=url, size=target.stat().st_size)
        return target


class ArchiveExtractor:
    """Extraction capability for tar (any compression) and zip archives."""

    def extract(self, archive: Path, dest: Path) -> None:
        """Unpack archive into dest, mapping every format error to CorruptArchive."""
        dest.mkdir(parents=True, exist_ok=True)
        archive_format = self._format_for(archive)
        try:
            if archive_format == 'tar':
                with tarfile.open(archive) as tar:
                    tar.extractall(dest, filter='data')
            else:
                with zipfile.ZipFile(archive) as zf:
                    self._extract_zip(zf, dest)
        except (tarfile.TarError, zipfile.BadZipFile, gzip.BadGzipFile, zlib.error, ValueError, EOFError) as exc:
            msg = f'cannot extract {archive.name}: {exc}'
            raise CorruptArchiveError(msg) from exc

    @staticmethod
    def _extract_zip(zf: zipfile.ZipFile, dest: Path) -> None:
        # zipfile drops unix permissions; restore them so binaries stay executable
        for member in zf.infolist():
            extracted = Path(zf.extract(member, dest))
            mode = (member.external_attr >> 16) & 0o777
            if mode and not member.is_dir():
                extracted.chmod(mode)

    @staticmethod
    def _format_for(archive: Path) -> str:
        if zipfile.is_zipfile(archive):
            return 'zip'
        if tarfile.is_tarfile(archive):
            return 'tar'
        msg = f'unrecognized archive format: {archive.name}'
        raise CorruptArchiveError(msg)


__all__ = [
    'ArchiveExtractor',
    'Downloader',
    'Extractor',
    'HttpDownloader',
    'PlatformTag',
    'archive_suffix',
    'current_os_arch',
]
