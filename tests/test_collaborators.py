"""Tests for the default download and extraction capabilities."""

import io
import zipfile
from pathlib import Path

import httpx
import pytest
from pytest_mock import MockerFixture

from devkit import collaborators
from devkit.collaborators import ArchiveExtractor, HttpDownloader, archive_suffix, current_os_arch
from devkit.errors import CorruptArchiveError, NetworkUnavailableError, NotFoundError

from .conftest import make_tar_gz


def _downloader(tmp_path: Path, handler) -> HttpDownloader:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpDownloader(tmp_path / 'downloads', client=client)


class TestHttpDownloader:
    """Tests for HttpDownloader."""

    def test_fetch(self, tmp_path: Path) -> None:
        """Test that the body is written to a temporary file."""
        downloader = _downloader(tmp_path, lambda request: httpx.Response(200, content=b'archive-bytes'))

        path = downloader.fetch('https://dl.test/java/21/linux-x64.tar.gz')

        assert path.read_bytes() == b'archive-bytes'
        assert path.parent == tmp_path / 'downloads'
        assert path.name.endswith('.tar.gz')

    def test_not_found(self, tmp_path: Path) -> None:
        """Test that a 404 maps to NotFound and leaves no file."""
        downloader = _downloader(tmp_path, lambda request: httpx.Response(404))

        with pytest.raises(NotFoundError):
            downloader.fetch('https://dl.test/missing.zip')

        assert list((tmp_path / 'downloads').iterdir()) == []

    def test_server_error(self, tmp_path: Path) -> None:
        """Test that server errors are reported as network problems."""
        downloader = _downloader(tmp_path, lambda request: httpx.Response(503))

        with pytest.raises(NetworkUnavailableError, match='503'):
            downloader.fetch('https://dl.test/java.zip')

        assert list((tmp_path / 'downloads').iterdir()) == []

    def test_connection_error(self, tmp_path: Path) -> None:
        """Test that transport failures are reported as network problems."""

        def refuse(request: httpx.Request) -> httpx.Response:
            msg = 'connection refused'
            raise httpx.ConnectError(msg, request=request)

        downloader = _downloader(tmp_path, refuse)

        with pytest.raises(NetworkUnavailableError, match='connection refused'):
            downloader.fetch('https://dl.test/java.zip')

        assert list((tmp_path / 'downloads').iterdir()) == []


class TestArchiveExtractor:
    """Tests for ArchiveExtractor."""

    def test_extract_tar(self, tmp_path: Path) -> None:
        """Test extracting a tar.gz archive."""
        archive = tmp_path / 'java.tar.gz'
        archive.write_bytes(make_tar_gz({'bin/java': 'x', 'release': 'y'}, top='jdk'))

        ArchiveExtractor().extract(archive, tmp_path / 'out')

        assert (tmp_path / 'out' / 'jdk' / 'bin' / 'java').read_text() == 'x'

    def test_extract_zip_keeps_modes(self, tmp_path: Path) -> None:
        """Test that zip extraction restores executable bits."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w') as zf:
            info = zipfile.ZipInfo('gradle/bin/gradle')
            info.external_attr = 0o755 << 16
            zf.writestr(info, '#!/bin/sh\n')
        archive = tmp_path / 'gradle.zip'
        archive.write_bytes(buffer.getvalue())

        ArchiveExtractor().extract(archive, tmp_path / 'out')

        extracted = tmp_path / 'out' / 'gradle' / 'bin' / 'gradle'
        assert extracted.stat().st_mode & 0o111

    def test_unsafe_member_rejected(self, tmp_path: Path) -> None:
        """Test that members escaping the destination are refused."""
        archive = tmp_path / 'evil.tar.gz'
        archive.write_bytes(make_tar_gz({'../escape': 'x'}))

        with pytest.raises(CorruptArchiveError):
            ArchiveExtractor().extract(archive, tmp_path / 'out')

        assert not (tmp_path / 'escape').exists()

    def test_truncated_archive(self, tmp_path: Path) -> None:
        """Test that a truncated download is reported as corrupt."""
        data = make_tar_gz({'bin/java': 'x' * 10000})
        archive = tmp_path / 'java.tar.gz'
        archive.write_bytes(data[: len(data) // 2])

        with pytest.raises(CorruptArchiveError):
            ArchiveExtractor().extract(archive, tmp_path / 'out')

    def test_unknown_format(self, tmp_path: Path) -> None:
        """Test that non-archives are reported as corrupt."""
        archive = tmp_path / 'notes.txt'
        archive.write_text('hello')

        with pytest.raises(CorruptArchiveError, match='unrecognized'):
            ArchiveExtractor().extract(archive, tmp_path / 'out')


class TestPlatform:
    """Tests for platform helpers."""

    @pytest.mark.parametrize(
        ('system', 'machine', 'expected'),
        [
            ('Linux', 'x86_64', 'linux-x64'),
            ('Darwin', 'arm64', 'darwin-arm64'),
            ('Linux', 'aarch64', 'linux-arm64'),
            ('Windows', 'AMD64', 'windows-x64'),
        ],
    )
    def test_current_os_arch(self, mocker: MockerFixture, system: str, machine: str, expected: str) -> None:
        """Test platform tag normalization."""
        mocker.patch.object(collaborators.platform, 'system', return_value=system)
        mocker.patch.object(collaborators.platform, 'machine', return_value=machine)
        assert current_os_arch() == expected

    @pytest.mark.parametrize(
        ('url', 'expected'),
        [
            ('https://dl.test/a.tar.gz', '.tar.gz'),
            ('https://dl.test/a.TGZ?token=1', '.tgz'),
            ('https://dl.test/a.zip', '.zip'),
            ('https://dl.test/download', '.zip'),
        ],
    )
    def test_archive_suffix(self, url: str, expected: str) -> None:
        """Test suffix detection from URLs."""
        assert archive_suffix(url) == expected
