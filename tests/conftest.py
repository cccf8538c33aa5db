import hashlib
import io
import json
import os
import re
import tarfile
import tempfile
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from pydantic import BaseModel
from pytest_mock import MockerFixture

from devkit.catalog import CatalogStore
from devkit.cli.main import main as devkit_main
from devkit.collaborators import ArchiveExtractor
from devkit.config import DEFAULT_CATALOG_URL, DevkitLayout
from devkit.errors import NotFoundError
from devkit.installation import InstallManager
from devkit.registry import InstallationRegistry
from devkit.switcher import VersionSwitcher

CATALOG_URL = DEFAULT_CATALOG_URL
PLATFORM = 'linux-x64'
DOWNLOAD_TEMPLATE = 'https://downloads.test/{candidate}/{version}/{platform}.tar.gz'


def strip_ansi(text: str) -> str:
    """Remove ANSI color codes from text."""
    return re.sub(r'\x1b\[[0-9;]*m', '', text)


def make_tar_gz(files: dict[str, str], top: str = '') -> bytes:
    """Build a tar.gz archive in memory. Files under bin/ are executable."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode='w:gz') as tar:
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(f'{top}/{name}' if top else name)
            info.size = len(data)
            info.mode = 0o755 if name.startswith('bin/') else 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def sdk_archive(candidate: str, version: str) -> bytes:
    """Archive laid out the way SDK vendors ship them: one top-level directory."""
    return make_tar_gz(
        {
            f'bin/{candidate}': f'#!/bin/sh\necho {candidate} {version}\n',
            'release': f'VERSION={version}\n',
        },
        top=f'{candidate}-{version}',
    )


def sha256(data: bytes) -> str:
    return 'sha256:' + hashlib.sha256(data).hexdigest()


class FakeDownloader:
    """In-memory download capability that records every fetch."""

    def __init__(self, dest_dir: Path) -> None:
        self.dest_dir = dest_dir
        self.payloads: dict[str, bytes] = {}
        self.calls: list[str] = []
        self.error: Exception | None = None
        self.started = threading.Event()
        self.gate: threading.Event | None = None

    def serve(self, url: str, data: bytes) -> None:
        self.payloads[url] = data

    def fetch(self, url: str) -> Path:
        self.calls.append(url)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=10)
        if self.error is not None:
            raise self.error
        if url not in self.payloads:
            msg = f'not found: {url}'
            raise NotFoundError(msg)
        self.dest_dir.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(prefix='download-', dir=self.dest_dir)
        os.close(fd)
        target = Path(name)
        target.write_bytes(self.payloads[url])
        return target

    def download_calls(self) -> list[str]:
        """Fetches other than the catalog index."""
        return [url for url in self.calls if url != CATALOG_URL]


@dataclass
class CatalogBuilder:
    """Builds a remote index and serves it, with matching archives."""

    downloader: FakeDownloader
    candidates: dict[str, dict] = field(default_factory=dict)
    broadcast: str | None = None
    tool_version: str | None = None

    def add_candidate(self, name: str, *, display_name: str | None = None, home_var: str | None = None) -> None:
        self.candidates[name] = {
            'name': name,
            'display_name': display_name,
            'entrypoint': f'bin/{name}',
            'home_var': home_var,
            'versions': [],
        }

    def add_version(
        self,
        candidate: str,
        version: str,
        *,
        latest: bool = False,
        checksum: str | None = 'auto',
        platforms: list[str] | None = None,
        archive: bytes | None = None,
    ) -> bytes:
        if candidate not in self.candidates:
            self.add_candidate(candidate)
        data = sdk_archive(candidate, version) if archive is None else archive
        url = DOWNLOAD_TEMPLATE.format(candidate=candidate, version=version, platform=PLATFORM)
        self.downloader.serve(url, data)
        self.candidates[candidate]['versions'].append(
            {
                'version': version,
                'url': DOWNLOAD_TEMPLATE,
                'latest': latest,
                'checksum': sha256(data) if checksum == 'auto' else checksum,
                'platforms': platforms,
            },
        )
        return data

    def publish(self) -> None:
        index = {
            'candidates': list(self.candidates.values()),
            'broadcast': self.broadcast,
            'tool_version': self.tool_version,
        }
        self.downloader.serve(CATALOG_URL, json.dumps(index).encode())


def default_catalog(builder: CatalogBuilder) -> CatalogBuilder:
    builder.add_candidate('java', display_name='Java', home_var='JAVA_HOME')
    builder.add_version('java', '17.0.10')
    builder.add_version('java', '21.0.2', latest=True)
    builder.add_version('java', '22.ea.1')
    builder.add_candidate('gradle', display_name='Gradle')
    builder.add_version('gradle', '8.5')
    builder.add_version('gradle', '8.10')
    builder.broadcast = 'java 21.0.2 is now available'
    builder.tool_version = '0.2.0'
    builder.publish()
    return builder


@dataclass
class Kit:
    """The core components wired against one temporary root."""

    layout: DevkitLayout
    downloader: FakeDownloader
    catalog_builder: CatalogBuilder
    registry: InstallationRegistry
    catalog: CatalogStore
    installer: InstallManager
    switcher: VersionSwitcher

    def make_installer(self, **kwargs: object) -> InstallManager:
        """A second installer sharing the same root, as another process would."""
        return InstallManager(
            InstallationRegistry(self.layout),
            self.catalog,
            self.downloader,
            ArchiveExtractor(),
            platform_tag=lambda: PLATFORM,
            **kwargs,
        )


@pytest.fixture
def layout(tmp_path: Path) -> DevkitLayout:
    layout = DevkitLayout(root=tmp_path / 'devkit')
    layout.ensure()
    return layout


@pytest.fixture
def downloader(layout: DevkitLayout) -> FakeDownloader:
    return FakeDownloader(layout.tmp_dir)


@pytest.fixture
def catalog_builder(downloader: FakeDownloader) -> CatalogBuilder:
    return default_catalog(CatalogBuilder(downloader))


@pytest.fixture
def kit(layout: DevkitLayout, downloader: FakeDownloader, catalog_builder: CatalogBuilder) -> Kit:
    registry = InstallationRegistry(layout, lock_timeout=5)
    catalog = CatalogStore(layout, downloader, catalog_url=CATALOG_URL)
    catalog.refresh()
    installer = InstallManager(
        registry,
        catalog,
        downloader,
        ArchiveExtractor(),
        platform_tag=lambda: PLATFORM,
        lock_timeout=10,
    )
    return Kit(
        layout=layout,
        downloader=downloader,
        catalog_builder=catalog_builder,
        registry=registry,
        catalog=catalog,
        installer=installer,
        switcher=VersionSwitcher(registry),
    )


@pytest.fixture
def local_sdk(tmp_path: Path) -> Path:
    """An SDK installed outside devkit, e.g. by a system package manager."""
    sdk = tmp_path / 'opt' / 'java-custom'
    (sdk / 'bin').mkdir(parents=True)
    (sdk / 'bin' / 'java').write_text('#!/bin/sh\n')
    return sdk


class Result(BaseModel):
    returncode: int
    stdout: str
    stderr: str

    @property
    def all_output(self) -> str:
        return self.stdout + self.stderr


CliCommand = Callable[..., Result]


@pytest.fixture
def cli_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Clean devkit environment; returns the project working directory."""
    for name in ('DEVKIT_DIR', 'DEVKIT_SESSION', 'DEVKIT_ENV_FILE', 'DEVKIT_OFFLINE'):
        monkeypatch.delenv(name, raising=False)
    project = tmp_path / 'project'
    project.mkdir()
    monkeypatch.chdir(project)
    return project


@pytest.fixture
def run_devkit(
    capsys: pytest.CaptureFixture,
    mocker: MockerFixture,
    layout: DevkitLayout,
    downloader: FakeDownloader,
    catalog_builder: CatalogBuilder,
    cli_env: Path,
) -> CliCommand:
    """Run the devkit CLI against the temporary root with the fake downloader."""
    mocker.patch('devkit.cli.subparsers._shared.make_downloader', return_value=downloader)
    mocker.patch('devkit.cli.subparsers._shared.current_os_arch', return_value=PLATFORM)

    def _run(*args: str, session: str | None = None) -> Result:
        argv = [*args, '--root', str(layout.root)]
        if session:
            argv += ['--session', session]
        exit_code = devkit_main(argv)
        captured = capsys.readouterr()
        return Result(
            returncode=exit_code,
            stdout=strip_ansi(captured.out),
            stderr=strip_ansi(captured.err),
        )

    return _run
