"""Pydantic models for devkit."""

import re
import shlex
import string
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from devkit.errors import NotFoundError

InstallSource = Literal['remote', 'local-path']

UNVERIFIED = 'unverified'

_NAME_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._+-]*$')

URL_TEMPLATE_FIELDS = frozenset({'candidate', 'version', 'platform'})


def _utcnow() -> datetime:
    return datetime.now(UTC)


def validate_identifier(value: str, label: str) -> str:
    """Validate a candidate name or version string.

    Both end up as directory and lock file names, so path separators and
    leading dots are rejected.
    """
    value = value.strip()
    if not value:
        msg = f'{label} cannot be empty'
        raise ValueError(msg)
    if not _NAME_PATTERN.match(value):
        msg = f'invalid {label}: {value!r}'
        raise ValueError(msg)
    return value


def validate_url_template(url: str) -> str:
    """Check that a download URL only uses the known placeholders."""
    try:
        fields = [name for _, name, _, _ in string.Formatter().parse(url) if name is not None]
    except ValueError as exc:
        msg = f'malformed url template {url!r}: {exc}'
        raise ValueError(msg) from exc
    unknown = sorted({name for name in fields if name not in URL_TEMPLATE_FIELDS})
    if unknown:
        names = ', '.join(repr(name) for name in unknown)
        msg = f'unknown placeholder {names} in url template {url!r}'
        raise ValueError(msg)
    return url


def version_key(version: str) -> tuple:
    """Natural sort key: numeric runs compare as numbers."""
    parts = re.split(r'(\d+)', version)
    return tuple((0, int(part), '') if part.isdigit() else (1, 0, part) for part in parts if part)


class CandidateInfo(BaseModel):
    """Static description of an installable SDK family."""

    name: str
    display_name: str | None = None
    entrypoint: str | None = None
    home_var: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate that the candidate name is usable as a directory name."""
        return validate_identifier(v, 'candidate')

    @property
    def label(self) -> str:
        """Name shown to users."""
        return self.display_name or self.name

    @property
    def home_variable(self) -> str:
        """Environment variable pointing at the current installation."""
        if self.home_var:
            return self.home_var
        return re.sub(r'[^A-Za-z0-9]', '_', self.name).upper() + '_HOME'


class InstalledVersion(BaseModel):
    """A registered (candidate, version) installation."""

    candidate: str
    version: str
    path: Path
    source: InstallSource
    installed_at: datetime = Field(default_factory=_utcnow)
    integrity: str = UNVERIFIED

    @property
    def is_local(self) -> bool:
        """Whether the install directory is owned by someone else."""
        return self.source == 'local-path'

    @property
    def bin_dir(self) -> Path:
        """Directory to put on PATH for this installation."""
        candidate_bin = self.path / 'bin'
        return candidate_bin if candidate_bin.is_dir() else self.path


class CandidateRecord(BaseModel):
    """Registry state for one candidate."""

    info: CandidateInfo
    versions: dict[str, InstalledVersion] = Field(default_factory=dict)
    default: str | None = None

    def sorted_versions(self) -> list[InstalledVersion]:
        """Installed versions in natural version order."""
        return [self.versions[v] for v in sorted(self.versions, key=version_key)]


class RegistryIndex(BaseModel):
    """The persisted registry index file."""

    model_config = ConfigDict(extra='forbid')

    schema_version: int = 1
    candidates: dict[str, CandidateRecord] = Field(default_factory=dict)


class SessionState(BaseModel):
    """Per-shell-session version overrides."""

    session_id: str
    overrides: dict[str, str] = Field(default_factory=dict)
    # installed_at of the installation each override was made against
    pinned_at: dict[str, datetime] = Field(default_factory=dict)
    updated_at: datetime = Field(default_factory=_utcnow)


class CatalogEntry(BaseModel):
    """A remotely installable (candidate, version)."""

    candidate: str
    version: str
    url: str
    latest: bool = False
    checksum: str | None = None
    platforms: list[str] | None = None

    def supports(self, platform: str) -> bool:
        """Whether this entry can be installed on the given platform tag."""
        return not self.platforms or platform in self.platforms

    def download_url(self, platform: str) -> str:
        """Expand the URL template for a platform."""
        try:
            return validate_url_template(self.url).format(
                candidate=self.candidate,
                version=self.version,
                platform=platform,
            )
        except (KeyError, IndexError, ValueError) as exc:
            msg = f'{self.candidate} {self.version} has no usable download url: {exc}'
            raise NotFoundError(msg, candidate=self.candidate, version=self.version) from exc


class CatalogSnapshot(BaseModel):
    """A complete cached copy of the remote catalog."""

    fetched_at: datetime = Field(default_factory=_utcnow)
    candidates: dict[str, CandidateInfo] = Field(default_factory=dict)
    entries: list[CatalogEntry] = Field(default_factory=list)
    broadcast: str | None = None
    tool_version: str | None = None


class RemoteVersion(BaseModel):
    """Version entry as published in the remote index."""

    version: str
    url: str
    latest: bool = False
    checksum: str | None = None
    platforms: list[str] | None = None

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        return validate_url_template(v)


class RemoteCandidate(CandidateInfo):
    """Candidate entry as published in the remote index."""

    versions: list[RemoteVersion] = Field(default_factory=list)


class RemoteIndex(BaseModel):
    """Top-level document served at the catalog URL."""

    candidates: list[RemoteCandidate] = Field(default_factory=list)
    broadcast: str | None = None
    tool_version: str | None = None

    def to_snapshot(self) -> CatalogSnapshot:
        """Flatten the remote document into a cache snapshot."""
        infos: dict[str, CandidateInfo] = {}
        entries: list[CatalogEntry] = []
        for remote in self.candidates:
            infos[remote.name] = CandidateInfo.model_validate(
                remote.model_dump(exclude={'versions'}),
            )
            entries.extend(
                CatalogEntry(candidate=remote.name, **version.model_dump()) for version in remote.versions
            )
        return CatalogSnapshot(
            candidates=infos,
            entries=entries,
            broadcast=self.broadcast,
            tool_version=self.tool_version,
        )


class EnvExport(BaseModel):
    """Environment changes the shell integration must apply.

    A value of None means the variable should be unset.
    """

    candidate: str
    version: str | None = None
    variables: dict[str, str | None] = Field(default_factory=dict)

    def render(self) -> str:
        """Render as POSIX shell statements."""
        lines = []
        for name, value in self.variables.items():
            if value is None:
                lines.append(f'unset {name}')
            else:
                lines.append(f'export {name}={shlex.quote(value)}')
        return '\n'.join(lines)


class CliArgs(BaseModel):
    """Global options shared by every devkit subcommand."""

    root: Path | None = None
    session: str | None = None
    verbose: bool = False
