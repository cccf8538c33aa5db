"""Error kinds raised by the devkit core.

Every error carries the offending candidate/version and whether on-disk state
changed, so the CLI can tell the user what (if anything) needs cleaning up.
"""

from __future__ import annotations

from pathlib import Path


class DevkitError(RuntimeError):
    """Base class for all devkit errors."""

    kind = 'DevkitError'
    exit_code = 1

    def __init__(
        self,
        message: str,
        *,
        candidate: str | None = None,
        version: str | None = None,
        state_changed: bool = False,
        leftover: Path | None = None,
    ) -> None:
        super().__init__(message)
        self.candidate = candidate
        self.version = version
        self.state_changed = state_changed
        self.leftover = leftover

    def context(self) -> dict[str, object]:
        """Structured context for logging."""
        ctx: dict[str, object] = {
            'kind': self.kind,
            'state_changed': self.state_changed,
        }
        if self.candidate:
            ctx['candidate'] = self.candidate
        if self.version:
            ctx['version'] = self.version
        if self.leftover:
            ctx['leftover'] = str(self.leftover)
        return ctx


class NotInstalledError(DevkitError):
    """Raised when a candidate version is not registered."""

    kind = 'NotInstalled'
    exit_code = 10


class AlreadyInstalledError(DevkitError):
    """Raised when registering a candidate version twice."""

    kind = 'AlreadyInstalled'
    exit_code = 11


class AlreadyInstallingError(DevkitError):
    """Raised in strict mode when another process is installing the same version."""

    kind = 'AlreadyInstalling'
    exit_code = 12


class IsCurrentError(DevkitError):
    """Raised when removing the global default without force."""

    kind = 'IsCurrent'
    exit_code = 13


class NotFoundError(DevkitError):
    """Raised when the catalog has nothing to serve."""

    kind = 'NotFound'
    exit_code = 14


class NoSuchCandidateError(NotFoundError):
    """Raised when a candidate is unknown to the catalog."""

    kind = 'NoSuchCandidate'
    exit_code = 15


class NoVersionsAvailableError(NotFoundError):
    """Raised when a known candidate has no installable versions."""

    kind = 'NoVersionsAvailable'
    exit_code = 16


class NetworkUnavailableError(DevkitError):
    """Raised when a remote resource cannot be reached."""

    kind = 'NetworkUnavailable'
    exit_code = 17


class CorruptArchiveError(DevkitError):
    """Raised when an archive fails verification or extraction."""

    kind = 'CorruptArchive'
    exit_code = 18


class InstallIncompleteError(DevkitError):
    """Raised when promoting a staged install to its final path fails."""

    kind = 'InstallIncomplete'
    exit_code = 19


class RegistryLockedError(DevkitError):
    """Raised when the registry lock cannot be acquired in time."""

    kind = 'RegistryLocked'
    exit_code = 20


class NoneInstalledError(DevkitError):
    """Raised when a candidate has no current version."""

    kind = 'NoneInstalled'
    exit_code = 21


class InvalidLocalPathError(DevkitError):
    """Raised when a local installation path is missing or incomplete."""

    kind = 'InvalidLocalPath'
    exit_code = 22


class NoSessionError(DevkitError):
    """Raised when a session-scoped operation runs outside a devkit session."""

    kind = 'NoSession'
    exit_code = 23


class DevkitConfigError(DevkitError):
    """Raised when devkit configuration is invalid."""

    kind = 'ConfigError'
    exit_code = 24


class UninstallIncompleteError(DevkitError):
    """Raised when a version was unregistered but its directory could not be removed."""

    kind = 'UninstallIncomplete'
    exit_code = 25


__all__ = [
    'AlreadyInstalledError',
    'AlreadyInstallingError',
    'CorruptArchiveError',
    'DevkitConfigError',
    'DevkitError',
    'InstallIncompleteError',
    'InvalidLocalPathError',
    'IsCurrentError',
    'NetworkUnavailableError',
    'NoSessionError',
    'NoSuchCandidateError',
    'NoVersionsAvailableError',
    'NoneInstalledError',
    'NotFoundError',
    'NotInstalledError',
    'RegistryLockedError',
    'UninstallIncompleteError',
]
