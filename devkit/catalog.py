"""Cached catalog of remotely installable candidate versions."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic import ValidationError

from devkit.atomic import atomic_write_model, atomic_write_text
from devkit.collaborators import Downloader
from devkit.config import DevkitLayout
from devkit.errors import (
    DevkitError,
    NetworkUnavailableError,
    NoSuchCandidateError,
    NotFoundError,
    NoVersionsAvailableError,
)
from devkit.logging import get_logger
from devkit.models import CandidateInfo, CatalogEntry, CatalogSnapshot, RemoteIndex, version_key

logger = get_logger(__name__)


class CatalogStore:
    """Serves catalog queries from a cache file refreshed from the network.

    In offline mode refresh never touches the network and queries only see
    what is already cached.
    """

    def __init__(
        self,
        layout: DevkitLayout,
        downloader: Downloader,
        *,
        catalog_url: str,
        offline: bool = False,
        ttl_hours: float = 24.0,
    ) -> None:
        self.layout = layout
        self.downloader = downloader
        self.catalog_url = catalog_url
        self.offline = offline
        self.ttl = timedelta(hours=ttl_hours)
        self._snapshot: CatalogSnapshot | None = None

    def refresh(self) -> bool:
        """Replace the cache with the remote catalog.

        Returns True when a new snapshot was stored. Network failures are
        absorbed when a cache already exists.
        """
        if self.offline:
            logger.debug('catalog_refresh_skipped_offline')
            return False

        try:
            downloaded = self.downloader.fetch(self.catalog_url)
        except NetworkUnavailableError as exc:
            if self.layout.catalog_file.exists():
                logger.warning('catalog_refresh_failed_using_cache', error=str(exc))
                return False
            raise

        try:
            remote = RemoteIndex.model_validate(json.loads(downloaded.read_text(encoding='utf-8')))
        except (ValueError, ValidationError) as exc:
            msg = f'catalog at {self.catalog_url} is malformed'
            raise DevkitError(msg) from exc
        finally:
            downloaded.unlink(missing_ok=True)

        snapshot = remote.to_snapshot()
        atomic_write_model(self.layout.catalog_file, snapshot)
        self._write_optional(self.layout.broadcast_file, snapshot.broadcast)
        self._write_optional(self.layout.version_file, snapshot.tool_version)
        self._snapshot = snapshot
        logger.info(
            'catalog_refreshed',
            candidates=len(snapshot.candidates),
            versions=len(snapshot.entries),
        )
        return True

    @staticmethod
    def _write_optional(path: Path, value: str | None) -> None:
        if value:
            atomic_write_text(path, value.rstrip('\n') + '\n')
        else:
            path.unlink(missing_ok=True)

    def is_stale(self) -> bool:
        """Whether the cache is missing or older than the configured TTL."""
        path = self.layout.catalog_file
        if not path.exists():
            return True
        snapshot = self.snapshot()
        return datetime.now(UTC) - snapshot.fetched_at > self.ttl

    def ensure_fresh(self) -> None:
        """Refresh only when the cache is stale and we are online."""
        if not self.offline and self.is_stale():
            self.refresh()

    def snapshot(self) -> CatalogSnapshot:
        """The cached snapshot; NotFound when nothing has been cached."""
        if self._snapshot is not None:
            return self._snapshot
        path = self.layout.catalog_file
        if not path.exists():
            hint = ' (offline mode)' if self.offline else ''
            msg = f'no catalog cached{hint}; run "devkit update" while online'
            raise NotFoundError(msg)
        try:
            self._snapshot = CatalogSnapshot.model_validate_json(path.read_text(encoding='utf-8'))
        except ValidationError as exc:
            msg = f'catalog cache is corrupt: {path}'
            raise NotFoundError(msg) from exc
        return self._snapshot

    def candidates(self) -> list[CandidateInfo]:
        snapshot = self.snapshot()
        return [snapshot.candidates[name] for name in sorted(snapshot.candidates)]

    def info(self, candidate: str) -> CandidateInfo:
        """Candidate description; NoSuchCandidate when unknown."""
        snapshot = self.snapshot()
        try:
            return snapshot.candidates[candidate]
        except KeyError:
            msg = f'unknown candidate: {candidate}'
            raise NoSuchCandidateError(msg, candidate=candidate) from None

    def list(self, candidate: str | None = None) -> list[CatalogEntry]:
        """Catalog entries in natural version order."""
        snapshot = self.snapshot()
        if candidate is not None:
            self.info(candidate)
            entries = [e for e in snapshot.entries if e.candidate == candidate]
        else:
            entries = list(snapshot.entries)
        return sorted(entries, key=lambda e: (e.candidate, version_key(e.version)))

    def entry(self, candidate: str, version: str) -> CatalogEntry:
        for entry in self.list(candidate):
            if entry.version == version:
                return entry
        msg = f'{candidate} {version} is not available'
        raise NotFoundError(msg, candidate=candidate, version=version)

    def latest_stable(self, candidate: str, platform: str | None = None) -> str:
        """Latest stable version: the flagged entry, else the highest version.

        With a platform tag only entries installable on that platform count.
        """
        entries = self.list(candidate)
        if platform is not None:
            entries = [e for e in entries if e.supports(platform)]
        if not entries:
            where = f' for {platform}' if platform else ''
            msg = f'no versions of {candidate} are available{where}'
            raise NoVersionsAvailableError(msg, candidate=candidate)
        flagged = [e for e in entries if e.latest]
        chosen = flagged[-1] if flagged else entries[-1]
        return chosen.version

    def broadcast(self) -> str | None:
        path = self.layout.broadcast_file
        if not path.exists():
            return None
        return path.read_text(encoding='utf-8').strip() or None


__all__ = ['CatalogStore']
