"""Helpers shared by devkit subcommands."""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console

from devkit.catalog import CatalogStore
from devkit.collaborators import ArchiveExtractor, Downloader, Extractor, HttpDownloader, current_os_arch
from devkit.config import SESSION_ENV, DevkitConfig, DevkitLayout, load_config, resolve_root
from devkit.environment import apply_export, emit_exports
from devkit.errors import NetworkUnavailableError, NotFoundError
from devkit.installation import InstallManager
from devkit.logging import get_logger
from devkit.models import CliArgs, EnvExport
from devkit.registry import InstallationRegistry
from devkit.switcher import VersionSwitcher

logger = get_logger(__name__)

# tables and plain results; logs go to stderr
output = Console()


@dataclass
class DevkitContext:
    """Everything a subcommand needs, wired from one root directory."""

    args: CliArgs
    layout: DevkitLayout
    config: DevkitConfig
    registry: InstallationRegistry
    catalog: CatalogStore
    installer: InstallManager
    switcher: VersionSwitcher
    environ: dict[str, str] = field(default_factory=dict)

    @property
    def session_id(self) -> str | None:
        return self.args.session or self.environ.get(SESSION_ENV) or None

    def refresh_catalog_if_stale(self) -> None:
        """Refresh the catalog when stale; failures with a cache are absorbed."""
        self.catalog.ensure_fresh()

    def emit(self, exports: Iterable[EnvExport]) -> None:
        """Hand exports to the shell integration and track them locally."""
        exports = list(exports)
        for export in exports:
            self.environ = apply_export(self.environ, export)
        script = emit_exports(exports, self.environ)
        if script:
            sys.stdout.write(script)

    def emit_default(self, export: EnvExport) -> None:
        """Emit a new global default unless this session overrides the candidate."""
        if self.session_id:
            override = self.registry.session_override(self.session_id, export.candidate)
            if override is not None:
                logger.info(
                    'session_override_kept',
                    candidate=export.candidate,
                    version=override.version,
                    default=export.version,
                )
                return
        self.emit([export])


def make_downloader(layout: DevkitLayout, config: DevkitConfig) -> Downloader:
    return HttpDownloader(layout.tmp_dir, timeout=config.download_timeout)


def make_extractor() -> Extractor:
    return ArchiveExtractor()


def build_context(namespace: argparse.Namespace, environ: Mapping[str, str] | None = None) -> DevkitContext:
    """Build the component graph for one CLI invocation."""
    environ = dict(os.environ if environ is None else environ)
    args = to_cli_args(namespace)
    layout = DevkitLayout(root=resolve_root(args.root, environ))
    layout.ensure()
    config = load_config(layout, environ)

    registry = InstallationRegistry(layout, lock_timeout=config.lock_timeout)
    downloader = make_downloader(layout, config)
    catalog = CatalogStore(
        layout,
        downloader,
        catalog_url=config.catalog_url,
        offline=config.offline,
        ttl_hours=config.catalog_ttl_hours,
    )
    installer = InstallManager(
        registry,
        catalog,
        downloader,
        make_extractor(),
        platform_tag=current_os_arch,
        strict=config.strict_install,
        keep_archives=config.keep_archives,
    )
    logger.debug(
        'context_built',
        root=str(layout.root),
        offline=config.offline,
        _verbose_config=config.model_dump(),
    )
    return DevkitContext(
        args=args,
        layout=layout,
        config=config,
        registry=registry,
        catalog=catalog,
        installer=installer,
        switcher=VersionSwitcher(registry),
        environ=environ,
    )


def to_cli_args(namespace: argparse.Namespace) -> CliArgs:
    root = getattr(namespace, 'root', None)
    return CliArgs(
        root=Path(root) if root else None,
        session=getattr(namespace, 'session', None),
        verbose=getattr(namespace, 'verbose', False),
    )


def build_common_parent() -> argparse.ArgumentParser:
    """Options accepted by every subcommand."""
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        '--verbose',
        '-v',
        action='store_true',
        help='Enable verbose logging',
    )
    parent.add_argument(
        '--root',
        help='devkit root directory (default: $DEVKIT_DIR or ~/.devkit)',
    )
    parent.add_argument(
        '--session',
        help='Shell session id (default: $DEVKIT_SESSION)',
    )
    return parent


def candidate_argument(parser: argparse.ArgumentParser, *, optional: bool = False) -> None:
    parser.add_argument(
        'candidate',
        nargs='?' if optional else None,
        help='The SDK to act on, e.g. java, gradle, kotlin',
    )


def version_argument(parser: argparse.ArgumentParser, *, optional: bool = False) -> None:
    parser.add_argument(
        'version',
        nargs='?' if optional else None,
        help='Version name; defaults to the latest stable version' if optional else 'Version name',
    )


def catalog_or_none(ctx: DevkitContext) -> CatalogStore | None:
    """The catalog if anything is cached, refreshing it when stale."""
    try:
        ctx.refresh_catalog_if_stale()
        ctx.catalog.snapshot()
    except (NetworkUnavailableError, NotFoundError) as exc:
        logger.warning('catalog_unavailable', error=str(exc))
        return None
    return ctx.catalog
