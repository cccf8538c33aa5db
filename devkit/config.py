"""Devkit configuration and on-disk layout."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from devkit.atomic import atomic_write_text
from devkit.errors import DevkitConfigError
from devkit.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ROOT_DIRNAME = '.devkit'
CONFIG_FILENAME = 'config.yaml'
DEFAULT_CATALOG_URL = 'https://devkit.example.org/catalog/index.json'

ROOT_ENV = 'DEVKIT_DIR'
OFFLINE_ENV = 'DEVKIT_OFFLINE'
SESSION_ENV = 'DEVKIT_SESSION'
ENV_FILE_ENV = 'DEVKIT_ENV_FILE'

_TRUTHY = {'1', 'true', 'yes', 'on'}


class DevkitConfig(BaseModel):
    """Settings read from etc/config.yaml."""

    model_config = ConfigDict(extra='forbid')

    catalog_url: str = DEFAULT_CATALOG_URL
    catalog_ttl_hours: float = Field(default=24.0, ge=0)
    offline: bool = False
    strict_install: bool = False
    lock_timeout: float = Field(default=30.0, ge=0)
    keep_archives: bool = True
    auto_default: bool = True
    download_timeout: float = Field(default=60.0, gt=0)


class DevkitLayout(BaseModel):
    """Paths below the devkit root directory."""

    root: Path

    @property
    def candidates_dir(self) -> Path:
        return self.root / 'candidates'

    @property
    def var_dir(self) -> Path:
        return self.root / 'var'

    @property
    def registry_file(self) -> Path:
        return self.var_dir / 'registry.json'

    @property
    def registry_lock(self) -> Path:
        return self.var_dir / 'registry.json.lock'

    @property
    def catalog_file(self) -> Path:
        return self.var_dir / 'catalog.json'

    @property
    def broadcast_file(self) -> Path:
        return self.var_dir / 'broadcast'

    @property
    def version_file(self) -> Path:
        return self.var_dir / 'version'

    @property
    def sessions_dir(self) -> Path:
        return self.var_dir / 'sessions'

    @property
    def locks_dir(self) -> Path:
        return self.var_dir / 'locks'

    @property
    def archives_dir(self) -> Path:
        return self.root / 'archives'

    @property
    def tmp_dir(self) -> Path:
        return self.root / 'tmp'

    @property
    def config_file(self) -> Path:
        return self.root / 'etc' / CONFIG_FILENAME

    def candidate_dir(self, candidate: str) -> Path:
        """Directory holding every installed version of a candidate."""
        return self.candidates_dir / candidate

    def version_dir(self, candidate: str, version: str) -> Path:
        """Final install path of a remote (candidate, version)."""
        return self.candidate_dir(candidate) / version

    def install_lock(self, candidate: str, version: str) -> Path:
        """Lock file serializing installs of one (candidate, version)."""
        return self.locks_dir / f'{candidate}-{version}.lock'

    def session_file(self, session_id: str) -> Path:
        return self.sessions_dir / f'{session_id}.json'

    def ensure(self) -> None:
        """Create the directory skeleton."""
        for directory in (
            self.candidates_dir,
            self.var_dir,
            self.sessions_dir,
            self.locks_dir,
            self.archives_dir,
            self.tmp_dir,
            self.config_file.parent,
        ):
            directory.mkdir(parents=True, exist_ok=True)


def resolve_root(root: Path | None = None, environ: Mapping[str, str] | None = None) -> Path:
    """Pick the devkit root: explicit argument, then DEVKIT_DIR, then ~/.devkit."""
    if root is not None:
        return root.expanduser().resolve()
    environ = os.environ if environ is None else environ
    env_root = environ.get(ROOT_ENV)
    if env_root:
        return Path(env_root).expanduser().resolve()
    return Path.home() / DEFAULT_ROOT_DIRNAME


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    logger.debug('loading_config', config=str(config_path))
    try:
        with config_path.open() as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        msg = f'failed to parse YAML: {exc}'
        raise DevkitConfigError(msg) from exc

    if not isinstance(data, dict):
        msg = f'configuration root must be a mapping in {config_path}'
        raise DevkitConfigError(msg)

    return data


def load_config(
    layout: DevkitLayout,
    environ: Mapping[str, str] | None = None,
) -> DevkitConfig:
    """Load configuration, applying environment overrides.

    A missing file yields the defaults.
    """
    data: dict[str, Any] = {}
    if layout.config_file.exists():
        data = _load_yaml_config(layout.config_file)

    try:
        config = DevkitConfig.model_validate(data)
    except ValidationError as exc:
        logger.error('config_validation_failed', errors=str(exc))
        msg = f'invalid devkit configuration in {layout.config_file}'
        raise DevkitConfigError(msg) from exc

    environ = os.environ if environ is None else environ
    offline_value = environ.get(OFFLINE_ENV)
    if offline_value is not None:
        config = config.model_copy(update={'offline': offline_value.strip().lower() in _TRUTHY})

    return config


def save_config(layout: DevkitLayout, config: DevkitConfig) -> None:
    """Persist configuration, keeping only values that differ from defaults."""
    data = config.model_dump(exclude_defaults=True)
    atomic_write_text(
        layout.config_file,
        yaml.safe_dump(data, sort_keys=True, default_flow_style=False),
    )
    logger.debug('config_saved', config=str(layout.config_file))


def set_offline(layout: DevkitLayout, *, offline: bool) -> DevkitConfig:
    """Persist the offline flag."""
    current = {}
    if layout.config_file.exists():
        current = _load_yaml_config(layout.config_file)
    current['offline'] = offline
    try:
        config = DevkitConfig.model_validate(current)
    except ValidationError as exc:
        msg = f'invalid devkit configuration in {layout.config_file}'
        raise DevkitConfigError(msg) from exc
    save_config(layout, config)
    return config


__all__ = [
    'CONFIG_FILENAME',
    'DevkitConfig',
    'DevkitLayout',
    'load_config',
    'resolve_root',
    'save_config',
    'set_offline',
]
