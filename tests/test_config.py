from pathlib import Path
from textwrap import dedent

import pytest
import yaml

from devkit.config import (
    DEFAULT_CATALOG_URL,
    DevkitConfig,
    DevkitLayout,
    load_config,
    resolve_root,
    save_config,
    set_offline,
)
from devkit.errors import DevkitConfigError


def write_config(layout: DevkitLayout, content: str) -> None:
    layout.config_file.write_text(dedent(content).lstrip())


def test_defaults_without_file(layout: DevkitLayout) -> None:
    config = load_config(layout, environ={})

    assert config == DevkitConfig()
    assert config.catalog_url == DEFAULT_CATALOG_URL
    assert config.offline is False
    assert config.auto_default is True


def test_load_config_overrides(layout: DevkitLayout) -> None:
    write_config(
        layout,
        """
        catalog_url: https://mirror.internal/devkit/index.json
        catalog_ttl_hours: 6
        strict_install: true
        keep_archives: false
        """,
    )

    config = load_config(layout, environ={})

    assert config.catalog_url == 'https://mirror.internal/devkit/index.json'
    assert config.catalog_ttl_hours == 6
    assert config.strict_install is True
    assert config.keep_archives is False


def test_empty_file_uses_defaults(layout: DevkitLayout) -> None:
    write_config(layout, '')
    assert load_config(layout, environ={}) == DevkitConfig()


def test_invalid_yaml(layout: DevkitLayout) -> None:
    write_config(layout, 'catalog_url: [unclosed\n')
    with pytest.raises(DevkitConfigError, match='failed to parse YAML'):
        load_config(layout, environ={})


def test_root_must_be_mapping(layout: DevkitLayout) -> None:
    write_config(layout, '- offline\n')
    with pytest.raises(DevkitConfigError, match='must be a mapping'):
        load_config(layout, environ={})


def test_unknown_key(layout: DevkitLayout) -> None:
    write_config(layout, 'offline_mode: true\n')
    with pytest.raises(DevkitConfigError, match='invalid devkit configuration'):
        load_config(layout, environ={})


def test_invalid_value(layout: DevkitLayout) -> None:
    write_config(layout, 'lock_timeout: -1\n')
    with pytest.raises(DevkitConfigError):
        load_config(layout, environ={})


@pytest.mark.parametrize(
    ('value', 'expected'),
    [('1', True), ('true', True), ('YES', True), ('0', False), ('false', False), ('', False)],
)
def test_offline_env_override(layout: DevkitLayout, value: str, expected: bool) -> None:
    write_config(layout, 'offline: true\n' if not expected else 'offline: false\n')
    config = load_config(layout, environ={'DEVKIT_OFFLINE': value})
    assert config.offline is expected


def test_set_offline_persists(layout: DevkitLayout) -> None:
    write_config(layout, 'catalog_ttl_hours: 12\n')

    set_offline(layout, offline=True)

    saved = yaml.safe_load(layout.config_file.read_text())
    assert saved == {'catalog_ttl_hours': 12.0, 'offline': True}
    assert load_config(layout, environ={}).offline is True

    set_offline(layout, offline=False)
    assert load_config(layout, environ={}).offline is False


def test_save_config_only_changes(layout: DevkitLayout) -> None:
    save_config(layout, DevkitConfig(strict_install=True))
    assert yaml.safe_load(layout.config_file.read_text()) == {'strict_install': True}


def test_resolve_root_precedence(tmp_path: Path) -> None:
    explicit = tmp_path / 'explicit'
    from_env = tmp_path / 'from-env'

    assert resolve_root(explicit, {'DEVKIT_DIR': str(from_env)}) == explicit.resolve()
    assert resolve_root(None, {'DEVKIT_DIR': str(from_env)}) == from_env.resolve()
    assert resolve_root(None, {}) == Path.home() / '.devkit'


def test_layout_paths(layout: DevkitLayout) -> None:
    assert layout.registry_file == layout.root / 'var' / 'registry.json'
    assert layout.version_dir('java', '21') == layout.root / 'candidates' / 'java' / '21'
    assert layout.install_lock('java', '21') == layout.root / 'var' / 'locks' / 'java-21.lock'
    assert layout.session_file('abc') == layout.root / 'var' / 'sessions' / 'abc.json'
    for directory in (layout.candidates_dir, layout.archives_dir, layout.tmp_dir, layout.sessions_dir):
        assert directory.is_dir()
