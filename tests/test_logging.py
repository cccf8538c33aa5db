"""Tests for devkit logging functionality."""

import logging
from pathlib import Path

import pytest
import structlog

from devkit.logging import (
    cli_renderer,
    configure_logging,
    filter_context_by_prefix,
    format_context_yaml,
    get_logger,
    strip_prefixes_from_keys,
)


class TestFormatContextYaml:
    """Tests for format_context_yaml function."""

    def test_format_context_yaml_empty(self) -> None:
        """Test formatting an empty event dict."""
        assert format_context_yaml({}, indent=0) == ''

    def test_format_context_yaml_with_data(self) -> None:
        """Test formatting an event dict with data."""
        result = format_context_yaml({'candidate': 'java', 'removed': 3}, indent=2)

        assert 'candidate: java' in result
        assert 'removed: 3' in result
        assert result.startswith('  ')


class TestFilterContextByPrefix:
    """Tests for filter_context_by_prefix function."""

    def test_filter_verbose_prefix(self) -> None:
        """Test filtering _verbose_ and _debug_ keys in non-verbose mode."""
        event_dict = {
            '_verbose_path': '/opt/devkit/candidates/java/21',
            'candidate': 'java',
            '_debug_staging': '/opt/devkit/tmp/java-21-x',
        }

        result = filter_context_by_prefix(event_dict)

        assert result == {'candidate': 'java'}


class TestStripPrefixesFromKeys:
    """Tests for strip_prefixes_from_keys function."""

    def test_strip_prefixes(self) -> None:
        """Test stripping hidden prefixes in verbose mode."""
        event_dict = {
            '_verbose_session': 'abc',
            '_debug_staging': '/tmp/x',
            'version': '21',
        }

        result = strip_prefixes_from_keys(event_dict)

        assert result == {'session': 'abc', 'staging': '/tmp/x', 'version': '21'}


class TestCliRenderer:
    """Tests for the rich CLI renderer."""

    def test_renders_event_and_context(self, capsys: pytest.CaptureFixture) -> None:
        """Test that the event goes to stderr and the call is dropped."""
        logging.getLogger().setLevel(logging.INFO)

        with pytest.raises(structlog.DropEvent):
            cli_renderer(
                None,
                'warning',
                {'event': 'catalog_unavailable', 'path': Path('/tmp/x'), '_verbose_url': 'https://x'},
            )

        captured = capsys.readouterr()
        assert captured.out == ''
        assert '[WARNING] catalog_unavailable' in captured.err
        assert 'path: /tmp/x' in captured.err
        assert 'url' not in captured.err

    def test_verbose_shows_hidden_keys(self, capsys: pytest.CaptureFixture) -> None:
        """Test that verbose mode shows prefixed keys without their prefix."""
        logging.getLogger().setLevel(logging.DEBUG)
        try:
            with pytest.raises(structlog.DropEvent):
                cli_renderer(None, 'debug', {'event': 'downloading', '_verbose_target': 'archive.tar.gz'})
        finally:
            logging.getLogger().setLevel(logging.INFO)

        assert 'target: archive.tar.gz' in capsys.readouterr().err


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_configure_logging_verbose(self) -> None:
        """Test configuring logging with verbose=True."""
        logging.getLogger().handlers.clear()

        configure_logging(verbose=True)

        assert logging.getLogger().level == logging.DEBUG

    def test_configure_logging_non_verbose(self) -> None:
        """Test configuring logging with verbose=False."""
        logging.getLogger().handlers.clear()

        configure_logging(verbose=False)

        assert logging.getLogger().level == logging.INFO


class TestGetLogger:
    """Tests for get_logger function."""

    def test_get_logger_returns_logger(self) -> None:
        """Test that get_logger returns a logger instance."""
        logger = get_logger('test_module')
        assert hasattr(logger, 'info')
        assert hasattr(logger, 'warning')
        assert hasattr(logger, 'debug')
