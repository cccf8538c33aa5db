import logging

import structlog
import yaml
from rich.console import Console
from rich.syntax import Syntax
from structlog.types import FilteringBoundLogger
from structlog.typing import EventDict

# stdout is reserved for shell exports and tables
console = Console(stderr=True)

# Type alias for our logger
Logger = FilteringBoundLogger

HIDDEN_PREFIXES = ('_verbose_', '_debug_')

LEVEL_STYLES = {
    'DEBUG': 'magenta',
    'INFO': 'blue',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'white on red',
}


def format_context_yaml(event_dict: EventDict, indent: int = 2) -> str:
    """Render event context as an indented YAML block, or an empty string."""
    if not event_dict:
        return ''
    context_yaml = yaml.safe_dump(
        event_dict,
        sort_keys=True,
        default_flow_style=False,
    )
    pad = ' ' * indent
    return '\n'.join(f'{pad}{line}' for line in context_yaml.splitlines())


def filter_context_by_prefix(event_dict: EventDict) -> EventDict:
    """Drop verbose-only keys for non-verbose output."""
    return {k: v for k, v in event_dict.items() if not k.startswith(HIDDEN_PREFIXES)}


def strip_prefixes_from_keys(event_dict: EventDict) -> EventDict:
    """Remove verbose-only prefixes so keys read naturally in verbose output."""
    stripped = {}
    for key, value in event_dict.items():
        for prefix in HIDDEN_PREFIXES:
            if key.startswith(prefix):
                key = key[len(prefix) :]
                break
        stripped[key] = value
    return stripped


def _yaml_safe(value: object) -> object:
    if isinstance(value, dict):
        return {str(k): _yaml_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_yaml_safe(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def cli_renderer(
    _logger: Logger,
    method_name: str,
    event_dict: EventDict,
) -> str:
    """Print a log event to stderr with rich and drop it.

    Keys prefixed with _verbose_ or _debug_ are only shown in verbose mode.
    """
    level = method_name.upper()
    event_msg = event_dict.pop('event', '')
    for key in ('level', 'log_level', 'exc_info'):
        event_dict.pop(key, None)

    verbose_mode = logging.getLogger().level <= logging.DEBUG
    if verbose_mode:
        event_dict = strip_prefixes_from_keys(event_dict)
    else:
        event_dict = filter_context_by_prefix(event_dict)

    context_yaml = format_context_yaml(_yaml_safe(event_dict))

    style = LEVEL_STYLES.get(level, 'bold cyan')
    log_msg = f'[bold {style}][{level}][/bold {style}] [{style}]{event_msg}[/{style}]'
    console.print(log_msg)

    if context_yaml:
        syntax = Syntax(
            context_yaml,
            'yaml',
            theme='github-dark',
            background_color='default',
            line_numbers=False,
        )
        console.print(syntax)
    raise structlog.DropEvent


def configure_logging(*, verbose: bool = False) -> None:
    """Route structlog through the rich renderer at INFO, or DEBUG when verbose."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            cli_renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, handlers=[])
    logging.getLogger().setLevel(level)


def get_logger(name: str) -> Logger:
    """Structured logger for a devkit module; pass __name__."""
    return structlog.get_logger(name)
