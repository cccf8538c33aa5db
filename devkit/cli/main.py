"""Main CLI entry point for devkit."""

import argparse
import sys

from devkit.cli.subparsers import register_all
from devkit.errors import DevkitError
from devkit.logging import configure_logging, get_logger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser."""
    parser = argparse.ArgumentParser(
        prog='devkit',
        description='Install and switch between versions of developer SDKs',
    )
    subparsers = parser.add_subparsers(dest='command')
    register_all(subparsers)

    help_parser = subparsers.add_parser('help', help='Show this help message')
    help_parser.add_argument('topic', nargs='?', help='Subcommand to show help for')
    help_parser.set_defaults(handler=None, operation='help')
    return parser


def _print_help(parser: argparse.ArgumentParser, topic: str | None) -> int:
    if topic:
        # argparse prints the subcommand help and exits
        try:
            parser.parse_args([topic, '--help'])
        except SystemExit as exc:
            return int(exc.code or 0)
    parser.print_help()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the devkit CLI."""
    parser = build_parser()
    namespace = parser.parse_args(argv)
    configure_logging(verbose=getattr(namespace, 'verbose', False))

    if namespace.command is None:
        parser.print_help()
        return 1

    handler = getattr(namespace, 'handler', None)
    if handler is None:
        return _print_help(parser, getattr(namespace, 'topic', None))

    operation = getattr(namespace, 'operation', namespace.command)
    try:
        return handler(namespace)
    except DevkitError as exc:
        logger.error('command_failed', operation=operation, error=str(exc), **exc.context())
        sys.stderr.write(f'Error: {exc}\n')
        return exc.exit_code
    except (ValueError, OSError) as exc:
        logger.error('command_failed', operation=operation, error=str(exc))
        sys.stderr.write(f'Error: {exc}\n')
        return 1


if __name__ == '__main__':
    sys.exit(main())
