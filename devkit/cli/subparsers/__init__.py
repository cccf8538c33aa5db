"""Subparser registrations for the devkit CLI."""

import argparse

from . import env, info, install, listing, maintenance, switching, upgrade


def register_all(subparsers: argparse._SubParsersAction) -> None:
    """Register all devkit subcommands."""
    install.register(subparsers)
    listing.register(subparsers)
    switching.register(subparsers)
    env.register(subparsers)
    upgrade.register(subparsers)
    maintenance.register(subparsers)
    info.register(subparsers)
