"""Command line interface for devkit."""
