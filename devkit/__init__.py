"""devkit: install and switch between versions of developer SDKs."""

__version__ = '0.1.0'
