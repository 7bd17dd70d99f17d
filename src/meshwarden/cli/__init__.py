"""Command line interface."""

from meshwarden.cli.main import cli

__all__ = ["cli"]
