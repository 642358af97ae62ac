"""Command-line interface for native-vault."""

from .cli import cli

__all__ = ["cli"]
