"""CLI entry points for native-vault."""

from native_vault.cli import cli


def entrypoint() -> None:
    """Entry point for CLI."""
    cli()
