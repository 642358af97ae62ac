"""Main CLI implementation."""

import asyncio
import platform
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, Optional, TypeVar

import click
import structlog
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from ..audit import setup_logging
from ..config import load_settings
from ..storage import VaultError
from ..store import SecretStore

T = TypeVar("T")

# Initialize logger
logger = structlog.get_logger()
console = Console()

MASK = "********"


def print_table(title: str, rows: list[dict], columns: list[tuple[str, str]]) -> None:
    """Print data in a formatted table.

    Args:
        title: Table title
        rows: List of row dictionaries
        columns: List of (key, header) tuples defining columns
    """
    table = Table(title=title)
    for key, header in columns:
        table.add_column(header, style="cyan")

    for row in rows:
        values = [str(row.get(key, "")) for key, _ in columns]
        table.add_row(*values)

    console.print(table)


def run_operation(coro: Coroutine[Any, Any, T]) -> T:
    """Run a store coroutine, turning its errors into CLI errors."""
    try:
        return asyncio.run(coro)
    except (VaultError, ValueError) as e:
        raise click.ClickException(str(e)) from e


def get_store(ctx: click.Context) -> SecretStore:
    store = ctx.find_object(SecretStore)
    if store is None:
        raise click.ClickException("Secret store is not initialised")
    return store


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level (default: NATIVE_VAULT_LOG_LEVEL or WARNING)",
)
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Also write a rotating log file to this directory",
)
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str], log_dir: Optional[Path]) -> None:
    """native-vault CLI.

    Store and read secrets in the operating system's credential vault.
    """
    overrides = {"log_level": log_level} if log_level else {}
    try:
        settings = load_settings(**overrides)
    except ValidationError as e:
        raise click.ClickException(f"Invalid settings: {e}") from e

    setup_logging(log_level=settings.log_level, base_dir=log_dir)

    if not isinstance(ctx.obj, SecretStore):
        ctx.obj = SecretStore(settings=settings)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the detected backend and whether it can be used."""
    store = get_store(ctx)
    available = store.is_available()
    print_table(
        "Secret Store",
        [
            {
                "system": platform.system() or "unknown",
                "backend": store.kind.value,
                "available": "yes" if available else "no",
            }
        ],
        [("system", "System"), ("backend", "Backend"), ("available", "Available")],
    )


@cli.command(name="set")
@click.argument("service")
@click.argument("account")
@click.option(
    "--stdin",
    "from_stdin",
    is_flag=True,
    help="Read the password from standard input instead of prompting",
)
@click.pass_context
def set_(ctx: click.Context, service: str, account: str, from_stdin: bool) -> None:
    """Store a password for SERVICE and ACCOUNT."""
    if from_stdin:
        password = click.get_text_stream("stdin").read()
        if password.endswith("\n"):
            password = password[:-1]
    else:
        password = click.prompt(
            "Password", hide_input=True, confirmation_prompt=True
        )

    run_operation(get_store(ctx).set_password(service, account, password))
    click.echo(f"Stored password for {service}/{account}")


@cli.command()
@click.argument("service")
@click.argument("account")
@click.pass_context
def get(ctx: click.Context, service: str, account: str) -> None:
    """Print the password for SERVICE and ACCOUNT."""
    secret = run_operation(get_store(ctx).get_password(service, account))
    if secret is None:
        click.echo(f"No password found for {service}/{account}", err=True)
        ctx.exit(1)
    click.echo(secret)


@cli.command()
@click.argument("service")
@click.argument("account")
@click.pass_context
def delete(ctx: click.Context, service: str, account: str) -> None:
    """Delete the password for SERVICE and ACCOUNT."""
    deleted = run_operation(get_store(ctx).delete_password(service, account))
    if deleted:
        click.echo(f"Deleted password for {service}/{account}")
    else:
        click.echo(f"No password stored for {service}/{account}")


@cli.command()
@click.argument("service")
@click.option("--reveal", is_flag=True, help="Show passwords instead of masking them")
@click.pass_context
def find(ctx: click.Context, service: str, reveal: bool) -> None:
    """List every credential stored under SERVICE."""
    credentials = run_operation(get_store(ctx).find_credentials(service))
    rows = [
        {
            "account": c.account,
            "password": c.get_secret() if reveal else MASK,
        }
        for c in credentials
    ]
    print_table(
        f"Credentials for {service}",
        rows,
        [("account", "Account"), ("password", "Password")],
    )
    logger.debug("cli_find_listed", service=service, count=len(rows))
