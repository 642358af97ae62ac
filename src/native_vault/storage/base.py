"""Base interfaces and types for native secret storage."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, ClassVar, Optional

import structlog
from pydantic import BaseModel, ConfigDict, SecretStr

from ..config import VaultSettings

if TYPE_CHECKING:
    from .executor import CommandExecutor, CommandResult

logger = structlog.get_logger(__name__)

REDACTED = "***"
_MAX_DETAIL_LENGTH = 200


class Credential(BaseModel):
    """A secret read back from the OS vault.

    The password is held as a ``SecretStr`` so that ``repr()``, ``str()`` and
    JSON dumps of a credential never show it.
    """

    model_config = ConfigDict(frozen=True)

    service: str
    account: str
    password: SecretStr

    def get_secret(self) -> str:
        """Get the plaintext secret."""
        return self.password.get_secret_value()


class VaultError(Exception):
    """Base exception for secret store operations."""


class BackendUnavailableError(VaultError):
    """The native tool is missing or the platform has no supported vault."""

    def __init__(self, backend: str, reason: str = "") -> None:
        self.backend = backend
        self.reason = reason
        message = f"Secret store backend unavailable: {backend}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class SpawnFailureError(VaultError):
    """The OS could not start the child process at all."""

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"Failed to start {command}: {reason}")


class CommandTimeoutError(VaultError):
    """The child process ran past its timeout and was killed."""

    def __init__(self, command: str, timeout: float) -> None:
        self.command = command
        self.timeout = timeout
        super().__init__(f"{command} timed out after {timeout:g}s")


class BackendError(VaultError):
    """The native tool ran but reported a failure other than "not found"."""

    def __init__(
        self, operation: str, exit_code: Optional[int] = None, detail: str = ""
    ) -> None:
        self.operation = operation
        self.exit_code = exit_code
        self.detail = detail
        message = f"{operation} failed"
        if exit_code is not None:
            message += f" with exit code {exit_code}"
        if detail:
            message += f": {detail}"
        super().__init__(message)

    @classmethod
    def from_result(
        cls,
        operation: str,
        result: "CommandResult",
        secrets: Iterable[str] = (),
    ) -> "BackendError":
        """Build an error from a failed command, keeping only a stderr excerpt.

        stdout is never used: lookups print the secret there.

        Args:
            operation: Human readable operation name, e.g. "add-generic-password".
            result: The failed command result.
            secrets: Values to mask if the tool echoed them on stderr.
        """
        return cls(operation, result.exit_code, excerpt(result.stderr_text(), secrets))


class ParseError(VaultError):
    """A vault listing did not match the expected stanza/block format."""

    def __init__(self, backend: str, reason: str) -> None:
        self.backend = backend
        self.reason = reason
        super().__init__(f"Unparseable {backend} listing: {reason}")


def redact(text: str, secrets: Iterable[str]) -> str:
    """Replace every occurrence of each non-empty secret with ``***``."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return text


def excerpt(text: str, secrets: Iterable[str] = ()) -> str:
    """First non-blank line of tool output, redacted and length-capped."""
    line = next((ln.strip() for ln in text.splitlines() if ln.strip()), "")
    line = redact(line, secrets)
    if len(line) > _MAX_DETAIL_LENGTH:
        line = line[:_MAX_DETAIL_LENGTH] + "..."
    return line


def dedupe(accounts: Iterable[str]) -> list[str]:
    """Drop repeated account names, keeping the first occurrence."""
    return list(dict.fromkeys(accounts))


def strip_newline(text: str) -> str:
    """Remove the single line terminator a tool appends to its output."""
    if text.endswith("\r\n"):
        return text[:-2]
    if text.endswith("\n"):
        return text[:-1]
    return text


class SecretBackend(ABC):
    """One platform's implementation of the set/get/delete/find contract.

    Backends never check availability themselves; the facade does that
    before any call reaches them.
    """

    name: ClassVar[str] = "abstract"

    def __init__(
        self,
        executor: "CommandExecutor",
        settings: Optional[VaultSettings] = None,
    ) -> None:
        self._executor = executor
        self.settings = settings or VaultSettings()

    async def _run(
        self,
        command: str,
        args: Sequence[str],
        *,
        stdin: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> "CommandResult":
        return await self._executor.run(
            command,
            args,
            stdin=stdin,
            timeout=self.settings.command_timeout if timeout is None else timeout,
        )

    @abstractmethod
    async def set_password(self, service: str, account: str, password: str) -> None:
        """Create or replace the secret for ``(service, account)``.

        Raises:
            BackendError: If the tool exits non-zero.
            SpawnFailureError: If the tool cannot be started.
            CommandTimeoutError: If the tool does not finish in time.
        """

    @abstractmethod
    async def get_password(self, service: str, account: str) -> Optional[str]:
        """Return the secret, or None when the vault reports no such entry.

        Raises:
            BackendError: For any failure that is not the named not-found signal.
            SpawnFailureError: If the tool cannot be started.
            CommandTimeoutError: If the tool does not finish in time.
        """

    @abstractmethod
    async def delete_password(self, service: str, account: str) -> bool:
        """Remove the entry. True if removed, False if it did not exist."""

    @abstractmethod
    async def list_accounts(self, service: str) -> list[str]:
        """List account names stored under ``service``.

        Raises:
            ParseError: If the listing cannot be interpreted.
        """

    async def find_credentials(self, service: str) -> list[Credential]:
        """Return every readable credential stored under ``service``.

        One listing call, then one lookup per account with bounded
        parallelism. An account whose lookup fails is skipped, never fatal.
        """
        try:
            accounts = dedupe(await self.list_accounts(service))
        except ParseError as e:
            logger.warning(
                "listing_unparseable",
                backend=self.name,
                service=service,
                reason=e.reason,
            )
            return []

        if not accounts:
            return []

        semaphore = asyncio.Semaphore(self.settings.max_concurrent_lookups)

        async def fetch(account: str) -> Optional[Credential]:
            async with semaphore:
                try:
                    secret = await self.get_password(service, account)
                except VaultError as e:
                    logger.warning(
                        "credential_fetch_skipped",
                        backend=self.name,
                        service=service,
                        account=account,
                        error=type(e).__name__,
                    )
                    return None
            if secret is None:
                logger.info(
                    "credential_fetch_skipped",
                    backend=self.name,
                    service=service,
                    account=account,
                    error="not_found",
                )
                return None
            return Credential(service=service, account=account, password=secret)

        results = await asyncio.gather(*(fetch(account) for account in accounts))
        found = [credential for credential in results if credential is not None]
        logger.debug(
            "found_credentials",
            backend=self.name,
            service=service,
            listed=len(accounts),
            count=len(found),
        )
        return found
