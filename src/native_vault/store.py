"""Platform-neutral secret store.

:class:`SecretStore` picks the backend for the running OS, checks once that
its native tool exists, and turns "no usable vault" into quiet defaults for
reads and a hard error for writes. The module-level functions use one
shared default store.
"""

import asyncio
import threading
from functools import lru_cache
from typing import Optional

import structlog

from .audit import EventType, audit_event
from .config import VaultSettings, load_settings
from .storage import (
    BackendKind,
    BackendUnavailableError,
    CommandExecutor,
    Credential,
    SecretBackend,
    VaultError,
    detect_backend,
    get_backend,
    is_available,
)

logger = structlog.get_logger(__name__)


def _require_text(name: str, value: str) -> None:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{name} must be a non-empty string")


class SecretStore:
    """Store, read, delete and enumerate secrets in the OS vault.

    Args:
        kind: Backend kind. Detected from the running OS when None.
        executor: Runs the native tools. A default executor is built when None.
        settings: Timeouts and limits. Loaded from the environment when None.
        backend: Pre-built backend, mainly for tests.
    """

    def __init__(
        self,
        kind: Optional[BackendKind] = None,
        executor: Optional[CommandExecutor] = None,
        settings: Optional[VaultSettings] = None,
        backend: Optional[SecretBackend] = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.kind = kind if kind is not None else detect_backend()
        self._executor = executor or CommandExecutor(self.settings.command_timeout)
        self._backend = (
            backend
            if backend is not None
            else get_backend(self.kind, self._executor, self.settings)
        )
        self._available: Optional[bool] = None
        self._probe_lock = threading.Lock()

    @property
    def backend(self) -> Optional[SecretBackend]:
        return self._backend

    def is_available(self) -> bool:
        """Whether the backend's native tools are installed.

        Probed once per store; later calls return the cached answer.
        """
        with self._probe_lock:
            if self._available is None:
                if self._backend is None:
                    self._available = False
                else:
                    self._available = is_available(
                        self.kind, self._executor, self.settings.probe_timeout
                    )
                audit_event(
                    event_type=EventType.BACKEND_PROBE,
                    user="",
                    success=self._available,
                    details={"backend": self.kind.value},
                )
            return self._available

    def require_available(self) -> SecretBackend:
        """Return the backend, or raise if it cannot be used.

        Raises:
            BackendUnavailableError: If the platform is unsupported or the tool is missing.
        """
        if self._backend is None:
            raise BackendUnavailableError(self.kind.value, "unsupported platform")
        if not self.is_available():
            raise BackendUnavailableError(self.kind.value, "native tool not found")
        return self._backend

    async def _ready(self) -> bool:
        if self._available is None and self._backend is not None:
            # The probe blocks on a child process; keep it off the event loop.
            return await asyncio.to_thread(self.is_available)
        return self.is_available()

    async def set_password(self, service: str, account: str, password: str) -> None:
        """Create or replace the secret for ``(service, account)``.

        Raises:
            ValueError: If service or account is empty, or password is not a string.
            BackendUnavailableError: If there is no usable vault.
            VaultError: If the native tool fails.
        """
        _require_text("service", service)
        _require_text("account", account)
        if not isinstance(password, str):
            raise ValueError("password must be a string")

        details = {"service": service, "backend": self.kind.value}
        try:
            await self._ready()
            backend = self.require_available()
            await backend.set_password(service, account, password)
        except VaultError as e:
            audit_event(
                event_type=EventType.CRED_CREATE,
                user=account,
                success=False,
                details=details,
                error=e,
            )
            raise

        audit_event(
            event_type=EventType.CRED_CREATE, user=account, success=True, details=details
        )

    async def get_password(self, service: str, account: str) -> Optional[str]:
        """Return the secret, or None if absent or no vault is usable.

        Raises:
            ValueError: If service or account is empty.
            VaultError: On tool failure while ``strict_reads`` is enabled.
        """
        _require_text("service", service)
        _require_text("account", account)

        if not await self._ready():
            logger.debug("get_password_unavailable", backend=self.kind.value)
            return None

        details = {"service": service, "backend": self.kind.value}
        try:
            secret = await self._backend.get_password(service, account)
        except VaultError as e:
            audit_event(
                event_type=EventType.CRED_READ,
                user=account,
                success=False,
                details=details,
                error=e,
            )
            if self.settings.strict_reads:
                raise
            logger.warning(
                "credential_read_failed",
                backend=self.kind.value,
                service=service,
                account=account,
                error=type(e).__name__,
            )
            return None

        audit_event(
            event_type=EventType.CRED_READ,
            user=account,
            success=True,
            details={**details, "found": secret is not None},
        )
        return secret

    async def delete_password(self, service: str, account: str) -> bool:
        """Remove the entry. True if it existed, False otherwise."""
        _require_text("service", service)
        _require_text("account", account)

        if not await self._ready():
            logger.debug("delete_password_unavailable", backend=self.kind.value)
            return False

        details = {"service": service, "backend": self.kind.value}
        try:
            deleted = await self._backend.delete_password(service, account)
        except VaultError as e:
            audit_event(
                event_type=EventType.CRED_DELETE,
                user=account,
                success=False,
                details=details,
                error=e,
            )
            raise

        audit_event(
            event_type=EventType.CRED_DELETE,
            user=account,
            success=True,
            details={**details, "deleted": deleted},
        )
        return deleted

    async def find_credentials(self, service: str) -> list[Credential]:
        """Return every readable credential stored under ``service``.

        Accounts whose secret cannot be read are left out. Errors from the
        listing call itself propagate.
        """
        _require_text("service", service)

        if not await self._ready():
            logger.debug("find_credentials_unavailable", backend=self.kind.value)
            return []

        details = {"service": service, "backend": self.kind.value}
        try:
            found = await self._backend.find_credentials(service)
        except VaultError as e:
            audit_event(
                event_type=EventType.CRED_LIST,
                user="",
                success=False,
                details=details,
                error=e,
            )
            raise

        audit_event(
            event_type=EventType.CRED_LIST,
            user="",
            success=True,
            details={**details, "count": len(found)},
        )
        return found


@lru_cache(maxsize=None)
def get_default_store() -> SecretStore:
    """The process-wide store used by the module-level functions."""
    return SecretStore()


def is_keychain_available() -> bool:
    """Whether the OS vault can be used on this machine."""
    return get_default_store().is_available()


async def set_password(service: str, account: str, password: str) -> None:
    await get_default_store().set_password(service, account, password)


async def get_password(service: str, account: str) -> Optional[str]:
    return await get_default_store().get_password(service, account)


async def delete_password(service: str, account: str) -> bool:
    return await get_default_store().delete_password(service, account)


async def find_credentials(service: str) -> list[Credential]:
    return await get_default_store().find_credentials(service)
