"""Platform detection and native tool availability checks."""

import platform as _platform
from enum import Enum
from typing import Optional

import structlog

from .base import VaultError
from .executor import CommandExecutor

logger = structlog.get_logger(__name__)


class BackendKind(str, Enum):
    """The vault family used on this machine."""

    MAC_KEYCHAIN = "mac-keychain"
    WINDOWS_CREDENTIAL_MANAGER = "windows-credential-manager"
    LINUX_SECRET_SERVICE = "linux-secret-service"
    UNSUPPORTED = "unsupported"


_SYSTEM_BACKENDS = {
    "darwin": BackendKind.MAC_KEYCHAIN,
    "windows": BackendKind.WINDOWS_CREDENTIAL_MANAGER,
    "linux": BackendKind.LINUX_SECRET_SERVICE,
}

REQUIRED_BINARIES: dict[BackendKind, tuple[str, ...]] = {
    BackendKind.MAC_KEYCHAIN: ("security",),
    BackendKind.WINDOWS_CREDENTIAL_MANAGER: ("cmdkey", "powershell"),
    BackendKind.LINUX_SECRET_SERVICE: ("secret-tool",),
    BackendKind.UNSUPPORTED: (),
}


def detect_backend(system: Optional[str] = None) -> BackendKind:
    """Map the operating system to a backend kind.

    Args:
        system: OS name as reported by ``platform.system()``; detected when None.

    Returns:
        The matching kind, or ``UNSUPPORTED``.
    """
    if system is None:
        system = _platform.system()
    return _SYSTEM_BACKENDS.get(system.lower(), BackendKind.UNSUPPORTED)


def locator_command(kind: BackendKind) -> str:
    """The "where is this tool" command for the backend's OS."""
    return "where" if kind is BackendKind.WINDOWS_CREDENTIAL_MANAGER else "which"


def is_available(
    kind: BackendKind, executor: CommandExecutor, timeout: float = 1.0
) -> bool:
    """Check that every native binary the backend needs can be located.

    This does not prove a keyring daemon is running or unlocked; that shows
    up later as a normal operation error.
    """
    binaries = REQUIRED_BINARIES[kind]
    if not binaries:
        return False

    locator = locator_command(kind)
    for binary in binaries:
        try:
            result = executor.run_sync(locator, [binary], timeout=timeout)
        except VaultError as e:
            logger.debug("probe_failed", backend=kind.value, binary=binary, error=type(e).__name__)
            return False
        if not result.ok:
            logger.debug("probe_missing_binary", backend=kind.value, binary=binary)
            return False
    return True
