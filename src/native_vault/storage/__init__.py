"""Cross-platform native secret storage."""

from typing import Optional

from ..config import VaultSettings
from .base import (
    BackendError,
    BackendUnavailableError,
    CommandTimeoutError,
    Credential,
    ParseError,
    SecretBackend,
    SpawnFailureError,
    VaultError,
)
from .executor import CommandExecutor, CommandResult
from .linux import SecretServiceBackend
from .macos import MacKeychainBackend
from .platform import BackendKind, detect_backend, is_available
from .windows import WindowsCredentialBackend

_BACKENDS: dict[BackendKind, type[SecretBackend]] = {
    BackendKind.MAC_KEYCHAIN: MacKeychainBackend,
    BackendKind.WINDOWS_CREDENTIAL_MANAGER: WindowsCredentialBackend,
    BackendKind.LINUX_SECRET_SERVICE: SecretServiceBackend,
}


def get_backend(
    kind: BackendKind,
    executor: CommandExecutor,
    settings: Optional[VaultSettings] = None,
) -> Optional[SecretBackend]:
    """Get the backend implementation for a platform.

    Args:
        kind: Backend kind, usually from :func:`detect_backend`.
        executor: Executor the backend runs its tools through.
        settings: Timeouts and concurrency limits.

    Returns:
        SecretBackend: The platform backend, or None for ``UNSUPPORTED``.
    """
    backend_class = _BACKENDS.get(kind)
    if backend_class is None:
        return None
    return backend_class(executor, settings)


__all__ = [
    "BackendError",
    "BackendKind",
    "BackendUnavailableError",
    "CommandExecutor",
    "CommandResult",
    "CommandTimeoutError",
    "Credential",
    "MacKeychainBackend",
    "ParseError",
    "SecretBackend",
    "SecretServiceBackend",
    "SpawnFailureError",
    "VaultError",
    "WindowsCredentialBackend",
    "detect_backend",
    "get_backend",
    "is_available",
]
