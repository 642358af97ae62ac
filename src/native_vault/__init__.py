"""
native-vault: store secrets in the operating system's own credential vault.

Secrets go to macOS Keychain, Windows Credential Manager or the freedesktop
Secret Service by driving each platform's command line tool, so no native
extension or daemon of our own is needed.
"""

from .config import VaultSettings, load_settings
from .storage import (
    BackendError,
    BackendKind,
    BackendUnavailableError,
    CommandTimeoutError,
    Credential,
    ParseError,
    SpawnFailureError,
    VaultError,
)
from .store import (
    SecretStore,
    delete_password,
    find_credentials,
    get_default_store,
    get_password,
    is_keychain_available,
    set_password,
)

__version__ = "1.0.0"

__all__ = [
    "BackendError",
    "BackendKind",
    "BackendUnavailableError",
    "CommandTimeoutError",
    "Credential",
    "ParseError",
    "SecretStore",
    "SpawnFailureError",
    "VaultError",
    "VaultSettings",
    "delete_password",
    "find_credentials",
    "get_default_store",
    "get_password",
    "is_keychain_available",
    "load_settings",
    "set_password",
]
