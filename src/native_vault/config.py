"""Runtime settings for native-vault.

Settings come from model defaults, overridden by ``NATIVE_VAULT_*``
environment variables, overridden in turn by explicit keyword arguments
(e.g. ``NATIVE_VAULT_COMMAND_TIMEOUT=5``).
"""

import os
from typing import Any, Literal

from pydantic import BaseModel, Field

ENV_PREFIX = "NATIVE_VAULT_"


class VaultSettings(BaseModel):
    """Timeouts, concurrency and read policy for the secret store."""

    # Seconds allowed for a single set/get/delete invocation.
    command_timeout: float = Field(default=3.0, gt=0)
    # Listing a whole vault (dump-keychain, cmdkey /list) is slower.
    list_timeout: float = Field(default=6.0, gt=0)
    # Locating the native binary ("which security").
    probe_timeout: float = Field(default=1.0, gt=0)
    # Upper bound on parallel per-account lookups during find.
    max_concurrent_lookups: int = Field(default=4, ge=1)
    # When False, get_password() maps backend failures to None instead of raising.
    strict_reads: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"


def _collect_env_overrides(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Collect NATIVE_VAULT_* variables keyed by lower-cased field name.

    Values are left as strings; pydantic coerces them on validation.
    """
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field = key[len(ENV_PREFIX):].lower()
        if field in VaultSettings.model_fields:
            overrides[field] = value
    return overrides


def load_settings(
    environ: dict[str, str] | None = None, **overrides: Any
) -> VaultSettings:
    """Load settings with layered precedence: defaults < env vars < overrides.

    Args:
        environ: Environment mapping to read; defaults to ``os.environ``.
        **overrides: Explicit field values that win over everything else.

    Returns:
        Validated settings.

    Raises:
        pydantic.ValidationError: If any layer supplies an invalid value.
    """
    data = _collect_env_overrides(environ)
    data.update(overrides)
    if isinstance(data.get("log_level"), str):
        data["log_level"] = data["log_level"].upper()
    return VaultSettings.model_validate(data)
