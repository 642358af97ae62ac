"""Linux credential storage using libsecret.

Items are stored through ``secret-tool`` with two lookup attributes,
``service`` and ``account``. Any Secret Service provider works
(GNOME Keyring, KWallet's bridge, KeePassXC).
"""

from typing import Optional

import structlog

from .base import BackendError, ParseError, SecretBackend, strip_newline
from .executor import CommandResult

logger = structlog.get_logger(__name__)

SECRET_TOOL = "secret-tool"

SERVICE_ATTRIBUTE = "service"
ACCOUNT_ATTRIBUTE = "account"
_ATTRIBUTE_PREFIX = "attribute."


def item_label(service: str, account: str) -> str:
    """Human readable label shown by keyring managers such as Seahorse."""
    return f"{service} - {account}"


def _stanzas(text: str) -> list[dict[str, str]]:
    """Split ``key = value`` output into blank-line separated stanzas."""
    stanzas: list[dict[str, str]] = []
    current: dict[str, str] = {}
    for line in text.splitlines():
        if not line.strip():
            if current:
                stanzas.append(current)
                current = {}
            continue
        key, separator, value = line.partition("=")
        if not separator:
            # Item path headers such as "[/org/freedesktop/secrets/...]".
            continue
        current[key.strip()] = value.strip()
    if current:
        stanzas.append(current)
    return stanzas


def parse_secret_tool_search(text: str, service: str) -> list[str]:
    """Extract accounts stored under ``service`` from ``secret-tool search``.

    Raises:
        ParseError: If non-blank input contains no ``key = value`` lines.
    """
    stanzas = _stanzas(text)
    if text.strip() and not stanzas:
        raise ParseError(SecretServiceBackend.name, "no key/value lines found")

    accounts: list[str] = []
    for stanza in stanzas:
        if stanza.get(_ATTRIBUTE_PREFIX + SERVICE_ATTRIBUTE) != service:
            continue
        account = stanza.get(_ATTRIBUTE_PREFIX + ACCOUNT_ATTRIBUTE)
        if account and account not in accounts:
            accounts.append(account)
    return accounts


def regroup_attribute_lines(text: str) -> str:
    """Rebuild per-item stanzas from the ``attribute.*`` lines on stderr.

    secret-tool writes the item attributes to stderr without separators.
    A repeated attribute name starts the next item.
    """
    blocks: list[list[str]] = []
    seen: set[str] = set()
    for line in text.splitlines():
        key, separator, _ = line.partition("=")
        key = key.strip()
        if not separator or not key.startswith(_ATTRIBUTE_PREFIX):
            continue
        if not blocks or key in seen:
            blocks.append([])
            seen = set()
        seen.add(key)
        blocks[-1].append(line.strip())
    return "\n\n".join("\n".join(block) for block in blocks)


def _has_attributes(text: str) -> bool:
    return any(
        line.strip().startswith(_ATTRIBUTE_PREFIX) for line in text.splitlines()
    )


def _is_silent_miss(result: CommandResult) -> bool:
    """secret-tool exits 1 without a message when nothing matched."""
    return result.exit_code == 1 and not result.stderr_text().strip()


class SecretServiceBackend(SecretBackend):
    """Secrets in the freedesktop Secret Service via ``secret-tool``."""

    name = "linux-secret-service"

    async def set_password(self, service: str, account: str, password: str) -> None:
        result = await self._run(
            SECRET_TOOL,
            [
                "store",
                f"--label={item_label(service, account)}",
                SERVICE_ATTRIBUTE,
                service,
                ACCOUNT_ATTRIBUTE,
                account,
            ],
            stdin=password,
        )
        if not result.ok:
            raise BackendError.from_result("secret-tool store", result, secrets=(password,))
        logger.debug("secret_service_item_stored", service=service, account=account)

    async def get_password(self, service: str, account: str) -> Optional[str]:
        result = await self._run(
            SECRET_TOOL,
            ["lookup", SERVICE_ATTRIBUTE, service, ACCOUNT_ATTRIBUTE, account],
        )
        if result.ok:
            if not result.stdout:
                return None
            return strip_newline(result.stdout_text())
        if _is_silent_miss(result):
            return None
        raise BackendError.from_result("secret-tool lookup", result)

    async def delete_password(self, service: str, account: str) -> bool:
        # clear exits 0 whether or not anything matched.
        if await self.get_password(service, account) is None:
            return False

        result = await self._run(
            SECRET_TOOL,
            ["clear", SERVICE_ATTRIBUTE, service, ACCOUNT_ATTRIBUTE, account],
        )
        if not result.ok:
            raise BackendError.from_result("secret-tool clear", result)
        logger.debug("secret_service_item_cleared", service=service, account=account)
        return True

    async def list_accounts(self, service: str) -> list[str]:
        result = await self._run(
            SECRET_TOOL,
            ["search", "--all", SERVICE_ATTRIBUTE, service],
            timeout=self.settings.list_timeout,
        )
        if _is_silent_miss(result):
            return []
        if not result.ok:
            raise BackendError.from_result("secret-tool search", result)

        stdout = result.stdout_text()
        if _has_attributes(stdout):
            return parse_secret_tool_search(stdout, service)

        stderr = result.stderr_text()
        if _has_attributes(stderr):
            return parse_secret_tool_search(regroup_attribute_lines(stderr), service)
        return parse_secret_tool_search(stdout, service)
