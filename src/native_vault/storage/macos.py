"""macOS Keychain backend.

Wraps the ``security`` CLI to store secrets as generic passwords in the
user's default keychain.
"""

import re
from typing import Optional

import structlog

from .base import BackendError, ParseError, SecretBackend, strip_newline

logger = structlog.get_logger(__name__)

SECURITY = "security"

# errSecItemNotFound
ERR_ITEM_NOT_FOUND = 44

GENERIC_PASSWORD_CLASS = "genp"

_STANZA_START = re.compile(r"^keychain:\s")
_CLASS_LINE = re.compile(r"^class:\s*(?P<value>.+?)\s*$")
_ATTRIBUTE_LINE = re.compile(
    r'^\s*(?:"(?P<name>[^"]+)"|0x[0-9A-Fa-f]+\s*)<(?P<type>[^>]*)>=(?P<value>.*?)\s*$'
)
_QUOTED = re.compile(r'"(.*)"')
_HEX_PREFIX = re.compile(r"^0x(?P<hex>[0-9A-Fa-f]+)")


def _attribute_value(raw: str) -> Optional[str]:
    """Decode ``"text"``, ``0x74657874  "text"`` and ``<NULL>`` values.

    Non-ASCII values are printed as hex followed by an octal-escaped
    rendering; the hex bytes are authoritative.
    """
    if raw == "<NULL>":
        return None
    hex_match = _HEX_PREFIX.match(raw)
    if hex_match and len(hex_match.group("hex")) % 2 == 0:
        try:
            return bytes.fromhex(hex_match.group("hex")).decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("keychain_attribute_not_utf8")
    match = _QUOTED.search(raw)
    return match.group(1) if match else None


class _Stanza:
    __slots__ = ("item_class", "service", "account")

    def __init__(self) -> None:
        self.item_class: Optional[str] = None
        self.service: Optional[str] = None
        self.account: Optional[str] = None

    def matches(self, service: str) -> bool:
        if self.item_class is not None and self.item_class != GENERIC_PASSWORD_CLASS:
            return False
        return self.service == service and bool(self.account)


def parse_keychain_dump(text: str, service: str) -> list[str]:
    """Extract accounts stored under ``service`` from ``security dump-keychain``.

    A stanza opens at each ``keychain:`` line (or at a second ``class:``
    line inside one stanza). Items of a class other than generic password
    are ignored. Stanzas without ``svce``/``acct`` are skipped.

    Args:
        text: Raw dump output.
        service: The ``svce`` value to keep.

    Returns:
        Account names in dump order, duplicates removed.

    Raises:
        ParseError: If non-blank input contains no recognisable stanza.
    """
    accounts: list[str] = []
    recognised = False
    stanza: Optional[_Stanza] = None

    def flush() -> None:
        if stanza is not None and stanza.matches(service):
            if stanza.account not in accounts:
                accounts.append(stanza.account)

    for line in text.splitlines():
        line = line.rstrip()
        if _STANZA_START.match(line):
            flush()
            stanza = _Stanza()
            recognised = True
            continue

        class_match = _CLASS_LINE.match(line)
        if class_match:
            recognised = True
            if stanza is None or stanza.item_class is not None:
                flush()
                stanza = _Stanza()
            stanza.item_class = class_match.group("value").strip('"')
            continue

        attribute = _ATTRIBUTE_LINE.match(line)
        if attribute is None:
            continue
        recognised = True
        if stanza is None:
            stanza = _Stanza()
        name = attribute.group("name")
        if name == "svce":
            stanza.service = _attribute_value(attribute.group("value"))
        elif name == "acct":
            stanza.account = _attribute_value(attribute.group("value"))

    flush()

    if text.strip() and not recognised:
        raise ParseError(MacKeychainBackend.name, "no keychain stanzas found")
    return accounts


class MacKeychainBackend(SecretBackend):
    """Secrets in macOS Keychain via the ``security`` CLI."""

    name = "mac-keychain"

    async def set_password(self, service: str, account: str, password: str) -> None:
        # Replace rather than update so the new item gets a fresh access list.
        try:
            await self.delete_password(service, account)
        except BackendError as e:
            logger.debug("keychain_predelete_failed", service=service, account=account, exit_code=e.exit_code)

        result = await self._run(
            SECURITY,
            ["add-generic-password", "-s", service, "-a", account, "-w", password, "-U"],
        )
        if not result.ok:
            raise BackendError.from_result(
                "add-generic-password", result, secrets=(password,)
            )
        logger.debug("keychain_item_stored", service=service, account=account)

    async def get_password(self, service: str, account: str) -> Optional[str]:
        result = await self._run(
            SECURITY, ["find-generic-password", "-s", service, "-a", account, "-w"]
        )
        if result.exit_code == ERR_ITEM_NOT_FOUND:
            return None
        if not result.ok:
            raise BackendError.from_result("find-generic-password", result)
        return strip_newline(result.stdout_text())

    async def delete_password(self, service: str, account: str) -> bool:
        result = await self._run(
            SECURITY, ["delete-generic-password", "-s", service, "-a", account]
        )
        if result.exit_code == ERR_ITEM_NOT_FOUND:
            return False
        if not result.ok:
            raise BackendError.from_result("delete-generic-password", result)
        return True

    async def list_accounts(self, service: str) -> list[str]:
        result = await self._run(
            SECURITY, ["dump-keychain"], timeout=self.settings.list_timeout
        )
        if not result.ok:
            raise BackendError.from_result("dump-keychain", result)
        return parse_keychain_dump(result.stdout_text(), service)
