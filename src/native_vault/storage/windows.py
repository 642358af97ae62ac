"""Windows credential storage using Windows Credential Manager.

Listing and deletion go through ``cmdkey``. ``cmdkey`` cannot reveal a
stored secret and only accepts one on the command line, so reads and writes
go through a small PowerShell helper that calls ``CredRead``/``CredWrite``
in advapi32. The secret crosses the process boundary base64-encoded on
stdin or stdout, never in argv.
"""

import base64
import binascii
import re
from typing import Optional

import structlog

from .base import BackendError, ParseError, SecretBackend
from .executor import CommandResult

logger = structlog.get_logger(__name__)

CMDKEY = "cmdkey"
POWERSHELL = "powershell"

# Exit codes of the PowerShell helper.
HELPER_EXIT_NOT_FOUND = 2
# Win32 ERROR_NOT_FOUND, reported by CredRead for a missing target.
WIN32_ERROR_NOT_FOUND = 1168

TARGET_SEPARATOR = ":"

_TARGET_KIND_PREFIX = re.compile(r"^[A-Za-z]+:target=")

_POWERSHELL_FLAGS = ("-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass")

_CREDENTIAL_TYPE = r'''
Add-Type -TypeDefinition @"
using System;
using System.Runtime.InteropServices;
using System.Text;

public static class NativeVaultCredential {
    [StructLayout(LayoutKind.Sequential, CharSet = CharSet.Unicode)]
    private struct CREDENTIAL {
        public int Flags;
        public int Type;
        public string TargetName;
        public string Comment;
        public System.Runtime.InteropServices.ComTypes.FILETIME LastWritten;
        public int CredentialBlobSize;
        public IntPtr CredentialBlob;
        public int Persist;
        public int AttributeCount;
        public IntPtr Attributes;
        public string TargetAlias;
        public string UserName;
    }

    [DllImport("advapi32.dll", CharSet = CharSet.Unicode, SetLastError = true)]
    private static extern bool CredRead(string target, int type, int flags, out IntPtr credential);

    [DllImport("advapi32.dll", CharSet = CharSet.Unicode, SetLastError = true)]
    private static extern bool CredWrite(ref CREDENTIAL credential, int flags);

    [DllImport("advapi32.dll")]
    private static extern void CredFree(IntPtr buffer);

    public static int Read(string target, out string secret) {
        secret = null;
        IntPtr ptr;
        if (!CredRead(target, 1, 0, out ptr)) {
            return Marshal.GetLastWin32Error();
        }
        try {
            CREDENTIAL cred = (CREDENTIAL)Marshal.PtrToStructure(ptr, typeof(CREDENTIAL));
            secret = cred.CredentialBlobSize > 0
                ? Marshal.PtrToStringUni(cred.CredentialBlob, cred.CredentialBlobSize / 2)
                : "";
        } finally {
            CredFree(ptr);
        }
        return 0;
    }

    public static int Write(string target, string user, string secret) {
        byte[] blob = Encoding.Unicode.GetBytes(secret);
        CREDENTIAL cred = new CREDENTIAL();
        cred.Type = 1;
        cred.TargetName = target;
        cred.UserName = user;
        cred.Persist = 2;
        cred.CredentialBlobSize = blob.Length;
        cred.CredentialBlob = Marshal.AllocCoTaskMem(Math.Max(blob.Length, 1));
        try {
            Marshal.Copy(blob, 0, cred.CredentialBlob, blob.Length);
            if (!CredWrite(ref cred, 0)) {
                return Marshal.GetLastWin32Error();
            }
        } finally {
            Marshal.FreeCoTaskMem(cred.CredentialBlob);
        }
        return 0;
    }
}
"@
'''

_READ_SCRIPT = (
    "$ErrorActionPreference = 'Stop'\n"
    + _CREDENTIAL_TYPE
    + """
$secret = $null
$code = [NativeVaultCredential]::Read(__TARGET__, [ref]$secret)
if ($code -eq __NOT_FOUND_CODE__) { exit __NOT_FOUND_EXIT__ }
if ($code -ne 0) { [Console]::Error.WriteLine("CredRead failed with Win32 error $code"); exit 1 }
[Console]::Out.Write([Convert]::ToBase64String([Text.Encoding]::UTF8.GetBytes($secret)))
exit 0
"""
)

_WRITE_SCRIPT = (
    "$ErrorActionPreference = 'Stop'\n"
    + _CREDENTIAL_TYPE
    + """
$encoded = [Console]::In.ReadToEnd().Trim()
$secret = [Text.Encoding]::UTF8.GetString([Convert]::FromBase64String($encoded))
$code = [NativeVaultCredential]::Write(__TARGET__, __USER__, $secret)
if ($code -ne 0) { [Console]::Error.WriteLine("CredWrite failed with Win32 error $code"); exit 1 }
exit 0
"""
)

_TARGET_LINE = re.compile(r"^\s*Target:\s*(?P<target>.+?)\s*$")
_LISTING_HEADER = "Currently stored credentials"
_EMPTY_MARKER = "* NONE *"
# PowerShell treats typographic single quotes as quote characters too.
_PS_SINGLE_QUOTES = re.compile("['‘’‚‛]")


def target_name(service: str, account: str) -> str:
    """Credential Manager target for a ``(service, account)`` pair."""
    return f"{service}{TARGET_SEPARATOR}{account}"


def ps_quote(value: str) -> str:
    """Quote ``value`` as a PowerShell single-quoted string literal."""
    return "'" + _PS_SINGLE_QUOTES.sub(lambda m: m.group(0) * 2, value) + "'"


def encode_command(script: str) -> str:
    """Encode a script for ``powershell -EncodedCommand``."""
    return base64.b64encode(script.encode("utf-16-le")).decode("ascii")


def read_script(target: str) -> str:
    return (
        _READ_SCRIPT.replace("__TARGET__", ps_quote(target))
        .replace("__NOT_FOUND_CODE__", str(WIN32_ERROR_NOT_FOUND))
        .replace("__NOT_FOUND_EXIT__", str(HELPER_EXIT_NOT_FOUND))
    )


def write_script(target: str, user: str) -> str:
    return _WRITE_SCRIPT.replace("__TARGET__", ps_quote(target)).replace(
        "__USER__", ps_quote(user)
    )


def normalize_target(raw: str) -> str:
    """Strip the ``LegacyGeneric:target=``-style prefix newer cmdkey prints."""
    match = _TARGET_KIND_PREFIX.match(raw)
    return raw[match.end():] if match else raw


def parse_cmdkey_list(text: str, service: str) -> list[str]:
    """Extract accounts stored under ``service`` from ``cmdkey /list``.

    Each ``Target:`` line opens a block; the indented ``Type:``/``User:``
    lines that follow are metadata and ignored. Targets have the form
    ``service:account``.

    Raises:
        ParseError: If non-blank input has neither targets nor the listing header.
    """
    accounts: list[str] = []
    recognised = False
    prefix = f"{service}{TARGET_SEPARATOR}"

    for line in text.splitlines():
        match = _TARGET_LINE.match(line)
        if match is None:
            stripped = line.strip()
            if stripped.startswith(_LISTING_HEADER) or stripped == _EMPTY_MARKER:
                recognised = True
            continue

        recognised = True
        target = normalize_target(match.group("target"))
        if not target.startswith(prefix):
            continue
        account = target[len(prefix):]
        if account and account not in accounts:
            accounts.append(account)

    if text.strip() and not recognised:
        raise ParseError(WindowsCredentialBackend.name, "no Target entries found")
    return accounts


def _says_not_found(result: CommandResult) -> bool:
    output = f"{result.stdout_text()}\n{result.stderr_text()}".lower()
    return "not found" in output


class WindowsCredentialBackend(SecretBackend):
    """Secrets in Windows Credential Manager as generic credentials."""

    name = "windows-credential-manager"

    async def _powershell(self, script: str, stdin: Optional[str] = None) -> CommandResult:
        # PowerShell start-up plus Add-Type compilation exceeds command_timeout.
        return await self._run(
            POWERSHELL,
            [*_POWERSHELL_FLAGS, "-EncodedCommand", encode_command(script)],
            stdin=stdin,
            timeout=self.settings.list_timeout,
        )

    async def set_password(self, service: str, account: str, password: str) -> None:
        encoded = base64.b64encode(password.encode("utf-8")).decode("ascii")
        result = await self._powershell(
            write_script(target_name(service, account), account), stdin=encoded
        )
        if not result.ok:
            raise BackendError.from_result("CredWrite", result, secrets=(password, encoded))
        logger.debug("credential_manager_item_stored", service=service, account=account)

    async def get_password(self, service: str, account: str) -> Optional[str]:
        result = await self._powershell(read_script(target_name(service, account)))
        if result.exit_code == HELPER_EXIT_NOT_FOUND:
            return None
        if not result.ok:
            if _says_not_found(result):
                return None
            raise BackendError.from_result("CredRead", result)

        try:
            return base64.b64decode(result.stdout.strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            raise BackendError("CredRead", result.exit_code, "unreadable helper output") from None

    async def delete_password(self, service: str, account: str) -> bool:
        result = await self._run(CMDKEY, [f"/delete:{target_name(service, account)}"])
        if result.ok:
            return True
        if _says_not_found(result):
            return False
        raise BackendError.from_result("cmdkey /delete", result)

    async def list_accounts(self, service: str) -> list[str]:
        result = await self._run(CMDKEY, ["/list"], timeout=self.settings.list_timeout)
        if not result.ok:
            raise BackendError.from_result("cmdkey /list", result)
        return parse_cmdkey_list(result.stdout_text(), service)
