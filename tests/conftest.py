"""Shared fixtures: a scripted executor and fake native tools."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Optional, Union

import pytest

from native_vault.audit.logger import reset_logger
from native_vault.config import VaultSettings
from native_vault.storage.executor import CommandResult

Response = Union[CommandResult, Exception]


def result(exit_code: int = 0, stdout: str = "", stderr: str = "") -> CommandResult:
    """Build a CommandResult from text streams."""
    return CommandResult(
        exit_code=exit_code,
        stdout=stdout.encode("utf-8"),
        stderr=stderr.encode("utf-8"),
    )


@dataclass
class Call:
    command: str
    args: list[str]
    stdin: Optional[Union[str, bytes]]
    timeout: Optional[float]


class FakeExecutor:
    """Stand-in for CommandExecutor that records calls and replays responses.

    Responses are taken from ``handler`` when one is set, otherwise from the
    queue in order, otherwise a bare exit 0. Exceptions are raised.
    """

    def __init__(
        self,
        responses: Sequence[Response] = (),
        handler: Optional[Callable[[Call], Response]] = None,
    ) -> None:
        self.calls: list[Call] = []
        self.responses = list(responses)
        self.handler = handler

    def _respond(self, call: Call) -> CommandResult:
        self.calls.append(call)
        if self.handler is not None:
            response = self.handler(call)
        elif self.responses:
            response = self.responses.pop(0)
        else:
            response = result()
        if isinstance(response, Exception):
            raise response
        return response

    async def run(self, command, args=(), *, stdin=None, timeout=None) -> CommandResult:
        return self._respond(Call(command, list(args), stdin, timeout))

    def run_sync(self, command, args=(), *, timeout=None) -> CommandResult:
        return self._respond(Call(command, list(args), None, timeout))

    def commands(self) -> list[tuple[str, ...]]:
        return [(c.command, *c.args) for c in self.calls]


class FakeSecretTool:
    """In-memory model of ``secret-tool`` plus ``which`` for the probe."""

    def __init__(self) -> None:
        self.items: dict[tuple[str, str], str] = {}
        self.locked = False

    def __call__(self, call: Call) -> Response:
        if call.command == "which":
            return result(0, f"/usr/bin/{call.args[0]}\n")
        assert call.command == "secret-tool"

        operation, *rest = call.args
        if self.locked:
            return result(1, stderr="secret-tool: Cannot prompt: collection is locked\n")

        if operation == "store":
            attributes = dict(zip(rest[1::2], rest[2::2]))
            self.items[(attributes["service"], attributes["account"])] = call.stdin
            return result(0)

        if operation == "search":
            service = rest[-1]
            return self._search(service)

        attributes = dict(zip(rest[::2], rest[1::2]))
        key = (attributes["service"], attributes["account"])
        if operation == "lookup":
            if key not in self.items:
                return result(1)
            return result(0, self.items[key])
        if operation == "clear":
            self.items.pop(key, None)
            return result(0)
        raise AssertionError(f"unexpected secret-tool call: {call.args}")

    def _search(self, service: str) -> CommandResult:
        stanzas = []
        for index, ((item_service, account), secret) in enumerate(self.items.items()):
            if item_service != service:
                continue
            stanzas.append(
                f"[/org/freedesktop/secrets/collection/login/{index + 1}]\n"
                f"label = {item_service} - {account}\n"
                f"secret = {secret}\n"
                "created = 2024-01-01 00:00:00\n"
                "modified = 2024-01-01 00:00:00\n"
                "schema = org.freedesktop.Secret.Generic\n"
                f"attribute.service = {item_service}\n"
                f"attribute.account = {account}\n"
            )
        if not stanzas:
            return result(1)
        return result(0, "\n".join(stanzas))


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging state between tests."""
    reset_logger()
    yield
    reset_logger()


@pytest.fixture
def settings() -> VaultSettings:
    return VaultSettings()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def secret_tool() -> FakeSecretTool:
    return FakeSecretTool()
