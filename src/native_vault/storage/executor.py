"""Child-process boundary for talking to native credential tools.

Every vault operation is one invocation of an OS binary. Running them
through a single injectable executor keeps spawning, timeouts and error
mapping in one place, and lets backends be tested with canned results.
"""

import asyncio
import subprocess
import time
from collections.abc import Sequence
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Optional, Union

import structlog

from .base import CommandTimeoutError, SpawnFailureError

logger = structlog.get_logger(__name__)

StdinData = Union[str, bytes, None]


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one finished child process.

    The captured streams are left out of ``repr()``: lookups print secrets
    on stdout.
    """

    exit_code: int
    stdout: bytes = field(default=b"", repr=False)
    stderr: bytes = field(default=b"", repr=False)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


def _encode(stdin: StdinData) -> Optional[bytes]:
    if stdin is None:
        return None
    if isinstance(stdin, str):
        return stdin.encode("utf-8")
    return stdin


def _spawn_reason(error: OSError) -> str:
    return error.strerror or type(error).__name__


class CommandExecutor:
    """Runs native tools as child processes.

    Args:
        default_timeout: Seconds allowed per call when the caller gives none.
    """

    def __init__(self, default_timeout: float = 3.0) -> None:
        self.default_timeout = default_timeout

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        stdin: StdinData = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Spawn ``command`` with ``args`` and wait for it to exit.

        Args:
            command: Executable name, resolved through PATH. Never run via a shell.
            args: Argument vector.
            stdin: Data written to the child's stdin, which is then closed.
            timeout: Seconds before the child is killed.

        Returns:
            The exit code and captured output.

        Raises:
            SpawnFailureError: If the process could not be started.
            CommandTimeoutError: If the process outlived ``timeout``.
        """
        timeout = self.default_timeout if timeout is None else timeout
        payload = _encode(stdin)
        started = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.PIPE
                if payload is not None
                else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.debug("command_spawn_failed", command=command, reason=_spawn_reason(e))
            raise SpawnFailureError(command, _spawn_reason(e)) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(payload), timeout)
        except asyncio.TimeoutError:
            with suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            logger.warning(
                "command_timed_out",
                command=command,
                operation=args[0] if args else None,
                timeout=timeout,
            )
            raise CommandTimeoutError(command, timeout) from None

        result = CommandResult(
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout or b"",
            stderr=stderr or b"",
        )
        logger.debug(
            "command_finished",
            command=command,
            operation=args[0] if args else None,
            exit_code=result.exit_code,
            elapsed_ms=round((time.monotonic() - started) * 1000),
        )
        return result

    def run_sync(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Blocking variant of :meth:`run` for short probes.

        Raises:
            SpawnFailureError: If the process could not be started.
            CommandTimeoutError: If the process outlived ``timeout``.
        """
        timeout = self.default_timeout if timeout is None else timeout
        try:
            completed = subprocess.run(
                [command, *args],
                stdin=subprocess.DEVNULL,
                capture_output=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            raise CommandTimeoutError(command, timeout) from None
        except OSError as e:
            raise SpawnFailureError(command, _spawn_reason(e)) from e

        return CommandResult(
            exit_code=completed.returncode,
            stdout=completed.stdout or b"",
            stderr=completed.stderr or b"",
        )
