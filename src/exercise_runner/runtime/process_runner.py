"""Child process spawning and termination.

exercise-runner runtime module

This module provides:
- Spawning one child with piped stdin and inherited stdout/stderr
- Session/process group isolation, so terminal signals reach the
  supervisor rather than the child
- Best-effort termination (SIGTERM, optional grace period, SIGKILL)

Key design points:
- POSIX: start_new_session=True to create a new process group
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- Termination signals the whole process group, not just the main process
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import subprocess
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import ChildFailure

__all__ = [
    "ChildProcessHandle",
    "ProcessSpec",
    "spawn_child",
    "IS_WINDOWS",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Seconds to wait after SIGKILL before giving up on the child
DEFAULT_KILL_TIMEOUT = 1.0


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for the child process.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process
        env: Environment variables (None = inherit parent)
    """

    argv: list[str]
    cwd: Path
    env: Mapping[str, str] | None = None


def _build_subprocess_kwargs(spec: ProcessSpec) -> dict[str, Any]:
    """Build platform-specific subprocess kwargs.

    Args:
        spec: Process specification

    Returns:
        Dict of kwargs for asyncio.create_subprocess_exec
    """
    kwargs: dict[str, Any] = {}

    if spec.env is not None:
        kwargs["env"] = dict(spec.env)

    if IS_WINDOWS:
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True

    return kwargs


async def spawn_child(spec: ProcessSpec) -> ChildProcessHandle:
    """Start the child process.

    stdin is a pipe owned by the supervisor; stdout and stderr are
    inherited so the child writes straight to the user's terminal.

    Raises:
        OSError: If the executable cannot be started
    """
    process = await asyncio.create_subprocess_exec(
        *spec.argv,
        stdin=asyncio.subprocess.PIPE,
        stdout=None,
        stderr=None,
        cwd=spec.cwd,
        **_build_subprocess_kwargs(spec),
    )

    logger.debug(
        f"Started subprocess pid={process.pid} "
        f"argv={spec.argv[0]} cwd={spec.cwd}"
    )
    return ChildProcessHandle(process)


class ChildProcessHandle:
    """Owns one running child process.

    Wraps the asyncio process with the three things the supervisor needs:
    writing to stdin, waiting for exit/close, and terminating.
    """

    def __init__(self, process: asyncio.subprocess.Process) -> None:
        self._process = process

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    def write(self, chunk: bytes) -> None:
        """Forward a chunk to the child's stdin, verbatim and in order."""
        stdin = self._process.stdin
        if stdin is None or stdin.is_closing():
            logger.debug(f"Dropping {len(chunk)} byte(s), stdin of pid={self.pid} is closed")
            return
        stdin.write(chunk)

    def close_stdin(self) -> None:
        """Close the child's stdin so it sees EOF."""
        stdin = self._process.stdin
        if stdin is not None and not stdin.is_closing():
            stdin.close()
            logger.debug(f"Closed stdin of pid={self.pid}")

    async def wait_exit(self) -> int:
        """Wait for the child to exit and return its return code.

        A negative value -N means the child was terminated by signal N.
        """
        return await self._process.wait()

    async def wait_closed(self) -> None:
        """Wait until the child has exited and its stdin pipe is closed.

        Raises:
            ChildFailure: If the child's return code is not 0
        """
        returncode = await self.wait_exit()

        stdin = self._process.stdin
        if stdin is not None:
            stdin.close()
            with contextlib.suppress(BrokenPipeError, ConnectionResetError):
                await stdin.wait_closed()

        logger.debug(f"Subprocess closed pid={self.pid} returncode={returncode}")
        if returncode != 0:
            raise ChildFailure(returncode)

    async def terminate(self, grace: float = 0.0, kill_timeout: float = DEFAULT_KILL_TIMEOUT) -> None:
        """Terminate the child, best effort.

        Termination strategy:
        1. Send SIGTERM to the process group (CTRL_BREAK_EVENT on Windows)
        2. If grace > 0, wait up to grace seconds for the child to exit
        3. If it is still running, send SIGKILL and wait up to kill_timeout

        With grace == 0 the signal is sent and the method returns at once.

        Args:
            grace: Seconds to wait after the first signal
            kill_timeout: Seconds to wait after SIGKILL
        """
        if self._process.returncode is not None:
            return

        pid = self.pid
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            if IS_WINDOWS:
                self._windows_terminate()
            else:
                self._posix_signal(signal.SIGTERM)

            if grace <= 0:
                return

            try:
                await asyncio.wait_for(self._process.wait(), timeout=grace)
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={self._process.returncode}"
                )
                return
            except asyncio.TimeoutError:
                pass

            logger.debug(f"Force killing subprocess pid={pid}")
            if IS_WINDOWS:
                self._process.kill()
            else:
                self._posix_signal(signal.SIGKILL)

            try:
                await asyncio.wait_for(self._process.wait(), timeout=kill_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")
        except OSError as e:
            logger.warning(f"Error terminating subprocess pid={pid}: {e}")

    def _posix_signal(self, sig: signal.Signals) -> None:
        """Send a signal to the child's process group on POSIX systems."""
        try:
            pgid = os.getpgid(self.pid)
            os.killpg(pgid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            self._process.send_signal(sig)

    def _windows_terminate(self) -> None:
        """Send CTRL_BREAK_EVENT on Windows."""
        try:
            os.kill(self.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={self.pid}")
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            self._process.terminate()
