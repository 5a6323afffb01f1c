"""Process supervisor.

Runs exactly one child process to completion while relaying terminal
input, and turns every way the run can end into a TerminationReason:

- child exits with a code       -> NormalExit(code)
- child killed by a signal      -> SignalExit(signum)
- child cannot be started       -> SpawnError(error)
- kill gesture pressed          -> KillRequested()
- SIGINT/SIGTERM/SIGHUP         -> Interrupted(signum)
- uncaught error in the loop    -> FatalUncaught(error)
- supervisor raised             -> OrchestrationFailed(error)

The keypress listener is always disposed before run() returns, so the
terminal is restored before the caller exits the process.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import anyio

from ..config import Config, get_config
from ..errors import ChildFailure
from ..keypress import KeypressListener
from ..keys import KeyEvent
from ..types import (
    EntryPoint,
    KillRequested,
    NormalExit,
    OrchestrationFailed,
    SignalExit,
    SpawnError,
    TerminationReason,
)
from .process_runner import ChildProcessHandle, ProcessSpec, spawn_child

__all__ = ["ProcessSupervisor"]

logger = logging.getLogger(__name__)

ListenerFactory = Callable[..., KeypressListener]


class ProcessSupervisor:
    """Supervises one child process per run.

    Example:
        supervisor = ProcessSupervisor(config)
        reason = await supervisor.run(entry_point)
        sys.exit(reason.exit_code)
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        on_key: Callable[[KeyEvent], None] | None = None,
        echo: Callable[[str], None] = print,
        listener_factory: ListenerFactory = KeypressListener,
        stdin_fd: int | None = None,
    ) -> None:
        """Initialize the supervisor.

        Args:
            config: Runner configuration (default: global config)
            on_key: Observer called for every decoded keypress
            echo: Output function for user-facing status lines
            listener_factory: Builds the KeypressListener (replaced in tests)
            stdin_fd: File descriptor to read input from (default: sys.stdin)
        """
        self.config = config or get_config()
        self._on_key = on_key
        self._echo = echo
        self._listener_factory = listener_factory
        self._stdin_fd = stdin_fd

    def build_spec(self, entry: EntryPoint) -> ProcessSpec:
        """Build the child process spec for an entry point."""
        return ProcessSpec(
            argv=self.config.build_argv(entry.entry_file),
            cwd=entry.directory,
        )

    async def run(self, entry: EntryPoint) -> TerminationReason:
        """Run the entry point's child process to completion.

        Args:
            entry: A resolved, existing entry point

        Returns:
            Why the run ended; reason.exit_code is the process exit code
        """
        listener: KeypressListener | None = None
        handle: ChildProcessHandle | None = None

        try:
            try:
                handle = await spawn_child(self.build_spec(entry))
            except OSError as e:
                logger.error(f"Failed to start child process: {e}")
                return SpawnError(e)

            loop = asyncio.get_running_loop()
            stop: asyncio.Future[TerminationReason] = loop.create_future()

            def request_stop(reason: TerminationReason) -> None:
                if not stop.done():
                    stop.set_result(reason)

            listener = self._listener_factory(
                on_key=self._handle_key,
                on_forward=handle.write,
                on_kill=lambda: request_stop(KillRequested()),
                on_stop=request_stop,
                on_eof=handle.close_stdin,
                fd=self._stdin_fd,
                loop=loop,
            )
            listener.install()

            reason = await self._supervise(handle, stop)

            if not isinstance(reason, (NormalExit, SignalExit)):
                await handle.terminate(grace=self.config.kill_grace)

            return reason

        except Exception as e:
            logger.exception(f"Supervisor failed: {e}")
            if handle is not None:
                await handle.terminate(grace=self.config.kill_grace)
            return OrchestrationFailed(e)

        finally:
            if listener is not None:
                listener.dispose()

    async def _supervise(
        self,
        handle: ChildProcessHandle,
        stop: asyncio.Future[TerminationReason],
    ) -> TerminationReason:
        """Wait for whichever comes first: the child closing or a stop request."""
        result: TerminationReason | None = None

        async with anyio.create_task_group() as tg:

            async def watch_child() -> None:
                nonlocal result
                reason = await self._wait_child(handle)
                if result is None:
                    result = reason
                tg.cancel_scope.cancel()

            async def watch_stop() -> None:
                nonlocal result
                reason = await stop
                if result is None:
                    result = reason
                tg.cancel_scope.cancel()

            tg.start_soon(watch_child)
            tg.start_soon(watch_stop)

        if result is None:
            raise RuntimeError("Supervision ended without a termination reason")
        logger.debug(f"Run finished: {result}")
        return result

    async def _wait_child(self, handle: ChildProcessHandle) -> TerminationReason:
        returncode = await handle.wait_exit()

        if returncode < 0:
            reason = SignalExit(-returncode)
            self._echo(f"Child process was killed with signal {reason.signal_name}")
            return reason

        self._echo(f"Child process exited with code {returncode}")

        try:
            await handle.wait_closed()
        except ChildFailure as e:
            logger.debug(f"Child failed: {e}")
            return NormalExit(e.code)

        return NormalExit(0)

    def _handle_key(self, key: KeyEvent) -> None:
        if self._on_key is not None:
            self._on_key(key)
