"""Raw keyboard input listener.

KeypressListener owns the terminal while a child runs:
- switches stdin to raw mode (TTY only) and restores it on dispose
- reads stdin chunks on the event loop (or on a worker thread for fds
  the loop cannot watch), reports decoded keys and
  forwards the raw bytes to the child
- turns kill gestures (ctrl+c, meta+c, ctrl+q, meta+q) into on_kill
- holds a SignalScope, so SIGINT/SIGTERM/SIGHUP and uncaught errors
  restore the terminal before the run is stopped
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Callable, ClassVar, Optional

import anyio

from .keys import KeyDecoder, KeyEvent, is_kill_gesture
from .signal_manager import SignalScope
from .types import FatalUncaught, Interrupted, TerminationReason

__all__ = ["KeypressListener", "DisposeHandle"]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

READ_SIZE = 1024


class DisposeHandle:
    """Idempotent teardown callable.

    The wrapped callback runs on the first call only; later calls are no-ops.
    """

    def __init__(self, callback: Callable[[], None]) -> None:
        self._callback = callback
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def __call__(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._callback()


class KeypressListener:
    """Relays raw terminal input to a child process.

    Example:
        listener = KeypressListener(
            on_key=lambda key: None,
            on_forward=handle.write,
            on_kill=request_kill,
            on_stop=request_stop,
        )
        dispose = listener.install()
        try:
            await handle.wait_closed()
        finally:
            dispose()

    Only one listener may be installed at a time.
    """

    _active: ClassVar[Optional[KeypressListener]] = None

    def __init__(
        self,
        *,
        on_key: Callable[[KeyEvent], None],
        on_forward: Callable[[bytes], None],
        on_kill: Callable[[], None],
        on_stop: Callable[[TerminationReason], None],
        on_eof: Optional[Callable[[], None]] = None,
        fd: Optional[int] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._on_key = on_key
        self._on_forward = on_forward
        self._on_kill = on_kill
        self._on_stop = on_stop
        self._on_eof = on_eof
        self._fd = fd
        self._loop = loop

        self._decoder = KeyDecoder()
        self._saved_attrs: Optional[list] = None
        self._reading = False
        self._reader_task: Optional[asyncio.Task[None]] = None
        self._scope: Optional[SignalScope] = None
        self._dispose: Optional[DisposeHandle] = None

    @property
    def installed(self) -> bool:
        return self._dispose is not None and not self._dispose.disposed

    @property
    def raw_mode(self) -> bool:
        return self._saved_attrs is not None

    def install(self) -> DisposeHandle:
        """Take over stdin and the termination signals.

        Returns:
            The DisposeHandle that undoes everything install() did

        Raises:
            RuntimeError: If another listener is already installed
        """
        if self.installed:
            logger.warning("KeypressListener already installed")
            return self._dispose

        active = KeypressListener._active
        if active is not None and active is not self and active.installed:
            raise RuntimeError("Another KeypressListener is already installed")

        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        fd = self._fd if self._fd is not None else sys.stdin.fileno()
        self._fd = fd

        self._dispose = DisposeHandle(self._teardown)
        KeypressListener._active = self

        self._scope = SignalScope(
            on_signal=self._handle_signal,
            on_uncaught=self._handle_uncaught,
            loop=loop,
        )

        if os.isatty(fd) and not IS_WINDOWS:
            self._enter_raw_mode(fd)

        if IS_WINDOWS:
            logger.warning("Keypress forwarding is not supported on Windows")
        else:
            try:
                loop.add_reader(fd, self._on_readable)
                self._reading = True
            except OSError as e:
                # epoll refuses regular files and /dev/null
                logger.debug(f"Cannot watch stdin fd={fd} ({e}), reading on a worker thread")
                self._reader_task = loop.create_task(self._read_in_thread())

        logger.debug(f"KeypressListener installed fd={fd} raw={self.raw_mode}")
        return self._dispose

    def dispose(self) -> None:
        """Undo install(). Safe to call any number of times."""
        if self._dispose is not None:
            self._dispose()

    def _enter_raw_mode(self, fd: int) -> None:
        import termios
        import tty

        self._saved_attrs = termios.tcgetattr(fd)
        tty.setraw(fd)
        # setraw() disables output post-processing; keep "\n" -> "\r\n"
        # so the child's output still renders line by line.
        attrs = termios.tcgetattr(fd)
        attrs[1] |= termios.OPOST | termios.ONLCR
        termios.tcsetattr(fd, termios.TCSANOW, attrs)

    def _leave_raw_mode(self, fd: int) -> None:
        import termios

        try:
            termios.tcsetattr(fd, termios.TCSADRAIN, self._saved_attrs)
        except termios.error as e:
            logger.debug(f"Error restoring terminal mode: {e}")
        self._saved_attrs = None

    def _stop_reading(self) -> None:
        if self._reading and self._loop is not None and self._fd is not None:
            self._loop.remove_reader(self._fd)
        self._reading = False
        if self._reader_task is not None:
            if self._reader_task is not asyncio.current_task(self._loop):
                self._reader_task.cancel()
            self._reader_task = None

    def _teardown(self) -> None:
        self._stop_reading()

        if self._saved_attrs is not None and self._fd is not None:
            self._leave_raw_mode(self._fd)

        if self._scope is not None:
            self._scope.close()
            self._scope = None

        if KeypressListener._active is self:
            KeypressListener._active = None

        logger.debug("KeypressListener disposed")

    def _on_readable(self) -> None:
        try:
            chunk = os.read(self._fd, READ_SIZE)
        except BlockingIOError:
            return
        except OSError as e:
            logger.debug(f"Error reading stdin: {e}")
            chunk = b""

        self._consume(chunk)

    async def _read_in_thread(self) -> None:
        """Read stdin to EOF on a worker thread, for fds the loop cannot watch."""
        while self.installed:
            try:
                chunk = await anyio.to_thread.run_sync(
                    os.read, self._fd, READ_SIZE, abandon_on_cancel=True
                )
            except OSError as e:
                logger.debug(f"Error reading stdin: {e}")
                chunk = b""

            if not self._consume(chunk):
                return

    def _consume(self, chunk: bytes) -> bool:
        """Handle one read result. Returns False once stdin reached EOF."""
        if not chunk:
            logger.debug("stdin reached EOF")
            self._stop_reading()
            if self._on_eof is not None:
                self._on_eof()
            return False

        self.handle_chunk(chunk)
        return True

    def handle_chunk(self, chunk: bytes) -> None:
        """Report the keys in chunk, then forward it unless it holds a kill gesture."""
        killed = False
        for key in self._decoder.feed(chunk):
            self._on_key(key)
            if is_kill_gesture(key):
                logger.debug(f"Kill gesture: {key}")
                killed = True
                self._on_kill()

        if killed:
            return

        self._on_forward(chunk)

    def _handle_signal(self, signum: int) -> None:
        self.dispose()
        self._on_stop(Interrupted(signum))

    def _handle_uncaught(self, error: Optional[BaseException]) -> None:
        self.dispose()
        self._on_stop(FatalUncaught(error))
