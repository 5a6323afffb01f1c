"""信号管理模块。

SignalScope 在构造时接管进程级的终止信号和事件循环的异常处理器，
close() 时一次性全部释放：
- SIGINT / SIGTERM / SIGHUP: 转换为 on_signal(signum) 回调
- 事件循环中未处理的异常: 转换为 on_uncaught(error) 回调

不接管 sys.excepthook：它只在 asyncio.run 返回后才被调用，那时作用域已释放。

回调只负责请求结束运行；由持有者（KeypressListener）决定如何清理。
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from types import TracebackType
from typing import Any, Callable, Optional

__all__ = ["SignalScope", "TERMINATION_SIGNALS"]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

# SIGHUP 在 Windows 上不存在
TERMINATION_SIGNALS: tuple[signal.Signals, ...] = tuple(
    sig
    for sig in (
        signal.SIGINT,
        signal.SIGTERM,
        getattr(signal, "SIGHUP", None),
    )
    if sig is not None
)


class SignalScope:
    """终止信号与未捕获异常的作用域。

    必须在运行中的 asyncio 事件循环里构造。

    Example:
        ```python
        scope = SignalScope(on_signal=stop, on_uncaught=crash)
        try:
            await run_child()
        finally:
            scope.close()
        ```

    Attributes:
        signals: 接管的信号
    """

    def __init__(
        self,
        on_signal: Callable[[int], None],
        on_uncaught: Callable[[Optional[BaseException]], None],
        signals: tuple[signal.Signals, ...] = TERMINATION_SIGNALS,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        """初始化并立即安装处理器。

        Args:
            on_signal: 收到终止信号时的回调
            on_uncaught: 出现未捕获异常时的回调
            signals: 要接管的信号（默认 SIGINT/SIGTERM/SIGHUP）
            loop: 事件循环（默认当前运行的循环）
        """
        self.signals = signals
        self._on_signal = on_signal
        self._on_uncaught = on_uncaught
        self._loop = loop or asyncio.get_running_loop()

        self._original_handlers: dict[signal.Signals, Any] = {}
        self._original_exception_handler: Optional[Callable[..., Any]] = None
        self._closed = False

        self._install()

    @property
    def closed(self) -> bool:
        """是否已释放。"""
        return self._closed

    def _install(self) -> None:
        for sig in self.signals:
            self._original_handlers[sig] = signal.getsignal(sig)
            if IS_WINDOWS:
                # Windows: 事件循环不支持 add_signal_handler
                signal.signal(
                    sig,
                    lambda signum, frame: self._loop.call_soon_threadsafe(
                        self._handle_signal, signum
                    ),
                )
            else:
                self._loop.add_signal_handler(sig, self._handle_signal, sig)

        self._original_exception_handler = self._loop.get_exception_handler()
        self._loop.set_exception_handler(self._handle_loop_exception)

        logger.debug(
            f"Signal handlers installed: {[sig.name for sig in self.signals]}"
        )

    def close(self) -> None:
        """释放所有处理器，恢复原始状态。可重复调用。"""
        if self._closed:
            return
        self._closed = True

        for sig, original in self._original_handlers.items():
            try:
                if not IS_WINDOWS:
                    self._loop.remove_signal_handler(sig)
                if original is not None:
                    signal.signal(sig, original)
            except Exception as e:
                logger.debug(f"Error restoring {sig.name} handler: {e}")

        if not self._loop.is_closed():
            self._loop.set_exception_handler(self._original_exception_handler)

        logger.debug("Signal handlers removed")

    def __enter__(self) -> SignalScope:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _handle_signal(self, signum: int) -> None:
        """处理终止信号。"""
        if self._closed:
            return
        logger.info(f"{signal.Signals(signum).name} received, stopping")
        self._on_signal(signum)

    def _handle_loop_exception(
        self,
        loop: asyncio.AbstractEventLoop,
        context: dict[str, Any],
    ) -> None:
        """处理事件循环中未被处理的异常（回调异常、未取回的 Task 异常）。"""
        error = context.get("exception")
        logger.error(
            f"Unhandled error in event loop: {context.get('message')}",
            exc_info=error,
        )
        if not self._closed:
            self._on_uncaught(error)
