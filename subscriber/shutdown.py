"""
Graceful shutdown coordination.

A single ShutdownCoordinator is created at process start and handed to the
webhook host and the bootstrap sequence. It owns:
- the cancellation signal, set at most once by the first termination
  notification (SIGINT, SIGTERM or the interpreter exit hook)
- the completion latch, released by the main flow once the webhook host has
  finished its own shutdown; the exit hook blocks on it
"""
import asyncio
import atexit
import signal
import threading
from typing import Callable, List, Optional

from subscriber.logging_config import get_logger


logger = get_logger(__name__)


class ShutdownCoordinator:
    """Cancellation signal plus completion latch shared by the whole process."""

    def __init__(self, exit_wait_timeout: Optional[float] = None):
        self._lock = threading.Lock()
        self._cancel_requested = False
        self._cancelled = asyncio.Event()
        self._completed = threading.Event()
        self._callbacks: List[Callable[[], None]] = []
        self._exit_wait_timeout = exit_wait_timeout

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_requested

    @property
    def is_completed(self) -> bool:
        return self._completed.is_set()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Register a callback run once when cancellation is signalled."""
        with self._lock:
            if not self._cancel_requested:
                self._callbacks.append(callback)
                return
        callback()

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        """
        Route SIGINT/SIGTERM and interpreter exit into the coordinator.

        The loop handlers replace Python's default KeyboardInterrupt/kill
        behaviour, so a signal only requests cancellation.
        """
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.request_shutdown, sig.name)
        atexit.register(self._on_process_exit)

    def request_shutdown(self, reason: str = "requested") -> bool:
        """
        Signal cancellation. Only the first call has any effect.

        Errors raised while signalling are logged and swallowed.

        Returns:
            True if this call performed the transition, False otherwise
        """
        with self._lock:
            if self._cancel_requested:
                return False
            self._cancel_requested = True
            callbacks, self._callbacks = self._callbacks, []

        logger.info("shutdown.requested", reason=reason)

        self._cancelled.set()

        # Every callback runs even if an earlier one fails
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(
                    "shutdown.cancel_failed",
                    callback=getattr(callback, "__qualname__", repr(callback)),
                    error=str(e),
                    exc_info=True
                )

        return True

    async def wait_cancelled(self) -> None:
        await self._cancelled.wait()

    def complete(self) -> bool:
        """
        Release the completion latch. Only the first call has any effect.

        Returns:
            True if this call released the latch, False otherwise
        """
        with self._lock:
            if self._completed.is_set():
                return False
            self._completed.set()

        logger.info("shutdown.complete")
        return True

    def wait_completed(self, timeout: Optional[float] = None) -> bool:
        """Block the calling thread until the completion latch is released."""
        return self._completed.wait(timeout)

    def _on_process_exit(self) -> None:
        self.request_shutdown("process_exit")
        self.wait_completed(self._exit_wait_timeout)
