"""
ShutdownHooks - run synchronous callbacks before the process exits.

Covers normal interpreter exit (atexit) and Ctrl+C (SIGINT). Callbacks must be
synchronous: nothing asynchronous is guaranteed to finish during exit.
"""

import atexit
import signal
import threading
from typing import Any, Callable

from loguru import logger

ShutdownCallback = Callable[[], None]


class ShutdownHooks:
    """
    Registry of callbacks to run on shutdown.

    Usage:
        hooks = ShutdownHooks()
        hooks.register(cache.save_to_disk_sync)
    """

    def __init__(self, handle_sigint: bool = True):
        self._callbacks: list[ShutdownCallback] = []
        self._handle_sigint = handle_sigint
        self._installed = False
        self._previous_sigint: Any = None

    def register(self, callback: ShutdownCallback) -> None:
        """Register a callback, installing the process hooks on first use."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)
        self.install()

    def unregister(self, callback: ShutdownCallback) -> bool:
        """Remove a callback. Returns False if it was not registered."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)
            return True
        return False

    def install(self) -> None:
        """Hook atexit and, from the main thread, SIGINT."""
        if self._installed:
            return

        atexit.register(self.run)

        if self._handle_sigint:
            if threading.current_thread() is threading.main_thread():
                self._previous_sigint = signal.getsignal(signal.SIGINT)
                signal.signal(signal.SIGINT, self._on_sigint)
            else:
                logger.debug("Not in main thread, SIGINT handler not installed")

        self._installed = True

    def run(self) -> None:
        """Run every registered callback; failures are logged, not raised."""
        for callback in list(self._callbacks):
            try:
                callback()
            except Exception as e:
                logger.warning(f"Shutdown callback {callback!r} failed: {e}")

    def _on_sigint(self, signum: int, frame: Any) -> None:
        logger.info("Saving cache before exit...")
        self.run()

        previous = self._previous_sigint
        if previous == signal.SIG_IGN:
            return
        if callable(previous):
            previous(signum, frame)
        else:
            raise KeyboardInterrupt

    @property
    def callbacks(self) -> list[ShutdownCallback]:
        return list(self._callbacks)


# Global hooks instance
shutdown_hooks = ShutdownHooks()
