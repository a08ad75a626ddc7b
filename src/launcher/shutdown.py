"""Cancellation handling for running commands.

Commands are cancelled either by SIGINT / SIGTERM or, when the hidden
``--cancel-from-stdin`` flag is set, by a ``cancel`` line on standard
input (partner tooling on Windows cannot deliver signals reliably).

Handles both Windows (``signal.signal``) and Unix
(``loop.add_signal_handler``) signal registration with a reentrancy guard.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import threading
from typing import Any, TextIO

logger = logging.getLogger(__name__)

CANCEL_TOKEN = "cancel"


class CancellationWatcher:
    """Tracks whether the running command has been asked to stop.

    Usage::

        watcher = CancellationWatcher()
        watcher.install()              # or watcher.watch_stdin()
        ...
        if watcher.should_stop:
            ...
        watcher.uninstall()
    """

    def __init__(self) -> None:
        self._stop = threading.Event()
        self._handling = False  # reentrancy guard
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous: dict[int, Any] = {}
        self._reader: threading.Thread | None = None
        self.reason = ""

    @property
    def should_stop(self) -> bool:
        """Whether cancellation has been requested."""
        return self._stop.is_set()

    def request_stop(self, reason: str) -> None:
        if self._stop.is_set():
            return
        self.reason = reason
        self._stop.set()
        logger.warning("Cancellation requested: %s", reason)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancellation is requested or *timeout* elapses."""
        return self._stop.wait(timeout)

    def install(self) -> None:
        """Register signal handlers for SIGINT and SIGTERM.

        On Windows, uses ``signal.signal`` directly.
        On Unix, uses ``loop.add_signal_handler`` if a running event loop
        is available, falling back to ``signal.signal``.
        """
        if sys.platform != "win32":
            try:
                loop = asyncio.get_running_loop()
                for sig in (signal.SIGINT, signal.SIGTERM):
                    loop.add_signal_handler(sig, self._async_handler)
                self._loop = loop
                return
            except (RuntimeError, NotImplementedError):
                # No running loop (or not the main thread) -- fall back
                pass
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                self._previous[sig] = signal.signal(sig, self._signal_handler)
            except ValueError:
                # signal.signal only works in the main thread
                logger.debug("Cannot install handler for %s outside main thread", sig)

    def uninstall(self) -> None:
        """Restore the signal handlers that were active before :meth:`install`."""
        if self._loop is not None:
            for sig in (signal.SIGINT, signal.SIGTERM):
                self._loop.remove_signal_handler(sig)
            self._loop = None
        for sig, previous in self._previous.items():
            signal.signal(sig, previous)
        self._previous.clear()

    def watch_stdin(self, stream: TextIO | None = None) -> threading.Thread:
        """Read *stream* (default stdin) on a daemon thread until ``cancel``."""
        source = stream if stream is not None else sys.stdin
        self._reader = threading.Thread(
            target=self._read_cancel_token,
            args=(source,),
            name="cancel-from-stdin",
            daemon=True,
        )
        self._reader.start()
        return self._reader

    def _read_cancel_token(self, stream: TextIO) -> None:
        for line in stream:
            if line.strip().lower() == CANCEL_TOKEN:
                self.request_stop("cancel received on stdin")
                return

    def _signal_handler(self, signum: int, frame: Any) -> None:
        """Synchronous signal handler (Windows / fallback)."""
        if self._handling:
            return  # reentrancy guard
        self._handling = True
        self.request_stop(f"signal {signum}")
        self._handling = False

    def _async_handler(self) -> None:
        """Async-compatible signal handler (Unix)."""
        if self._handling:
            return  # reentrancy guard
        self._handling = True
        self.request_stop("shutdown signal")
        self._handling = False
