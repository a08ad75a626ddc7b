"""Background check for a newer cloudxfer release.

The check runs on its own daemon thread with a private event loop because
the metadata endpoint can be unreachable (e.g. a constrained network where
the host does not resolve).  Name resolution happens in executor threads
that can block indefinitely, so the loop's executor hands each call to a
daemon thread as well: neither the caller's loop teardown nor interpreter
exit ever joins them.  The caller only gets a :class:`CompletionSignal`
back and is expected to give up on it after a bounded wait.

Every failure is absorbed at the step where it happens: the check is a
courtesy and must never change what the user's command does or prints.
"""

from __future__ import annotations

import asyncio
import os
import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Callable

import httpx

from src.launcher.download import (
    MAX_RETRY_PER_DOWNLOAD_BODY,
    CredentialInfo,
    CredentialType,
    create_pipeline,
    download,
)
from src.launcher.exceptions import ConfigurationError, InvalidVersionError
from src.launcher.version import Version
from src.shared.constants import VERSION, VERSION_METADATA_URL

if TYPE_CHECKING:
    from src.launcher.lifecycle import LifecycleManager


class CompletionSignal:
    """One-shot notification that a background check has finished.

    Firing is idempotent and may happen on any thread; once fired the
    signal stays fired.  Waiters are woken on their own event loop.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._fired = False
        self._waiters: list[tuple[asyncio.AbstractEventLoop, asyncio.Future[None]]] = []

    def fire(self) -> None:
        with self._lock:
            if self._fired:
                return
            self._fired = True
            waiters, self._waiters = self._waiters, []
        for loop, waiter in waiters:
            try:
                loop.call_soon_threadsafe(_resolve, waiter)
            except RuntimeError:
                # The waiting loop is already closed
                pass

    def is_set(self) -> bool:
        return self._fired

    async def wait(self) -> None:
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()
        entry = (loop, waiter)
        with self._lock:
            if self._fired:
                return
            self._waiters.append(entry)
        try:
            await waiter
        finally:
            with self._lock:
                if entry in self._waiters:
                    self._waiters.remove(entry)

    async def wait_for(self, timeout: float) -> bool:
        """Wait at most *timeout* seconds.

        Returns:
            True if the signal fired, False if the timer won.
        """
        try:
            await asyncio.wait_for(self.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


def _resolve(waiter: asyncio.Future[None]) -> None:
    if not waiter.done():
        waiter.set_result(None)


class DaemonThreadExecutor(ThreadPoolExecutor):
    """Executor that runs every call on a fresh daemon thread.

    ``shutdown`` never waits, so a call stuck in ``getaddrinfo`` cannot
    hold up loop teardown or interpreter exit.
    """

    def __init__(self, thread_name_prefix: str = "version-check-io") -> None:
        super().__init__(max_workers=1, thread_name_prefix=thread_name_prefix)
        self._name_prefix = thread_name_prefix

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()

        def run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                result = fn(*args, **kwargs)
            except BaseException as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)

        threading.Thread(target=run, name=self._name_prefix, daemon=True).start()
        return future

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        return None


def diagnostic_channel_available() -> bool:
    """Return True if stderr is backed by a file descriptor that can be probed."""
    try:
        os.fstat(sys.stderr.fileno())
    except (OSError, ValueError, AttributeError):
        return False
    return True


def executable_name(argv0: str) -> str:
    """Return the file name of *argv0*, treating ``\\`` as a separator too."""
    return argv0.replace("\\", "/").rsplit("/", 1)[-1]


class VersionMonitor:
    """Fetches the latest release version and emits an advisory if newer.

    Usage::

        signal = VersionMonitor(lifecycle).start()
        ...
        await signal.wait_for(NEW_VERSION_WAIT_SECONDS)
    """

    def __init__(
        self,
        lifecycle: LifecycleManager,
        *,
        local_version: str = VERSION,
        metadata_url: str = VERSION_METADATA_URL,
        executable: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retry_requests: int = MAX_RETRY_PER_DOWNLOAD_BODY,
    ) -> None:
        self._lifecycle = lifecycle
        self.local_version = local_version
        self.metadata_url = metadata_url
        self.executable = executable if executable is not None else sys.argv[0]
        self._transport = transport
        self._max_retry_requests = max_retry_requests
        self._thread: threading.Thread | None = None

    @property
    def thread(self) -> threading.Thread | None:
        """The daemon thread running the check, once :meth:`start` has been called."""
        return self._thread

    def start(self) -> CompletionSignal:
        """Start the check on a daemon thread and return immediately."""
        signal = CompletionSignal()
        self._thread = threading.Thread(
            target=self._run, args=(signal,), name="version-check", daemon=True
        )
        self._thread.start()
        return signal

    def _run(self, signal: CompletionSignal) -> None:
        try:
            with asyncio.Runner() as runner:
                runner.get_loop().set_default_executor(DaemonThreadExecutor())
                runner.run(self._check())
        finally:
            # Fire on every path, including failures
            signal.fire()

    async def _check(self) -> None:
        # step 0: make sure the diagnostic channel exists before doing anything
        # that could hang
        if not diagnostic_channel_available():
            return

        # step 1: open an anonymous pipeline
        try:
            client = create_pipeline(
                CredentialInfo(CredentialType.ANONYMOUS), transport=self._transport
            )
        except ConfigurationError:
            return

        async with client:
            # step 2: parse the metadata location
            try:
                url = httpx.URL(self.metadata_url)
            except (httpx.InvalidURL, TypeError, ValueError):
                return
            if url.scheme not in ("http", "https") or not url.host:
                return

            # step 3: start the download
            try:
                body = await download(
                    client, url, max_retry_requests=self._max_retry_requests
                )
            except httpx.HTTPError:
                return

            # step 4: read the newest version string
            try:
                raw = await body.read()
            except httpx.HTTPError:
                return
            finally:
                await body.aclose()
            if not raw:
                return
            # Only the first line is authoritative; later lines are reserved
            remote_version = raw.decode("utf-8", errors="replace").split("\n", 1)[0].strip()

        # step 5: compare against the compiled-in version
        try:
            local = Version.parse(self.local_version)
            remote = Version.parse(remote_version)
        except InvalidVersionError:
            return

        if local.older_than(remote):
            self._lifecycle.info(
                f"{executable_name(self.executable)}: A newer version "
                f"{remote_version} is available to download"
            )
