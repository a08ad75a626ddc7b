"""Tests for the background VersionMonitor."""

from __future__ import annotations

import asyncio
import io
import threading
import time
from typing import AsyncIterator
from unittest.mock import patch

import httpx
import pytest

from src.launcher.lifecycle import LifecycleManager
from src.launcher.version_check import (
    CompletionSignal,
    DaemonThreadExecutor,
    VersionMonitor,
    diagnostic_channel_available,
    executable_name,
)

METADATA_URL = "https://example.test/releases/version-metadata"


def _transport(body: bytes, status: int = 200) -> httpx.MockTransport:
    return httpx.MockTransport(lambda request: httpx.Response(status, content=body))


def _monitor(lifecycle: LifecycleManager, transport: httpx.MockTransport, **kwargs) -> VersionMonitor:
    kwargs.setdefault("local_version", "10.2.0")
    kwargs.setdefault("metadata_url", METADATA_URL)
    kwargs.setdefault("executable", "/usr/local/bin/cloudxfer")
    return VersionMonitor(lifecycle, transport=transport, **kwargs)


def _messages(lifecycle: LifecycleManager) -> list[str]:
    return [m.text for m in lifecycle.exit_state().pending_messages]


@pytest.fixture
def stderr_probe_ok():
    """Pretend stderr can be probed, even under output capture."""
    with patch(
        "src.launcher.version_check.diagnostic_channel_available", return_value=True
    ):
        yield


class TestCompletionSignal:
    @pytest.mark.asyncio
    async def test_fire_is_idempotent(self) -> None:
        signal = CompletionSignal()
        assert signal.is_set() is False
        signal.fire()
        signal.fire()
        assert signal.is_set() is True
        await signal.wait()
        assert await signal.wait_for(0.01) is True

    @pytest.mark.asyncio
    async def test_wait_for_times_out(self) -> None:
        signal = CompletionSignal()
        started = time.monotonic()
        assert await signal.wait_for(0.05) is False
        assert time.monotonic() - started < 1.0
        assert signal.is_set() is False

    @pytest.mark.asyncio
    async def test_fire_from_another_thread_wakes_waiter(self) -> None:
        signal = CompletionSignal()
        timer = threading.Timer(0.05, signal.fire)
        timer.start()
        try:
            assert await signal.wait_for(5) is True
        finally:
            timer.cancel()

    def test_fire_after_waiting_loop_closed(self) -> None:
        signal = CompletionSignal()
        assert asyncio.run(signal.wait_for(0.01)) is False
        signal.fire()
        assert signal.is_set() is True


class TestDaemonThreadExecutor:
    def test_submit_returns_result(self) -> None:
        executor = DaemonThreadExecutor()
        assert executor.submit(lambda a, b: a + b, 2, 3).result(timeout=5) == 5

    def test_submit_propagates_exception(self) -> None:
        def boom() -> None:
            raise OSError("no route")

        with pytest.raises(OSError, match="no route"):
            DaemonThreadExecutor().submit(boom).result(timeout=5)

    def test_shutdown_does_not_wait_for_blocked_call(self) -> None:
        release = threading.Event()
        executor = DaemonThreadExecutor()
        seen: list[threading.Thread] = []

        def blocked() -> None:
            seen.append(threading.current_thread())
            release.wait(10)

        future = executor.submit(blocked)
        try:
            started = time.monotonic()
            executor.shutdown(wait=True)
            assert time.monotonic() - started < 0.5
            assert future.done() is False
        finally:
            release.set()
        future.result(timeout=5)
        assert seen[0].daemon is True


class TestExecutableName:
    @pytest.mark.parametrize(
        "argv0, expected",
        [
            ("/usr/local/bin/cloudxfer", "cloudxfer"),
            ("C:\\tools\\cloudxfer.exe", "cloudxfer.exe"),
            ("cloudxfer", "cloudxfer"),
        ],
    )
    def test_basename(self, argv0: str, expected: str) -> None:
        assert executable_name(argv0) == expected


@pytest.mark.usefixtures("stderr_probe_ok")
class TestVersionMonitor:
    @pytest.mark.asyncio
    async def test_newer_remote_emits_one_advisory(self, text_lifecycle) -> None:
        signal = _monitor(text_lifecycle, _transport(b"10.3.0\n")).start()
        await asyncio.wait_for(signal.wait(), timeout=5)
        messages = _messages(text_lifecycle)
        assert len(messages) == 1
        assert "10.3.0" in messages[0]
        assert messages[0] == "cloudxfer: A newer version 10.3.0 is available to download"

    @pytest.mark.asyncio
    async def test_same_version_no_advisory(self, text_lifecycle) -> None:
        signal = _monitor(text_lifecycle, _transport(b"10.2.0\n")).start()
        await asyncio.wait_for(signal.wait(), timeout=5)
        assert _messages(text_lifecycle) == []

    @pytest.mark.asyncio
    async def test_older_remote_no_advisory(self, text_lifecycle) -> None:
        signal = _monitor(text_lifecycle, _transport(b"9.9.9")).start()
        await asyncio.wait_for(signal.wait(), timeout=5)
        assert _messages(text_lifecycle) == []

    @pytest.mark.asyncio
    async def test_only_first_line_counts(self, text_lifecycle) -> None:
        signal = _monitor(text_lifecycle, _transport(b"10.2.0\n99.0.0\n")).start()
        await asyncio.wait_for(signal.wait(), timeout=5)
        assert _messages(text_lifecycle) == []

    @pytest.mark.asyncio
    async def test_crlf_body(self, text_lifecycle) -> None:
        signal = _monitor(text_lifecycle, _transport(b"10.3.0\r\n")).start()
        await asyncio.wait_for(signal.wait(), timeout=5)
        assert len(_messages(text_lifecycle)) == 1

    @pytest.mark.parametrize(
        "body, status",
        [(b"", 200), (b"not-a-version\n", 200), (b"10.3.0\n", 404), (b"10.3.0\n", 500)],
    )
    @pytest.mark.asyncio
    async def test_failures_are_silent_and_still_signal(self, text_lifecycle, body, status) -> None:
        signal = _monitor(text_lifecycle, _transport(body, status)).start()
        await asyncio.wait_for(signal.wait(), timeout=5)
        assert signal.is_set() is True
        assert _messages(text_lifecycle) == []

    @pytest.mark.parametrize("url", ["not a url", "ftp://example.test/v", "http://[::1"])
    @pytest.mark.asyncio
    async def test_malformed_url_is_silent(self, text_lifecycle, url) -> None:
        signal = _monitor(text_lifecycle, _transport(b"99.0.0"), metadata_url=url).start()
        await asyncio.wait_for(signal.wait(), timeout=5)
        assert _messages(text_lifecycle) == []

    @pytest.mark.asyncio
    async def test_invalid_local_version_is_silent(self, text_lifecycle) -> None:
        signal = _monitor(text_lifecycle, _transport(b"99.0.0"), local_version="dev").start()
        await asyncio.wait_for(signal.wait(), timeout=5)
        assert _messages(text_lifecycle) == []

    @pytest.mark.asyncio
    async def test_unreachable_endpoint_is_silent(self, text_lifecycle) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("name does not resolve", request=request)

        signal = _monitor(text_lifecycle, httpx.MockTransport(handler)).start()
        await asyncio.wait_for(signal.wait(), timeout=5)
        assert _messages(text_lifecycle) == []

    @pytest.mark.asyncio
    async def test_partial_body_is_retried(self, text_lifecycle) -> None:
        class Flaky(httpx.AsyncByteStream):
            async def __aiter__(self) -> AsyncIterator[bytes]:
                yield b"10."
                raise httpx.ReadError("reset")

        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                return httpx.Response(200, stream=Flaky())
            return httpx.Response(206, content=b"3.0\n")

        signal = _monitor(text_lifecycle, httpx.MockTransport(handler)).start()
        await asyncio.wait_for(signal.wait(), timeout=5)
        assert calls == 2
        assert len(_messages(text_lifecycle)) == 1

    @pytest.mark.asyncio
    async def test_start_returns_immediately_when_endpoint_hangs(self, text_lifecycle) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, content=b"1.0.0")

        monitor = _monitor(text_lifecycle, httpx.MockTransport(handler))
        started = time.monotonic()
        signal = monitor.start()
        assert time.monotonic() - started < 0.5
        assert signal.is_set() is False
        assert monitor.thread is not None
        assert monitor.thread.daemon is True

        await asyncio.wait_for(signal.wait(), timeout=5)
        assert _messages(text_lifecycle) == []

    @pytest.mark.asyncio
    async def test_advisory_after_exit_is_dropped(self, text_lifecycle, captured_output) -> None:
        text_lifecycle.exit()
        signal = _monitor(text_lifecycle, _transport(b"10.3.0\n")).start()
        await asyncio.wait_for(signal.wait(), timeout=5)
        assert captured_output.stdout == ""


class TestDiagnosticChannel:
    @pytest.mark.asyncio
    async def test_unprobeable_stderr_skips_check(self, text_lifecycle) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, content=b"99.0.0")

        # StringIO has no file descriptor
        with patch("src.launcher.version_check.sys.stderr", io.StringIO()):
            signal = _monitor(text_lifecycle, httpx.MockTransport(handler)).start()
            await asyncio.wait_for(signal.wait(), timeout=5)
        assert requests == []
        assert _messages(text_lifecycle) == []

    def test_string_stderr_is_not_probeable(self) -> None:
        with patch("src.launcher.version_check.sys.stderr", io.StringIO()):
            assert diagnostic_channel_available() is False

    def test_missing_stderr_is_not_probeable(self) -> None:
        with patch("src.launcher.version_check.sys.stderr", None):
            assert diagnostic_channel_available() is False
