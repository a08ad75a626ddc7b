"""Root orchestration of a single cloudxfer invocation.

Drives the startup sequence shared by every command:

    output format → concurrency sizing → engine bootstrap
    → version check (background) → command → bounded wait → exit

.. rubric:: Key design decisions

* **Exit as a value** -- :meth:`RootOrchestrator.run` returns the exit
  code resolved by the :class:`LifecycleManager`; only the CLI entry point
  terminates the process, after the event loop has been torn down.
* **Commands off the loop** -- synchronous command callables run in
  ``asyncio.to_thread`` so the loop keeps servicing signal handlers while
  the command works.
* **Bounded shutdown wait** -- the version check gets at most
  ``NEW_VERSION_WAIT_SECONDS`` after the command returns; its daemon
  thread is abandoned, not joined, once the ceiling is hit.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from src.launcher.concurrency import (
    ConcurrencySettings,
    detect_handle_limit,
    detect_hardware_concurrency,
    new_concurrency_settings,
)
from src.launcher.config import RootOptions
from src.launcher.engine import EngineBootstrap
from src.launcher.exceptions import LauncherError
from src.launcher.lifecycle import ExitCode, LifecycleManager, OutputFormat
from src.launcher.shutdown import CancellationWatcher
from src.launcher.version_check import VersionMonitor
from src.shared.config import LauncherSettings

logger = logging.getLogger(__name__)

# Ceiling on how long a finished command waits for the version check
NEW_VERSION_WAIT_SECONDS = 8.0

BITS_PER_MEGABIT = 1_000_000


@dataclass
class CommandContext:
    """Everything a command needs from the launcher."""

    lifecycle: LifecycleManager
    concurrency: ConcurrencySettings
    options: RootOptions
    settings: LauncherSettings
    cancellation: CancellationWatcher | None = None


CommandResult = Union[int, None]
Command = Callable[[CommandContext], Union[CommandResult, Awaitable[CommandResult]]]


class RootOrchestrator:
    """Runs the startup sequence, a command and the shutdown wait.

    Usage::

        orchestrator = RootOrchestrator(lifecycle, LocalEngine(), settings)
        code = asyncio.run(orchestrator.run(options, my_command))
    """

    def __init__(
        self,
        lifecycle: LifecycleManager,
        engine: EngineBootstrap,
        settings: LauncherSettings,
        *,
        monitor_factory: Callable[[LifecycleManager], Any] = VersionMonitor,
        configure_logging: Callable[[], Any] | None = None,
        cancellation: CancellationWatcher | None = None,
        core_count: int | None = None,
        max_handles: int | None = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.engine = engine
        self.settings = settings
        self._monitor_factory = monitor_factory
        self._configure_logging = configure_logging
        self._cancellation = cancellation
        self._core_count = core_count
        self._max_handles = max_handles
        self.concurrency: ConcurrencySettings | None = None

    async def run(
        self,
        options: RootOptions,
        command: Command,
        *,
        prefer_auto_tune: bool = False,
        provide_advice: bool = False,
    ) -> int:
        """Execute one invocation and return its exit code.

        Args:
            options: Parsed root flags.
            command: Command logic; sync or async, receives a
                :class:`CommandContext` and may return an exit code.
            prefer_auto_tune: Ask the engine to auto-tune its pool.
            provide_advice: Ask the engine for performance advice.

        Returns:
            The exit code resolved by :meth:`LifecycleManager.exit`.
        """
        # step 1: output format; a bad value falls back to TEXT to report itself
        format_error: LauncherError | None = None
        try:
            output_format = OutputFormat.parse(options.output_type)
        except LauncherError as exc:
            output_format, format_error = OutputFormat.TEXT, exc
        self.lifecycle.set_output_format(output_format)

        # step 1b: open the log file before anything is logged
        if self._configure_logging is not None:
            try:
                self._configure_logging()
            except OSError as exc:
                self.lifecycle.error(
                    f"Cannot write logs to {self.settings.resolved_log_dir()}: {exc}"
                )
                return self.lifecycle.exit(ExitCode.FAILURE)
        if format_error is not None:
            return self._fail(format_error)

        # step 2: size the worker pool
        try:
            self.concurrency = self._build_concurrency(prefer_auto_tune)
        except LauncherError as exc:
            return self._fail(exc)

        # step 3: engine bootstrap
        try:
            self.engine.start(
                self.concurrency,
                options.cap_mbps * BITS_PER_MEGABIT,
                self.settings.resolved_job_plan_dir(),
                self.settings.resolved_log_dir(),
                provide_advice,
            )
        except LauncherError as exc:
            return self._fail(exc)

        # step 4: version check in the background
        completion = self._monitor_factory(self.lifecycle).start()

        # step 5: the command itself
        context = CommandContext(
            lifecycle=self.lifecycle,
            concurrency=self.concurrency,
            options=options,
            settings=self.settings,
            cancellation=self._cancellation,
        )
        code = await self._run_command(command, context)

        # step 6: give the version check a bounded chance to finish
        started = time.monotonic()
        finished = await completion.wait_for(NEW_VERSION_WAIT_SECONDS)
        logger.debug(
            "Version check %s after %.2fs",
            "finished" if finished else "abandoned", time.monotonic() - started,
        )

        # step 7: flush and resolve
        return self.lifecycle.exit(code)

    def _build_concurrency(self, prefer_auto_tune: bool) -> ConcurrencySettings:
        core_count = self._core_count or detect_hardware_concurrency()
        max_handles = (
            self._max_handles if self._max_handles is not None else detect_handle_limit()
        )
        return new_concurrency_settings(
            core_count,
            max_handles=max_handles,
            concurrency_value=self.settings.concurrency_value,
            prefer_auto_tune=prefer_auto_tune,
        )

    async def _run_command(
        self, command: Command, context: CommandContext
    ) -> CommandResult:
        watcher = self._cancellation
        if watcher is not None:
            if context.options.cancel_from_stdin:
                watcher.watch_stdin()
            else:
                watcher.install()
        try:
            if inspect.iscoroutinefunction(command):
                result = await command(context)
            else:
                result = await asyncio.to_thread(command, context)
                if inspect.isawaitable(result):
                    result = await result
        except LauncherError as exc:
            logger.error("Command failed: %s", exc)
            self.lifecycle.error(str(exc))
            return ExitCode.FAILURE
        finally:
            if watcher is not None:
                watcher.uninstall()
        return None if result is None else int(result)

    def _fail(self, exc: LauncherError) -> int:
        """Surface a fatal startup error and exit with FAILURE."""
        logger.error("Startup failed: %s", exc)
        self.lifecycle.error(str(exc))
        return self.lifecycle.exit(ExitCode.FAILURE)
