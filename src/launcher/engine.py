"""Transfer-engine bootstrap contract and the local default implementation.

The engine itself (job scheduling, chunking, data retries) lives outside
the launcher.  The launcher only needs a way to start it with the sized
worker pool, the throughput cap and the job-plan / log locations.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from src.launcher.concurrency import ConcurrencySettings
from src.launcher.exceptions import EngineStartupError

logger = logging.getLogger(__name__)


@runtime_checkable
class EngineBootstrap(Protocol):
    """Protocol for starting the transfer engine."""

    def start(
        self,
        settings: ConcurrencySettings,
        throughput_cap_bps: int,
        job_plan_dir: Path,
        log_dir: Path,
        provide_advice: bool,
    ) -> None:
        """Start the engine.

        Args:
            settings: Worker-pool sizing for this invocation.
            throughput_cap_bps: Cap in bits per second; 0 means uncapped.
            job_plan_dir: Directory for job plan files.
            log_dir: Directory for job logs.
            provide_advice: Whether the engine should report performance
                advice when the job finishes.

        Raises:
            EngineStartupError: If the engine cannot run.
        """
        ...


class LocalEngine:
    """In-process engine bootstrap.

    Prepares the job-plan and log directories and keeps the parameters the
    engine was started with so commands can report them.
    """

    def __init__(self) -> None:
        self.started = False
        self.settings: ConcurrencySettings | None = None
        self.throughput_cap_bps = 0
        self.job_plan_dir: Path | None = None
        self.log_dir: Path | None = None
        self.provide_advice = False

    def start(
        self,
        settings: ConcurrencySettings,
        throughput_cap_bps: int,
        job_plan_dir: Path,
        log_dir: Path,
        provide_advice: bool,
    ) -> None:
        if self.started:
            raise EngineStartupError("Engine already started")
        if throughput_cap_bps < 0:
            raise EngineStartupError(
                f"Throughput cap must be >= 0, got {throughput_cap_bps}"
            )

        for label, directory in (("job plan", job_plan_dir), ("log", log_dir)):
            try:
                Path(directory).mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise EngineStartupError(
                    f"Cannot create {label} directory {directory}: {exc}", cause=exc
                ) from exc

        self.settings = settings
        self.throughput_cap_bps = throughput_cap_bps
        self.job_plan_dir = Path(job_plan_dir)
        self.log_dir = Path(log_dir)
        self.provide_advice = provide_advice
        self.started = True
        logger.info(
            "Engine started: pool_size=%d cap_bps=%d plans=%s logs=%s",
            settings.pool_size, throughput_cap_bps, job_plan_dir, log_dir,
        )
