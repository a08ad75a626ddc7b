"""Shared test fixtures for the cloudxfer test suite."""
from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Generator

import pytest
from rich.console import Console

import src.launcher.display as display_mod
from src.launcher.lifecycle import LifecycleManager, OutputFormat


@dataclass
class CapturedOutput:
    """Buffers standing in for the display module's consoles."""

    out: io.StringIO
    err: io.StringIO

    @property
    def stdout(self) -> str:
        return self.out.getvalue()

    @property
    def stderr(self) -> str:
        return self.err.getvalue()


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every setting at a temporary app directory."""
    app_dir = tmp_path / "app"
    monkeypatch.setenv("CLOUDXFER_APP_DIR", str(app_dir))
    for name in (
        "CLOUDXFER_LOG_LOCATION",
        "CLOUDXFER_JOB_PLAN_LOCATION",
        "CLOUDXFER_CONCURRENCY_VALUE",
        "CLOUDXFER_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    return app_dir


@pytest.fixture
def captured_output() -> Generator[CapturedOutput, None, None]:
    """Temporarily replace the Rich consoles with in-memory buffers."""
    captured = CapturedOutput(out=io.StringIO(), err=io.StringIO())
    original_out, original_err = display_mod._console, display_mod._err_console
    display_mod._console = Console(file=captured.out, highlight=False, markup=False, width=200)
    display_mod._err_console = Console(file=captured.err, highlight=False, markup=False, width=200)
    try:
        yield captured
    finally:
        display_mod._console = original_out
        display_mod._err_console = original_err


@pytest.fixture
def lifecycle() -> LifecycleManager:
    return LifecycleManager()


@pytest.fixture
def text_lifecycle(lifecycle: LifecycleManager) -> LifecycleManager:
    lifecycle.set_output_format(OutputFormat.TEXT)
    return lifecycle
