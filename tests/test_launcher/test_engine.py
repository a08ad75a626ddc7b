"""Tests for the engine bootstrap contract and LocalEngine."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.launcher.concurrency import ConcurrencySettings
from src.launcher.engine import EngineBootstrap, LocalEngine
from src.launcher.exceptions import EngineStartupError, LauncherError


@pytest.fixture
def settings() -> ConcurrencySettings:
    return ConcurrencySettings(hardware_concurrency=8)


class TestLocalEngine:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(LocalEngine(), EngineBootstrap)

    def test_start_creates_directories(self, tmp_path: Path, settings) -> None:
        engine = LocalEngine()
        plans, logs = tmp_path / "a" / "plans", tmp_path / "b" / "logs"
        engine.start(settings, 8_000_000, plans, logs, False)
        assert plans.is_dir()
        assert logs.is_dir()
        assert engine.started is True
        assert engine.settings is settings
        assert engine.throughput_cap_bps == 8_000_000

    def test_zero_cap_means_uncapped(self, tmp_path: Path, settings) -> None:
        engine = LocalEngine()
        engine.start(settings, 0, tmp_path / "p", tmp_path / "l", True)
        assert engine.throughput_cap_bps == 0
        assert engine.provide_advice is True

    def test_negative_cap_rejected(self, tmp_path: Path, settings) -> None:
        with pytest.raises(EngineStartupError, match="Throughput cap"):
            LocalEngine().start(settings, -1, tmp_path / "p", tmp_path / "l", False)

    def test_second_start_rejected(self, tmp_path: Path, settings) -> None:
        engine = LocalEngine()
        engine.start(settings, 0, tmp_path / "p", tmp_path / "l", False)
        with pytest.raises(EngineStartupError, match="already started"):
            engine.start(settings, 0, tmp_path / "p", tmp_path / "l", False)

    def test_unwritable_directory(self, tmp_path: Path, settings) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        with pytest.raises(EngineStartupError) as exc_info:
            LocalEngine().start(settings, 0, blocker / "plans", tmp_path / "l", False)
        assert isinstance(exc_info.value, LauncherError)
        assert isinstance(exc_info.value.cause, OSError)
