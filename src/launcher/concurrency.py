"""Worker-pool sizing from the host's hardware concurrency.

The pool size the transfer engine starts with is a piecewise function of
the logical core count: a floor for small VMs, linear scaling in the
middle, and a ceiling so very large machines do not exhaust file and
socket handles.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from src.launcher.exceptions import ConfigurationError
from src.shared.constants import (
    AUTO_TUNE_VALUE,
    CONCURRENCY_PER_CORE,
    MAX_CONCURRENCY,
    MIN_CONCURRENCY,
)

logger = logging.getLogger(__name__)

# Core counts at which the policy switches region
_WEAK_MACHINE_CORES = 4
_POWERFUL_MACHINE_CORES = 19


def compute_concurrency_value(core_count: int) -> int:
    """Map a logical core count to a worker-pool size.

    Args:
        core_count: Number of schedulable execution units (>= 1).

    Returns:
        32 for 1-4 cores, ``16 * core_count`` for 5-18 cores, 300 above.

    Raises:
        ValueError: If *core_count* is less than 1.
    """
    if core_count < 1:
        raise ValueError(f"core_count must be >= 1, got {core_count}")

    if core_count <= _WEAK_MACHINE_CORES:
        return MIN_CONCURRENCY
    if core_count >= _POWERFUL_MACHINE_CORES:
        return MAX_CONCURRENCY
    return CONCURRENCY_PER_CORE * core_count


@dataclass
class ConcurrencySettings:
    """Parameters that govern how many operations the engine runs at once.

    ``computed_pool_size`` is always derived from ``hardware_concurrency``;
    callers influence the effective size only through ``override`` and
    ``explicit_handle_cap``.
    """

    hardware_concurrency: int
    explicit_handle_cap: int | None = None
    auto_tune: bool = False
    override: int | None = None
    computed_pool_size: int = field(init=False)

    def __post_init__(self) -> None:
        self.computed_pool_size = compute_concurrency_value(self.hardware_concurrency)

    @property
    def pool_size(self) -> int:
        """Pool size handed to the engine."""
        size = self.override if self.override is not None else self.computed_pool_size
        if self.explicit_handle_cap is not None:
            size = min(size, self.explicit_handle_cap)
        return size

    def to_dict(self) -> dict[str, int | bool | None]:
        """Serialise the settings, including the effective pool size."""
        return {
            "hardware_concurrency": self.hardware_concurrency,
            "explicit_handle_cap": self.explicit_handle_cap,
            "auto_tune": self.auto_tune,
            "override": self.override,
            "computed_pool_size": self.computed_pool_size,
            "pool_size": self.pool_size,
        }


def detect_hardware_concurrency() -> int:
    """Return the number of cores this process may be scheduled on."""
    if hasattr(os, "sched_getaffinity"):
        try:
            return max(1, len(os.sched_getaffinity(0)))
        except OSError:
            pass
    return os.cpu_count() or 1


def detect_handle_limit() -> int | None:
    """Return the soft open-file limit, or ``None`` if it is unknown/unlimited."""
    try:
        import resource
    except ImportError:
        # Windows has no rlimits
        return None

    soft, _hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    if soft == resource.RLIM_INFINITY or soft <= 0:
        return None
    return int(soft)


def new_concurrency_settings(
    core_count: int,
    max_handles: int | None = None,
    concurrency_value: str | None = None,
    prefer_auto_tune: bool = False,
) -> ConcurrencySettings:
    """Build :class:`ConcurrencySettings` for one invocation.

    Args:
        core_count: Detected hardware concurrency.
        max_handles: File/socket handle cap, if the platform exposes one.
        concurrency_value: Raw ``CLOUDXFER_CONCURRENCY_VALUE`` setting:
            empty for the computed default, ``AUTO`` to enable auto-tuning,
            or a positive integer that replaces the computed value.
        prefer_auto_tune: Enable auto-tuning regardless of the setting.

    Raises:
        ConfigurationError: If *concurrency_value* is not recognised.
    """
    override: int | None = None
    auto_tune = prefer_auto_tune

    raw = (concurrency_value or "").strip()
    if raw.upper() == AUTO_TUNE_VALUE:
        auto_tune = True
    elif raw:
        try:
            override = int(raw)
        except ValueError:
            override = 0
        if override < 1:
            raise ConfigurationError(
                f"Invalid concurrency value {raw!r}: expected a positive "
                f"integer or {AUTO_TUNE_VALUE!r}"
            )

    settings = ConcurrencySettings(
        hardware_concurrency=core_count,
        explicit_handle_cap=max_handles,
        auto_tune=auto_tune,
        override=override,
    )
    logger.debug("Concurrency settings: %s", settings.to_dict())
    return settings
