"""Root command-line options shared by every cloudxfer command."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class RootOptions:
    """Values of the flags declared on the root command."""

    cap_mbps: int = 0
    output_type: str = "text"
    cancel_from_stdin: bool = False

    def __post_init__(self) -> None:
        if self.cap_mbps < 0:
            raise ValueError(f"cap_mbps must be >= 0, got {self.cap_mbps}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
