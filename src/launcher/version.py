"""Dotted ``major.minor.patch`` versions with numeric ordering."""

from __future__ import annotations

from dataclasses import dataclass

from src.launcher.exceptions import InvalidVersionError


@dataclass(frozen=True, order=True)
class Version:
    """An immutable release version compared component by component."""

    major: int
    minor: int
    patch: int

    @classmethod
    def parse(cls, raw: str) -> Version:
        """Parse ``"major.minor.patch"``; surrounding whitespace is ignored.

        Raises:
            InvalidVersionError: If *raw* is not three non-negative integers.
        """
        parts = raw.strip().split(".")
        if len(parts) != 3 or not all(p.isascii() and p.isdigit() for p in parts):
            raise InvalidVersionError(raw)
        major, minor, patch = (int(p) for p in parts)
        return cls(major, minor, patch)

    def older_than(self, other: Version) -> bool:
        return self < other

    def newer_than(self, other: Version) -> bool:
        return self > other

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"
