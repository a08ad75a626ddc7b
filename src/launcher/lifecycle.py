"""Process-wide output and termination manager.

One :class:`LifecycleManager` exists per invocation.  The CLI constructs it
and hands it to every component that needs to talk to the user.  Messages
are buffered and only rendered by :meth:`LifecycleManager.exit`, which
resolves the exit code the top-level driver terminates with.

Thread safety: all state is guarded by a ``threading.Lock`` because
commands may run in worker threads while the version check appends from
the event loop.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

from src.launcher import display
from src.launcher.exceptions import ConfigurationError, LifecycleError

logger = logging.getLogger(__name__)


class OutputFormat(str, Enum):
    """Rendering mode for program messages."""

    TEXT = "text"
    JSON = "json"

    @classmethod
    def parse(cls, raw: str) -> OutputFormat:
        """Parse a ``--output-type`` value (case-insensitive).

        Raises:
            ConfigurationError: If *raw* is not a known format.
        """
        value = (raw or "").strip().lower()
        for member in cls:
            if member.value == value:
                return member
        choices = ", ".join(m.value for m in cls)
        raise ConfigurationError(
            f"Invalid output type {raw!r}. The choices include: {choices}."
        )


class ExitCode(IntEnum):
    SUCCESS = 0
    FAILURE = 1


class MessageSeverity(str, Enum):
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class Message:
    """A single pending user-facing message."""

    severity: MessageSeverity
    text: str


@dataclass
class ExitState:
    """Snapshot of what :meth:`LifecycleManager.exit` will render."""

    format: OutputFormat | None = None
    pending_messages: list[Message] = field(default_factory=list)
    exit_code: int = ExitCode.SUCCESS
    finalized: bool = False

    def to_document(self) -> dict[str, Any]:
        """Build the JSON-mode output document."""
        return {
            "messages": [
                {"severity": m.severity.value, "text": m.text}
                for m in self.pending_messages
            ],
            "exit_code": int(self.exit_code),
        }


class LifecycleManager:
    """Controls output format, message emission and the final exit code.

    Usage::

        lcm = LifecycleManager()
        lcm.set_output_format(OutputFormat.TEXT)
        lcm.info("done")
        code = lcm.exit()     # flushes, returns 0
        raise typer.Exit(code)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._format: OutputFormat | None = None
        self._messages: list[Message] = []
        self._error_seen = False
        self._finalized = False
        self._exit_code: int | None = None

    @property
    def output_format(self) -> OutputFormat | None:
        return self._format

    @property
    def finalized(self) -> bool:
        """Whether :meth:`exit` has already flushed the messages."""
        return self._finalized

    def set_output_format(self, fmt: OutputFormat) -> None:
        """Install the rendering mode.  Must be called exactly once.

        Raises:
            LifecycleError: On a second call.
        """
        with self._lock:
            if self._format is not None:
                raise LifecycleError(
                    f"Output format already set to {self._format.value!r}"
                )
            self._format = OutputFormat(fmt)

    def info(self, text: str) -> None:
        """Queue an informational message (stdout in text mode)."""
        self._append(MessageSeverity.INFO, text)

    def error(self, text: str) -> None:
        """Queue an error message and mark the invocation as failed."""
        self._append(MessageSeverity.ERROR, text)

    def _append(self, severity: MessageSeverity, text: str) -> None:
        with self._lock:
            if self._finalized:
                # Late writers (e.g. an abandoned version check) are dropped
                logger.debug("Dropping %s message after exit: %s", severity.value, text)
                return
            if self._format is None:
                raise LifecycleError(
                    "set_output_format() must be called before emitting messages"
                )
            self._messages.append(Message(severity, text.rstrip("\n")))
            if severity is MessageSeverity.ERROR:
                self._error_seen = True

    def exit_state(self) -> ExitState:
        """Return a copy of the current exit state."""
        with self._lock:
            return ExitState(
                format=self._format,
                pending_messages=list(self._messages),
                exit_code=self._resolve_code(None),
                finalized=self._finalized,
            )

    def exit(self, code: int | None = None) -> int:
        """Flush all pending messages and resolve the exit code.

        This is the only place messages reach the terminal.  The caller
        (the CLI entry point) performs the actual process termination with
        the returned code.

        Args:
            code: Explicit exit code.  When ``None`` the code is FAILURE if
                :meth:`error` was ever called, otherwise SUCCESS.

        Returns:
            The resolved exit code.  Repeated calls return the first result
            without rendering again.
        """
        with self._lock:
            if self._finalized:
                return self._exit_code
            self._finalized = True
            self._exit_code = self._resolve_code(code)
            state = ExitState(
                format=self._format or OutputFormat.TEXT,
                pending_messages=list(self._messages),
                exit_code=self._exit_code,
                finalized=True,
            )

        if state.format is OutputFormat.JSON:
            display.print_json_document(state.to_document())
        else:
            display.print_text_lines(state.pending_messages)

        logger.info(
            "Exiting with code %d (%d message(s))",
            state.exit_code, len(state.pending_messages),
        )
        return state.exit_code

    def _resolve_code(self, code: int | None) -> int:
        if code is not None:
            return int(code)
        return int(ExitCode.FAILURE if self._error_seen else ExitCode.SUCCESS)
