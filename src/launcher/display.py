"""Rich-based rendering of lifecycle messages.

Uses module-level :class:`~rich.console.Console` singletons for stdout and
stderr so every message leaves the process through the same two consoles.
Markup and highlighting are disabled: message text is printed verbatim.

.. rubric:: Design decisions

* **Functions, not a class** -- rendering is stateless; the
  :class:`~src.launcher.lifecycle.LifecycleManager` owns ordering and
  decides when to render.
* **One document in JSON mode** -- the whole exit state is serialised in a
  single ``json.dumps`` call so scripted callers can parse stdout directly.
"""

from __future__ import annotations

import json
from typing import Any, Iterable

from rich.console import Console

# ---------------------------------------------------------------------------
# Module-level Console singletons
# ---------------------------------------------------------------------------

_console = Console(highlight=False, markup=False, emoji=False, soft_wrap=True)
_err_console = Console(
    stderr=True, highlight=False, markup=False, emoji=False, soft_wrap=True
)


# ---------------------------------------------------------------------------
# Display functions
# ---------------------------------------------------------------------------


def print_text_lines(messages: Iterable[Any]) -> None:
    """Print one plain line per message, in order.

    Parameters
    ----------
    messages:
        ``Message`` instances (or duck-typed objects with ``severity`` and
        ``text``).  Errors go to stderr, everything else to stdout.
    """
    for message in messages:
        severity = _get_attr(message, "severity", "info")
        if hasattr(severity, "value"):
            severity = severity.value
        console = _err_console if severity == "error" else _console
        console.out(_get_attr(message, "text", ""), highlight=False)


def print_json_document(document: dict[str, Any]) -> None:
    """Print *document* to stdout as a single line of JSON.

    Parameters
    ----------
    document:
        JSON-serialisable mapping, typically built by
        :meth:`ExitState.to_document`.
    """
    _console.out(json.dumps(document, default=str), highlight=False)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_attr(obj: Any, name: str, default: Any = None) -> Any:
    """Get attribute from object or dict, with fallback to default."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)
