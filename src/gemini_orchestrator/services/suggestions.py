"""Slash-command suggestions filtered against live input."""

from __future__ import annotations

from collections.abc import Sequence


def filter_commands(registry: Sequence[str], prefix: str) -> list[str]:
    """Return every registry entry starting with ``prefix``, in registry order."""
    return [cmd for cmd in registry if cmd.startswith(prefix)]


def next_selection(previous: Sequence[str], current: Sequence[str], index: int) -> int:
    """Selection index after the suggestion list is recomputed.

    An unchanged list keeps the index (clamped if it no longer fits); any other
    list starts again at the first entry.
    """
    if not current:
        return 0
    if not previous or list(previous) != list(current):
        return 0
    return min(max(index, 0), len(current) - 1)
