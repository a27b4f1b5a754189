"""Multi-column layout for the shortcut help overlay."""

from __future__ import annotations

from collections.abc import Sequence

from rich.cells import cell_len

MODE_SHORTCUTS: tuple[str, ...] = (
    "! for bash mode",
    "/ for commands",
    "@ for file paths",
    "# to memorize",
)

GENERAL_SHORTCUTS: tuple[str, ...] = (
    "double tap esc to clear input",
    "shift + tab to auto-accept edits",
    "ctrl + r for verbose output",
    "shift + e for newline",
    "ctrl + _ to undo",
    "ctrl + z to suspend",
)

_MODE_GAP = 8
_GENERAL_GAP = 4
_WIDTH_MARGIN = 10


def distribute_shortcuts(
    terminal_width: int,
    mode_shortcuts: Sequence[str] = MODE_SHORTCUTS,
    general_shortcuts: Sequence[str] = GENERAL_SHORTCUTS,
) -> list[str]:
    """Lay the shortcuts out in the widest of three, two or one columns that fits."""
    formatted = _try_three_columns(terminal_width, mode_shortcuts, general_shortcuts)
    if formatted is not None:
        return formatted

    formatted = _try_two_columns(terminal_width, mode_shortcuts, general_shortcuts)
    if formatted is not None:
        return formatted

    return [*mode_shortcuts, *general_shortcuts]


def _try_three_columns(width: int, modes: Sequence[str], general: Sequence[str]) -> list[str] | None:
    per_col = (len(general) + 1) // 2
    rows = max(len(modes), per_col)
    grid = [["", "", ""] for _ in range(rows)]

    for i, shortcut in enumerate(modes):
        grid[i][0] = shortcut
    for i, shortcut in enumerate(general):
        grid[i % per_col][1 + i // per_col] = shortcut

    return _format_grid(grid, (_MODE_GAP, _GENERAL_GAP), width)


def _try_two_columns(width: int, modes: Sequence[str], general: Sequence[str]) -> list[str] | None:
    rows = max(len(modes), len(general))
    grid = [["", ""] for _ in range(rows)]

    for i, shortcut in enumerate(modes):
        grid[i][0] = shortcut
    for i, shortcut in enumerate(general):
        grid[i][1] = shortcut

    return _format_grid(grid, (_MODE_GAP,), width)


def _format_grid(grid: list[list[str]], gaps: tuple[int, ...], width: int) -> list[str] | None:
    """Render ``grid`` row by row, or None when it is wider than ``width - 10``.

    ``gaps[i]`` is the spacing placed before column ``i + 1``.
    """
    columns = len(gaps) + 1
    max_widths = [0] * columns
    for row in grid:
        for i, cell in enumerate(row):
            max_widths[i] = max(max_widths[i], cell_len(cell))

    if sum(max_widths) + sum(gaps) > width - _WIDTH_MARGIN:
        return None

    formatted: list[str] = []
    for row in grid:
        line = row[0]
        for i in range(1, columns):
            cell = row[i]
            if not cell:
                continue
            padding = max_widths[i - 1] - cell_len(row[i - 1]) + gaps[i - 1]
            line += " " * padding + cell
        if line.strip():
            formatted.append(line)
    return formatted
