"""Rich-based rendering of the session state."""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.spinner import Spinner
from rich.text import Text

from .layout import distribute_shortcuts
from .state import SessionState

console = Console(stderr=True)

TITLE = "Gemini CLI Orchestrator"

_EXIT_CONFIRM_HINT = "Press Ctrl+C again to exit (or Esc to cancel)"
_SUGGESTION_HINT = "↑/↓ to navigate • Tab to complete • Enter to execute"
_DEFAULT_HINT = "? for shortcuts"
_BUILDING_LABEL = "Building and reloading..."

# title + blank, blank after log, input box (3), hint lines
_CHROME_LINES = 8


@dataclass(frozen=True)
class Theme:
    title: str = "#ffffd7 on #5f5fd7"
    message: str = "#CBC8C6"
    suggestion: str = "#CBC8C6"
    selected_suggestion: str = "#4E5EDE"
    border: str = "#CBC8C6"
    hint: str = "#CBC8C6"
    blurred: str = "#585858"
    spinner: str = "#ff5faf"
    zsh_prompt: str = "#FE8BC4"


DEFAULT_THEME = Theme()


def _log_lines(state: SessionState) -> list[str]:
    lines: list[str] = []
    for message in state.message_log:
        lines.extend(f"> {message}".split("\n"))
    budget = max(1, state.terminal_height - _CHROME_LINES)
    return lines[-budget:]


def _input_box(state: SessionState, theme: Theme) -> Panel:
    prompt_style = theme.zsh_prompt if state.zsh_mode else ""
    text = Text(state.prompt, style=prompt_style)
    text.append(state.input_buffer)
    text.append("█")
    return Panel(
        text,
        box=box.ROUNDED,
        border_style=theme.border,
        padding=(0, 1),
        width=max(10, state.terminal_width - 2),
    )


def render_view(state: SessionState, theme: Theme = DEFAULT_THEME, now: float | None = None) -> str:
    """Render the whole view as an ANSI string sized to the terminal."""
    view = Console(
        width=max(10, state.terminal_width),
        force_terminal=True,
        color_system="truecolor",
        highlight=False,
    )
    with view.capture() as capture:
        view.print(Text(f" {TITLE} ", style=theme.title))
        view.print()

        log_lines = _log_lines(state)
        if log_lines:
            for line in log_lines:
                view.print(Text(line, style=theme.message))
            view.print()

        if state.is_building:
            spinner = Spinner("dots", text=Text(_BUILDING_LABEL, style=theme.suggestion), style=theme.spinner)
            view.print(spinner.render(time.monotonic() if now is None else now))
            view.print()
        else:
            view.print(_input_box(state, theme))
            for line, style in overlay_lines(state, theme):
                view.print(Text("  " + line, style=style))
    return capture.get()


def overlay_lines(state: SessionState, theme: Theme = DEFAULT_THEME) -> list[tuple[str, str]]:
    """Lines under the input box: exit confirmation, then suggestions, then help, then the default hint."""
    if state.show_exit_confirm:
        return [(_EXIT_CONFIRM_HINT, theme.hint)]
    if state.show_suggestions and state.suggestions:
        rows = [
            (suggestion, theme.selected_suggestion if i == state.selected_suggestion else theme.suggestion)
            for i, suggestion in enumerate(state.suggestions)
        ]
        rows.append(("", theme.blurred))
        rows.append((_SUGGESTION_HINT, theme.blurred))
        return rows
    if state.show_help:
        return [(line, theme.suggestion) for line in distribute_shortcuts(state.terminal_width)]
    return [(_DEFAULT_HINT, theme.hint)]


def render_error(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    sys.stderr.flush()
