"""Session state owned by the event loop."""

from __future__ import annotations

from dataclasses import dataclass, field

COMMAND_PREFIX = "/"
SHELL_ESCAPE_PREFIX = "!"
HELP_TOGGLE = "?"

SLASH_COMMANDS: tuple[str, ...] = (
    "/commit",
    "/pr",
    "/issue",
    "/help",
    "/clear",
    "/reload",
)

CLEARED_MARKER = "/clear\n  ⎿  (no content)"


@dataclass
class SessionState:
    input_buffer: str = ""
    message_log: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    selected_suggestion: int = 0
    show_suggestions: bool = False
    show_help: bool = False
    is_building: bool = False
    show_exit_confirm: bool = False
    zsh_mode: bool = False
    terminal_width: int = 80
    terminal_height: int = 24
    exit_timer_token: int = 0

    def append(self, line: str) -> None:
        self.message_log.append(line)

    def reset_input(self) -> None:
        self.input_buffer = ""
        self.suggestions = []
        self.selected_suggestion = 0
        self.show_suggestions = False
        self.show_help = False

    @property
    def prompt(self) -> str:
        return "! " if self.zsh_mode else "> "

    @property
    def selected(self) -> str | None:
        if self.show_suggestions and self.suggestions:
            return self.suggestions[self.selected_suggestion]
        return None
