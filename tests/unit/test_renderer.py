"""Tests for the rich view renderer."""

from __future__ import annotations

import re

import pytest

from gemini_orchestrator.cli import renderer
from gemini_orchestrator.cli.renderer import DEFAULT_THEME, TITLE, overlay_lines, render_error, render_view
from gemini_orchestrator.cli.state import CLEARED_MARKER, SessionState

_ANSI = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")


def _plain(state: SessionState) -> str:
    return _ANSI.sub("", render_view(state, now=0.0))


class TestOverlayLines:
    def test_default_hint(self) -> None:
        assert overlay_lines(SessionState()) == [("? for shortcuts", DEFAULT_THEME.hint)]

    def test_exit_confirm_wins(self) -> None:
        state = SessionState(show_exit_confirm=True, show_help=True, show_suggestions=True, suggestions=["/pr"])
        lines = overlay_lines(state)
        assert [text for text, _ in lines] == ["Press Ctrl+C again to exit (or Esc to cancel)"]

    def test_suggestions_with_selection(self) -> None:
        state = SessionState(show_suggestions=True, suggestions=["/commit", "/clear"], selected_suggestion=1)
        lines = overlay_lines(state)
        assert lines[0] == ("/commit", DEFAULT_THEME.suggestion)
        assert lines[1] == ("/clear", DEFAULT_THEME.selected_suggestion)
        assert lines[-1][0] == "↑/↓ to navigate • Tab to complete • Enter to execute"

    def test_help_uses_shortcut_layout(self) -> None:
        lines = overlay_lines(SessionState(show_help=True, terminal_width=200))
        assert len(lines) == 4
        assert lines[0][0].startswith("! for bash mode")


class TestRenderView:
    def test_title_and_prompt(self) -> None:
        text = _plain(SessionState())
        assert TITLE in text
        assert "> █" in text
        assert "? for shortcuts" in text

    def test_messages_are_prefixed(self) -> None:
        text = _plain(SessionState(message_log=["hello", "$ ls"]))
        assert "> hello" in text
        assert "> $ ls" in text

    def test_multiline_message(self) -> None:
        text = _plain(SessionState(message_log=[CLEARED_MARKER]))
        assert "> /clear" in text
        assert "⎿  (no content)" in text

    def test_log_is_trimmed_to_height(self) -> None:
        state = SessionState(message_log=[f"line {i}" for i in range(100)], terminal_height=20)
        text = _plain(state)
        assert "line 99" in text
        assert "line 0\n" not in text
        assert "line 80" not in text

    def test_zsh_prompt(self) -> None:
        text = _plain(SessionState(zsh_mode=True, input_buffer="git st"))
        assert "! git st█" in text

    def test_building_replaces_input(self) -> None:
        text = _plain(SessionState(is_building=True, input_buffer="hidden"))
        assert "Building and reloading..." in text
        assert "hidden" not in text
        assert "? for shortcuts" not in text

    def test_markup_is_not_interpreted(self) -> None:
        text = _plain(SessionState(message_log=["[bold]raw[/bold]"]))
        assert "[bold]raw[/bold]" in text

    @pytest.mark.parametrize("width", [1, 20, 80, 200])
    def test_any_width_renders(self, width: int) -> None:
        text = _plain(SessionState(terminal_width=width, show_help=True))
        assert "█" in text


class TestRenderError:
    def test_prints_to_console(self, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch) -> None:
        from rich.console import Console

        monkeypatch.setattr(renderer, "console", Console(stderr=True, force_terminal=False, width=200))
        render_error("exec /opt/bin/orch failed [x]")
        err = capsys.readouterr().err
        assert "Error:" in err
        assert "exec /opt/bin/orch failed [x]" in err
