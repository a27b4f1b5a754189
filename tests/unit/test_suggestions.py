"""Tests for slash-command filtering and selection carry-over."""

from __future__ import annotations

from gemini_orchestrator.cli.state import SLASH_COMMANDS
from gemini_orchestrator.services.suggestions import filter_commands, next_selection


class TestFilterCommands:
    def test_prefix_keeps_registry_order(self) -> None:
        assert filter_commands(SLASH_COMMANDS, "/c") == ["/commit", "/clear"]

    def test_bare_slash_matches_everything(self) -> None:
        assert filter_commands(SLASH_COMMANDS, "/") == list(SLASH_COMMANDS)

    def test_exact_command_matches_itself(self) -> None:
        assert filter_commands(SLASH_COMMANDS, "/reload") == ["/reload"]

    def test_unknown_prefix_is_empty(self) -> None:
        assert filter_commands(SLASH_COMMANDS, "/zz") == []

    def test_trailing_text_stops_matching(self) -> None:
        assert filter_commands(SLASH_COMMANDS, "/pr fixes") == []

    def test_every_result_starts_with_prefix(self) -> None:
        for prefix in ("/", "/c", "/co", "/i", "/re"):
            assert all(cmd.startswith(prefix) for cmd in filter_commands(SLASH_COMMANDS, prefix))


class TestNextSelection:
    def test_changed_list_resets_to_zero(self) -> None:
        assert next_selection(["/commit", "/clear"], ["/clear"], 1) == 0

    def test_unchanged_list_keeps_index(self) -> None:
        assert next_selection(["/commit", "/clear"], ["/commit", "/clear"], 1) == 1

    def test_index_is_clamped(self) -> None:
        assert next_selection(["/commit", "/clear"], ["/commit", "/clear"], 7) == 1

    def test_empty_list_is_zero(self) -> None:
        assert next_selection(["/commit"], [], 3) == 0

    def test_first_list_starts_at_zero(self) -> None:
        assert next_selection([], ["/commit", "/clear"], 4) == 0
