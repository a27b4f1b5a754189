"""Classify submitted input and dispatch it.

A single submission has exactly one effect: a transcript append, a transition
into the building state, or a relaunch through the shell.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ..config import OrchestratorConfig
from ..services.rebuild import LaunchTarget, relaunch_with
from ..services.storage import StateStore, StateStoreError
from .events import Continue, Outcome, StartBuild
from .state import CLEARED_MARKER, SHELL_ESCAPE_PREFIX, SessionState

logger = logging.getLogger(__name__)

RELOAD_COMMAND = "/reload"
CLEAR_COMMAND = "/clear"
CONTEXT_COMMANDS: tuple[str, ...] = ("/commit", "/pr", "/issue")


def parse_context_command(text: str) -> tuple[str, str] | None:
    """Split ``/pr fixes the bug`` into ``("/pr", "fixes the bug")``.

    The command must be followed by whitespace or end the line, so ``/program``
    is not ``/pr``.
    """
    for name in CONTEXT_COMMANDS:
        if text == name:
            return name, ""
        if text.startswith(name) and text[len(name)].isspace():
            return name, text[len(name) :].strip()
    return None


def parse_shell_escape(text: str, zsh_mode: bool) -> str | None:
    """Return the shell command for an escape, or None when ``text`` is not one."""
    if text.startswith(SHELL_ESCAPE_PREFIX):
        command = text[len(SHELL_ESCAPE_PREFIX) :].strip()
    elif zsh_mode:
        command = text
    else:
        return None
    return command or None


class CommandRouter:
    def __init__(
        self,
        config: OrchestratorConfig,
        store: StateStore,
        target: LaunchTarget,
        argv: Sequence[str] = (),
    ) -> None:
        self._config = config
        self._store = store
        self._target = target
        self._argv = tuple(argv)

    def route(self, line: str, state: SessionState) -> Outcome:
        text = line.strip()

        if text == RELOAD_COMMAND:
            if state.is_building:
                logger.info("Ignoring %s: build already running", RELOAD_COMMAND)
                return Continue()
            state.is_building = True
            return Continue(effects=(StartBuild(),))

        context_cmd = parse_context_command(text)
        if context_cmd is not None:
            name, context = context_cmd
            state.append(line)
            if self._config.commands.context_mode == "stub":
                state.append(f"⚠️ {name} is not yet implemented")
                return Continue()
            command = self._config.commands.handlers[name]
            if context:
                command += " " + context
            self._save_before_relaunch(state, line)
            return relaunch_with(command, self._target, self._config.relaunch, self._argv)

        if text == CLEAR_COMMAND:
            state.message_log = [CLEARED_MARKER]
            state.reset_input()
            state.show_exit_confirm = False
            state.zsh_mode = False
            return Continue()

        if state.zsh_mode and not text:
            return Continue()

        shell_command = parse_shell_escape(text, state.zsh_mode)
        if shell_command is not None:
            state.append(f"$ {shell_command}")
            self._save_before_relaunch(state, line)
            return relaunch_with(shell_command, self._target, self._config.relaunch, self._argv)

        state.append(line)
        return Continue()

    def _save_before_relaunch(self, state: SessionState, line: str) -> None:
        try:
            self._store.save(state, last_command=line)
        except StateStoreError as e:
            logger.warning("State save before relaunch failed: %s", e)
            state.append(f"⚠️ Failed to save state: {e}")
