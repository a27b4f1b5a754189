"""Input-mode state machine.

``StateMachine.handle`` is the loop's step function: it applies one event to
the session state and returns what the loop must do next. Off-loop work
(build, exit-confirm timer) is requested through ``Continue.effects``; the
two terminal paths are explicit ``Terminate`` and ``ReplaceImage`` results.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from ..services.storage import StateStore, StateStoreError
from ..services.suggestions import filter_commands, next_selection
from .events import (
    ArmExitTimer,
    BuildComplete,
    BuildError,
    CancelExitTimer,
    Continue,
    Event,
    ExitTimerFired,
    Key,
    KeyPress,
    Outcome,
    RelaunchFailed,
    ReplaceImage,
    Resize,
    ShutdownRequested,
    Terminate,
)
from .router import CommandRouter
from .state import COMMAND_PREFIX, HELP_TOGGLE, SHELL_ESCAPE_PREFIX, SLASH_COMMANDS, SessionState

logger = logging.getLogger(__name__)


class StateMachine:
    def __init__(
        self,
        state: SessionState,
        router: CommandRouter,
        self_replace: Callable[[], ReplaceImage],
        *,
        store: StateStore | None = None,
        registry: Sequence[str] = SLASH_COMMANDS,
        char_limit: int = 200,
        exit_confirm_timeout: float = 1.0,
        save_on_exit: bool = False,
    ) -> None:
        self.state = state
        self._router = router
        self._self_replace = self_replace
        self._store = store
        self._registry = tuple(registry)
        self._char_limit = char_limit
        self._exit_confirm_timeout = exit_confirm_timeout
        self._save_on_exit = save_on_exit

    def handle(self, event: Event) -> Outcome:
        if isinstance(event, KeyPress):
            return self._on_key(event)
        if isinstance(event, Resize):
            self.state.terminal_width = max(1, event.width)
            self.state.terminal_height = max(1, event.height)
            return Continue()
        if isinstance(event, ExitTimerFired):
            return self._on_exit_timer(event)
        if isinstance(event, BuildComplete):
            return self._on_build_complete()
        if isinstance(event, BuildError):
            return self._on_build_error(event)
        if isinstance(event, ShutdownRequested):
            logger.info("Shutdown requested by signal %d", event.signum)
            self._best_effort_save()
            return Terminate(0)
        if isinstance(event, RelaunchFailed):
            self.state.is_building = False
            self.state.reset_input()
            self.state.append(f"❌ Failed to relaunch: {event.detail}")
            return Continue()
        raise TypeError(f"Unhandled event: {event!r}")

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def _on_key(self, event: KeyPress) -> Outcome:
        s = self.state
        if event.key is Key.INTERRUPT:
            return self._on_interrupt()
        if s.is_building:
            return Continue()

        effects: tuple = ()
        if s.show_exit_confirm:
            if event.key is Key.ESCAPE:
                return self._disarm()
            # Any other key supersedes the pending confirmation.
            effects = self._disarm().effects

        outcome = self._on_input_key(event)
        if isinstance(outcome, Continue) and effects:
            return Continue(effects=effects + outcome.effects)
        return outcome

    def _on_input_key(self, event: KeyPress) -> Outcome:
        s = self.state
        key = event.key

        if key is Key.CHAR:
            self._on_char(event.char)
        elif key is Key.ENTER:
            return self._submit()
        elif key is Key.TAB:
            selected = s.selected
            if selected is not None:
                s.input_buffer = selected + " "
                self._update_suggestions()
        elif key in (Key.UP, Key.DOWN):
            if s.show_suggestions and s.suggestions:
                step = -1 if key is Key.UP else 1
                s.selected_suggestion = (s.selected_suggestion + step) % len(s.suggestions)
        elif key is Key.BACKSPACE:
            if s.input_buffer:
                s.input_buffer = s.input_buffer[:-1]
                self._update_suggestions()
            else:
                s.show_help = False
                s.zsh_mode = False
                self._update_suggestions()
        elif key is Key.ESCAPE:
            s.input_buffer = ""
            s.show_help = False
            self._update_suggestions()
        return Continue()

    def _on_char(self, text: str) -> None:
        s = self.state
        if not text:
            return
        if text == HELP_TOGGLE and not s.input_buffer and not s.show_suggestions:
            s.show_help = not s.show_help
            return
        if text == SHELL_ESCAPE_PREFIX and not s.input_buffer:
            s.zsh_mode = not s.zsh_mode
            s.show_help = False
            return
        room = self._char_limit - len(s.input_buffer)
        if room <= 0:
            return
        s.input_buffer += text[:room]
        self._update_suggestions()

    def _update_suggestions(self) -> None:
        s = self.state
        if s.input_buffer.startswith(COMMAND_PREFIX):
            s.show_help = False
            s.zsh_mode = False
            previous = s.suggestions
            s.suggestions = filter_commands(self._registry, s.input_buffer)
            s.selected_suggestion = next_selection(previous, s.suggestions, s.selected_suggestion)
            s.show_suggestions = bool(s.suggestions)
        else:
            s.suggestions = []
            s.selected_suggestion = 0
            s.show_suggestions = False

    def _submit(self) -> Outcome:
        s = self.state
        selected = s.selected
        line = selected if selected is not None else s.input_buffer
        if not line:
            return Continue()

        s.input_buffer = ""
        outcome = self._router.route(line, s)
        if isinstance(outcome, Continue):
            s.reset_input()
        return outcome

    # ------------------------------------------------------------------
    # Exit confirmation
    # ------------------------------------------------------------------

    def _on_interrupt(self) -> Outcome:
        s = self.state
        if s.show_exit_confirm:
            if self._save_on_exit:
                self._best_effort_save()
            return Terminate(0)
        if s.is_building:
            return Continue()
        s.show_exit_confirm = True
        s.exit_timer_token += 1
        return Continue(effects=(ArmExitTimer(token=s.exit_timer_token, delay=self._exit_confirm_timeout),))

    def _disarm(self) -> Continue:
        self.state.show_exit_confirm = False
        return Continue(effects=(CancelExitTimer(),))

    def _on_exit_timer(self, event: ExitTimerFired) -> Outcome:
        s = self.state
        if s.show_exit_confirm and event.token == s.exit_timer_token:
            s.show_exit_confirm = False
        return Continue()

    # ------------------------------------------------------------------
    # Build results
    # ------------------------------------------------------------------

    def _on_build_complete(self) -> Outcome:
        if not self.state.is_building:
            logger.warning("Build completion arrived outside a build; ignoring")
            return Continue()
        self.state.is_building = False
        return self._self_replace()

    def _on_build_error(self, event: BuildError) -> Outcome:
        if not self.state.is_building:
            logger.warning("Build error arrived outside a build; ignoring")
            return Continue()
        self.state.is_building = False
        self.state.append(f"❌ Build failed: {event.detail}")
        return Continue()

    def _best_effort_save(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(self.state)
        except StateStoreError as e:
            logger.warning("State save during shutdown failed: %s", e)
            self.state.append(f"⚠️ Failed to save state: {e}")
