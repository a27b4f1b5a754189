"""Interactive event loop for the orchestrator."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from collections.abc import Sequence
from typing import Any

from ..config import BuildConfig, OrchestratorConfig
from ..services.rebuild import (
    LaunchTarget,
    RelaunchError,
    SelfReplaceError,
    exec_image,
    resolve_executable,
    run_rebuild,
    self_replace,
)
from ..services.signals import SignalListener
from ..services.storage import StateStore, StateStoreError, restore_into
from . import renderer
from .events import (
    ArmExitTimer,
    BuildError,
    CancelExitTimer,
    Continue,
    Effect,
    Event,
    ExitTimerFired,
    Key,
    KeyPress,
    Outcome,
    RelaunchFailed,
    ReplaceImage,
    Resize,
    StartBuild,
    Terminate,
)
from .machine import StateMachine
from .router import CommandRouter
from .state import SessionState

logger = logging.getLogger(__name__)

_REFRESH_INTERVAL = 0.1  # spinner frame rate while building

_KEY_NAMES: dict[str, Key] = {
    "enter": Key.ENTER,
    "tab": Key.TAB,
    "up": Key.UP,
    "down": Key.DOWN,
    "escape": Key.ESCAPE,
    "backspace": Key.BACKSPACE,
    "c-c": Key.INTERRUPT,
}


class EventLoop:
    """Single consumer of the event queue; the only code that touches session state."""

    def __init__(self, machine: StateMachine, target: LaunchTarget, build: BuildConfig) -> None:
        self.machine = machine
        self._target = target
        self._build = build
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._build_task: asyncio.Task[Any] | None = None
        self._exit_timer: asyncio.TimerHandle | None = None

    @property
    def state(self) -> SessionState:
        return self.machine.state

    @property
    def building(self) -> bool:
        return self._build_task is not None and not self._build_task.done()

    def post(self, event: Event) -> None:
        self._queue.put_nowait(event)

    async def next_event(self) -> Event:
        return await self._queue.get()

    def dispatch(self, event: Event) -> Terminate | ReplaceImage | None:
        """Apply one event; returns the terminal outcome, if any."""
        outcome: Outcome = self.machine.handle(event)
        if isinstance(outcome, Continue):
            for effect in outcome.effects:
                self._run_effect(effect)
            return None
        return outcome

    def _run_effect(self, effect: Effect) -> None:
        if isinstance(effect, StartBuild):
            if self.building:
                logger.warning("Build already running; ignoring reload")
                return
            self._build_task = asyncio.get_running_loop().create_task(run_rebuild(self._target, self._build))
            self._build_task.add_done_callback(self._on_build_done)
        elif isinstance(effect, ArmExitTimer):
            self._cancel_exit_timer()
            loop = asyncio.get_running_loop()
            self._exit_timer = loop.call_later(effect.delay, self.post, ExitTimerFired(effect.token))
        elif isinstance(effect, CancelExitTimer):
            self._cancel_exit_timer()

    def _cancel_exit_timer(self) -> None:
        if self._exit_timer is not None:
            self._exit_timer.cancel()
            self._exit_timer = None

    def _on_build_done(self, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Build task failed: %s", exc, exc_info=exc)
            self.post(BuildError(f"{type(exc).__name__}: {exc}"))
            return
        self.post(task.result())

    async def shutdown(self) -> None:
        self._cancel_exit_timer()
        if self.building and self._build_task is not None:
            self._build_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._build_task

    # ------------------------------------------------------------------
    # Terminal application
    # ------------------------------------------------------------------

    async def run(self) -> Terminate | ReplaceImage:
        """Run the terminal UI until an event ends it; the terminal is restored on return."""
        from prompt_toolkit.application import Application
        from prompt_toolkit.formatted_text import ANSI
        from prompt_toolkit.layout import Layout, Window
        from prompt_toolkit.layout.controls import FormattedTextControl

        control = FormattedTextControl(lambda: ANSI(renderer.render_view(self.state)), show_cursor=False)
        app: Application[Terminate | ReplaceImage] = Application(
            layout=Layout(Window(content=control, wrap_lines=False)),
            key_bindings=self._key_bindings(),
            full_screen=False,
            refresh_interval=_REFRESH_INTERVAL,
            before_render=self._check_size,
        )

        consumer: list[asyncio.Task[None]] = []

        def _start_consumer() -> None:
            consumer.append(asyncio.get_running_loop().create_task(self._consume(app)))

        try:
            return await app.run_async(pre_run=_start_consumer, handle_sigint=False)
        finally:
            for task in consumer:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    async def _consume(self, app: Any) -> None:
        while True:
            event = await self.next_event()
            outcome = self.dispatch(event)
            if outcome is not None:
                app.exit(result=outcome)
                return
            app.invalidate()

    def _check_size(self, app: Any) -> None:
        size = app.output.get_size()
        if (size.columns, size.rows) != (self.state.terminal_width, self.state.terminal_height):
            self.post(Resize(width=size.columns, height=size.rows))

    def _key_bindings(self) -> Any:
        from prompt_toolkit.key_binding import KeyBindings

        kb = KeyBindings()

        for name, key in _KEY_NAMES.items():

            def _post_key(event: Any, key: Key = key) -> None:
                self.post(KeyPress(key))

            kb.add(name)(_post_key)

        @kb.add("<any>")
        def _post_char(event: Any) -> None:
            if event.data and event.data.isprintable():
                self.post(KeyPress(Key.CHAR, event.data))

        return kb


def _restore_session(state: SessionState, store: StateStore) -> None:
    try:
        session = store.load()
    except StateStoreError as e:
        logger.warning("Could not restore session: %s", e)
        state.append(f"⚠️ Failed to restore session: {e}")
        store.cleanup()
        return
    if session is None:
        logger.info("No saved session at %s", store.path)
        return
    restore_into(state, session)
    store.cleanup()
    logger.info("Restored %d messages from %s", len(session.messages), store.path)


def build_event_loop(
    config: OrchestratorConfig,
    *,
    restore: bool = False,
    argv: Sequence[str] = (),
    target: LaunchTarget | None = None,
) -> EventLoop:
    store = StateStore(config.app.data_dir)
    state = SessionState()
    if restore:
        _restore_session(state, store)

    if target is None:
        target = resolve_executable(configured=config.app.executable)
    router = CommandRouter(config, store, target, argv)
    machine = StateMachine(
        state,
        router,
        lambda: self_replace(target, argv, os.environ),
        store=store,
        char_limit=config.app.char_limit,
        exit_confirm_timeout=config.app.exit_confirm_timeout,
        save_on_exit=config.app.save_on_exit,
    )
    return EventLoop(machine, target, config.build)


async def run_cli(config: OrchestratorConfig, *, restore: bool = False, argv: Sequence[str] = ()) -> int:
    """Run the orchestrator until exit; returns the process exit code.

    Relaunch and self-replace outcomes replace this process and do not return.
    A relaunch that cannot start is reported in the transcript and the UI
    resumes; a failed self-replace after a rebuild is fatal.
    """
    event_loop = build_event_loop(config, restore=restore, argv=argv)
    listener = SignalListener(event_loop.post)
    loop = asyncio.get_running_loop()
    listener.start(loop)
    try:
        while True:
            outcome = await event_loop.run()
            if isinstance(outcome, Terminate):
                await event_loop.shutdown()
                return outcome.exit_code

            listener.stop()
            try:
                exec_image(outcome)
            except RelaunchError as e:
                event_loop.post(RelaunchFailed(str(e)))
                listener.start(loop)
            except SelfReplaceError as e:
                renderer.render_error(f"{e}. The rebuilt program was not started; exiting.")
                return 1
    finally:
        listener.stop()
