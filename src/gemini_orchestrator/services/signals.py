"""Turn process-termination signals into a single shutdown event."""

from __future__ import annotations

import asyncio
import logging
import platform
import signal
from collections.abc import Callable
from typing import Any

from ..cli.events import ShutdownRequested

logger = logging.getLogger(__name__)

_IS_WINDOWS = platform.system() == "Windows"

SHUTDOWN_SIGNALS: tuple[str, ...] = ("SIGINT", "SIGTERM", "SIGHUP", "SIGQUIT")


def _add_signal_handler(loop: asyncio.AbstractEventLoop, sig: int, callback: Any, *args: Any) -> bool:
    """Add a signal handler, returning False on Windows where it's unsupported."""
    if _IS_WINDOWS:
        return False
    try:
        loop.add_signal_handler(sig, callback, *args)
        return True
    except (NotImplementedError, RuntimeError):
        return False


def _remove_signal_handler(loop: asyncio.AbstractEventLoop, sig: int) -> None:
    """Remove a signal handler, no-op on Windows."""
    if _IS_WINDOWS:
        return
    try:
        loop.remove_signal_handler(sig)
    except NotImplementedError:
        pass


class SignalListener:
    """One-shot listener: the first signal posts ``ShutdownRequested``.

    Handlers stay installed after the first delivery so that a repeated
    signal is dropped instead of falling back to the default action.
    """

    def __init__(self, post: Callable[[ShutdownRequested], None]) -> None:
        self._post = post
        self._fired = False
        self._installed: list[int] = []
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def fired(self) -> bool:
        return self._fired

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        for name in SHUTDOWN_SIGNALS:
            sig = getattr(signal, name, None)
            if sig is None:
                continue
            if _add_signal_handler(loop, sig, self._on_signal, sig):
                self._installed.append(sig)
        logger.debug("Listening for %s", ", ".join(signal.Signals(s).name for s in self._installed))

    def stop(self) -> None:
        if self._loop is None:
            return
        for sig in self._installed:
            _remove_signal_handler(self._loop, sig)
        self._installed.clear()
        self._loop = None

    def _on_signal(self, sig: int) -> None:
        if self._fired:
            logger.info("Ignoring %s: shutdown already in progress", signal.Signals(sig).name)
            return
        self._fired = True
        logger.info("Received %s, requesting shutdown", signal.Signals(sig).name)
        self._post(ShutdownRequested(signum=sig))
