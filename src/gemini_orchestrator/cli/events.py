"""Events consumed by the state machine and the outcomes it returns."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class Key(Enum):
    CHAR = "char"
    ENTER = "enter"
    TAB = "tab"
    UP = "up"
    DOWN = "down"
    ESCAPE = "escape"
    BACKSPACE = "backspace"
    INTERRUPT = "interrupt"


# ---------------------------------------------------------------------------
# Inbound events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeyPress:
    key: Key
    char: str = ""


@dataclass(frozen=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True)
class BuildComplete:
    pass


@dataclass(frozen=True)
class BuildError:
    detail: str


@dataclass(frozen=True)
class ExitTimerFired:
    token: int


@dataclass(frozen=True)
class ShutdownRequested:
    signum: int


@dataclass(frozen=True)
class RelaunchFailed:
    detail: str


Event = Union[KeyPress, Resize, BuildComplete, BuildError, ExitTimerFired, ShutdownRequested, RelaunchFailed]


# ---------------------------------------------------------------------------
# Effects the loop runs on behalf of the state machine
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StartBuild:
    pass


@dataclass(frozen=True)
class ArmExitTimer:
    token: int
    delay: float


@dataclass(frozen=True)
class CancelExitTimer:
    pass


Effect = Union[StartBuild, ArmExitTimer, CancelExitTimer]


# ---------------------------------------------------------------------------
# Step outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Continue:
    effects: tuple[Effect, ...] = ()


@dataclass(frozen=True)
class Terminate:
    exit_code: int = 0


@dataclass(frozen=True)
class ReplaceImage:
    """Replace the process with ``path``; ``fatal`` marks a failure as unrecoverable."""

    path: str
    argv: tuple[str, ...]
    env: dict[str, str] | None = field(default=None, compare=False)
    fatal: bool = False


Outcome = Union[Continue, Terminate, ReplaceImage]
