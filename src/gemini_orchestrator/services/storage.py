"""State store carrying the session transcript across a relaunch.

The session is written to ``session-state.json`` in the data directory.
Writes go to a temporary file first and are renamed into place, so a reader
never sees a half-written document.
"""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path

from pydantic import ValidationError

from ..cli.state import SessionState
from ..models import PersistedSession

logger = logging.getLogger(__name__)

STATE_FILE_NAME = "session-state.json"


class StateStoreError(Exception):
    """Raised when the session cannot be written or read back."""


class StateStore:
    def __init__(self, data_dir: Path) -> None:
        self._data_dir = data_dir

    @property
    def path(self) -> Path:
        return self._data_dir / STATE_FILE_NAME

    def save(self, state: SessionState, last_command: str | None = None) -> None:
        snapshot = PersistedSession(
            messages=list(state.message_log),
            zsh_mode=state.zsh_mode,
            last_command=state.input_buffer if last_command is None else last_command,
            timestamp=int(time.time()),
        )
        tmp_path = self.path.with_name(STATE_FILE_NAME + ".tmp")
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(snapshot.model_dump(), indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StateStoreError(str(e)) from e
        logger.debug("Saved %d messages to %s", len(snapshot.messages), self.path)

    def load(self) -> PersistedSession | None:
        """Return the persisted session, or None when nothing was saved."""
        if not self.path.exists():
            return None
        try:
            raw = self.path.read_bytes()
            return PersistedSession.model_validate_json(raw)
        except OSError as e:
            raise StateStoreError(str(e)) from e
        except UnicodeDecodeError as e:
            raise StateStoreError(f"invalid session file {self.path}: not UTF-8") from e
        except ValidationError as e:
            raise StateStoreError(f"invalid session file {self.path}: {e.error_count()} error(s)") from e

    def cleanup(self) -> None:
        """Remove the state file; a missing file is fine."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove session file %s", self.path)


def restore_into(state: SessionState, session: PersistedSession) -> None:
    state.message_log = list(session.messages)
    state.zsh_mode = session.zsh_mode
