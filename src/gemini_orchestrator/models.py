"""Pydantic models for the persisted session schema."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PersistedSession(BaseModel):
    """Session state carried across a relaunch through the state store."""

    messages: list[str] = Field(default_factory=list)
    zsh_mode: bool = False
    last_command: str = ""
    timestamp: int = 0
