"""Configuration loader: YAML file with environment variable fallbacks."""

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

_APP_DIR_NAME = "gemini-orchestrator"

_CONTEXT_MODES = ("relaunch", "stub")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Placeholders: {python} interpreter, {source} entry source, {output} executable path
DEFAULT_BUILD_COMMAND: tuple[str, ...] = (
    "{python}",
    "-m",
    "zipapp",
    "{source}",
    "-o",
    "{output}",
    "-p",
    "/usr/bin/env python3",
    "-m",
    "gemini_orchestrator.__main__:main",
)

DEFAULT_HANDLERS: dict[str, str] = {
    "/commit": "auto-commit",
    "/pr": "auto-pr",
    "/issue": "auto-issue",
}


@dataclass
class AppSettings:
    data_dir: Path = field(default_factory=lambda: _resolve_data_dir())
    executable: str = ""  # empty = derive from argv[0]
    exit_confirm_timeout: float = 1.0
    char_limit: int = 200
    save_on_exit: bool = False
    log_level: str = "WARNING"


@dataclass
class BuildConfig:
    command: list[str] = field(default_factory=lambda: list(DEFAULT_BUILD_COMMAND))
    source: str = "src"
    timeout: int = 300


@dataclass
class RelaunchConfig:
    shell: str = "zsh"


@dataclass
class CommandsConfig:
    context_mode: str = "relaunch"  # "stub" disables the context-command relaunch
    handlers: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HANDLERS))


@dataclass
class OrchestratorConfig:
    app: AppSettings = field(default_factory=AppSettings)
    build: BuildConfig = field(default_factory=BuildConfig)
    relaunch: RelaunchConfig = field(default_factory=RelaunchConfig)
    commands: CommandsConfig = field(default_factory=CommandsConfig)


def _resolve_data_dir() -> Path:
    """Resolve the data directory: $XDG_CONFIG_HOME/gemini-orchestrator, else ~/.config/gemini-orchestrator."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / _APP_DIR_NAME


def _get_config_path(data_dir: Path | None = None) -> Path:
    if data_dir:
        return data_dir / "config.yaml"
    env_dir = os.environ.get("GEMINI_ORCH_DATA_DIR")
    if env_dir:
        return Path(os.path.expanduser(env_dir)) / "config.yaml"
    return _resolve_data_dir() / "config.yaml"


def _as_bool(value: Any) -> bool:
    return str(value).lower() not in ("false", "0", "no", "off", "")


def _parse_build(raw: dict[str, Any]) -> BuildConfig:
    command_raw = raw.get("command", list(DEFAULT_BUILD_COMMAND))
    if isinstance(command_raw, str):
        command = shlex.split(command_raw)
    elif isinstance(command_raw, list):
        command = [str(part) for part in command_raw]
    else:
        raise ValueError("build.command must be a string or a list of arguments")
    if not command:
        raise ValueError("build.command must not be empty")

    try:
        timeout = int(raw.get("timeout", 300))
    except (ValueError, TypeError):
        raise ValueError("build.timeout must be an integer number of seconds") from None
    if timeout <= 0:
        raise ValueError("build.timeout must be positive")

    return BuildConfig(command=command, source=str(raw.get("source", "src")), timeout=timeout)


def _parse_commands(raw: dict[str, Any]) -> CommandsConfig:
    context_mode = str(raw.get("context_mode") or os.environ.get("GEMINI_ORCH_CONTEXT_MODE", "relaunch")).lower()
    if context_mode not in _CONTEXT_MODES:
        raise ValueError(f"commands.context_mode must be one of {', '.join(_CONTEXT_MODES)}, got {context_mode!r}")

    handlers = dict(DEFAULT_HANDLERS)
    handlers_raw = raw.get("handlers", {}) or {}
    if not isinstance(handlers_raw, dict):
        raise ValueError("commands.handlers must be a mapping of slash command to shell command")
    for name, command in handlers_raw.items():
        if name not in DEFAULT_HANDLERS:
            raise ValueError(f"Unknown context command in commands.handlers: {name}")
        if not command or not str(command).strip():
            raise ValueError(f"commands.handlers.{name} must not be empty")
        handlers[name] = str(command).strip()

    return CommandsConfig(context_mode=context_mode, handlers=handlers)


def load_config(config_path: Path | None = None) -> OrchestratorConfig:
    raw: dict[str, Any] = {}
    path = config_path or _get_config_path()

    if path.exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")

    app_raw = raw.get("app", {}) or {}
    default_data_dir = os.environ.get("GEMINI_ORCH_DATA_DIR") or str(_resolve_data_dir())
    data_dir = Path(os.path.expanduser(str(app_raw.get("data_dir", default_data_dir))))

    try:
        exit_confirm_timeout = float(app_raw.get("exit_confirm_timeout", 1.0))
    except (ValueError, TypeError):
        raise ValueError("app.exit_confirm_timeout must be a number of seconds") from None
    if exit_confirm_timeout <= 0:
        raise ValueError("app.exit_confirm_timeout must be positive")

    try:
        char_limit = int(app_raw.get("char_limit", 200))
    except (ValueError, TypeError):
        raise ValueError("app.char_limit must be an integer") from None
    char_limit = max(1, char_limit)

    log_level = str(app_raw.get("log_level") or os.environ.get("GEMINI_ORCH_LOG_LEVEL", "WARNING")).upper()
    if log_level not in _LOG_LEVELS:
        raise ValueError(f"app.log_level must be one of {', '.join(_LOG_LEVELS)}, got {log_level!r}")

    app_settings = AppSettings(
        data_dir=data_dir,
        executable=str(app_raw.get("executable") or os.environ.get("GEMINI_ORCH_EXECUTABLE", "")),
        exit_confirm_timeout=exit_confirm_timeout,
        char_limit=char_limit,
        save_on_exit=_as_bool(app_raw.get("save_on_exit", False)),
        log_level=log_level,
    )

    relaunch_raw = raw.get("relaunch", {}) or {}
    relaunch = RelaunchConfig(
        shell=str(relaunch_raw.get("shell") or os.environ.get("GEMINI_ORCH_SHELL", "zsh")),
    )

    return OrchestratorConfig(
        app=app_settings,
        build=_parse_build(raw.get("build", {}) or {}),
        relaunch=relaunch,
        commands=_parse_commands(raw.get("commands", {}) or {}),
    )


def configure_logging(config: OrchestratorConfig) -> Path:
    """Send log records to a file in the data directory; the terminal belongs to the UI."""
    config.app.data_dir.mkdir(parents=True, exist_ok=True)
    log_path = config.app.data_dir / "orchestrator.log"
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger("gemini_orchestrator")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(config.app.log_level)
    root.propagate = False
    return log_path
