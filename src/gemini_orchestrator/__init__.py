"""Gemini CLI Orchestrator - interactive command loop with live reload."""

__version__ = "0.1.0"
