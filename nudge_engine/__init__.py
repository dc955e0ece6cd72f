"""Nudge orchestration and conversation insight delivery."""

__version__ = "0.1.0"
