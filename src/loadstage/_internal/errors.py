"""Custom exception hierarchy for loadstage."""

from __future__ import annotations


class LoadStageError(Exception):
    """Base exception for all loadstage errors.

    All custom exceptions in loadstage inherit from this class, so any
    loadstage-specific error can be caught with a single except clause.
    """


class ScenarioError(LoadStageError):
    """Raised when a scenario definition is invalid.

    Examples:
        - A scenario has no groups, or a group has no steps.
        - A step uses an unsupported HTTP method or both ``json`` and ``data``.
        - A scenario file cannot be loaded or parsed.
    """


class ConfigError(LoadStageError):
    """Raised when configuration is invalid or missing.

    Examples:
        - A stage has a non-positive duration or a negative target.
        - A duration string such as ``"1x"`` cannot be parsed.
        - An environment variable has an invalid value.
    """


class EngineError(LoadStageError):
    """Raised when a test session fails for reasons outside any iteration."""
