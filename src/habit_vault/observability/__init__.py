"""Structured logging for habit-vault sessions."""

from habit_vault.observability.logging import (
    LoggingConfig,
    SessionLogging,
    correlation_scope,
    logging_config_for,
    setup_structured_logging,
)

__all__ = [
    "LoggingConfig",
    "SessionLogging",
    "correlation_scope",
    "logging_config_for",
    "setup_structured_logging",
]
