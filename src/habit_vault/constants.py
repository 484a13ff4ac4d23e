"""Stable constants shared across the session, coordinators and adapters."""

from __future__ import annotations

from typing import Final

# Habit categories, in the order their indices are stored on the ledger.
CATEGORIES: Final[tuple[str, ...]] = ("health", "work", "personal", "fitness", "learning")
DEFAULT_CATEGORY: Final[str] = CATEGORIES[0]

# Activity log.
ACTIVITY_LOG_LIMIT: Final[int] = 10

# Status notice auto-dismiss delays, in seconds.
NOTICE_DISMISS_SECONDS: Final[float] = 2.0
NOTICE_ERROR_DISMISS_SECONDS: Final[float] = 3.0

# Record ids: ``habit-<epoch ms>-<suffix>``.
RECORD_ID_PREFIX: Final[str] = "habit"
RECORD_ID_SUFFIX_LENGTH: Final[int] = 9

# Ledger defaults.
DEFAULT_CHAIN_ID: Final[int] = 11155111  # Sepolia
DEFAULT_RECEIPT_TIMEOUT_SECONDS: Final[float] = 600.0

__all__ = [
    "ACTIVITY_LOG_LIMIT",
    "CATEGORIES",
    "DEFAULT_CATEGORY",
    "DEFAULT_CHAIN_ID",
    "DEFAULT_RECEIPT_TIMEOUT_SECONDS",
    "NOTICE_DISMISS_SECONDS",
    "NOTICE_ERROR_DISMISS_SECONDS",
    "RECORD_ID_PREFIX",
    "RECORD_ID_SUFFIX_LENGTH",
]
