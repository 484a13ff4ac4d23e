"""
habit-vault — client orchestration for encrypted habit records.

File: src/habit_vault/__init__.py

Purpose
- Package root. Records live on a ledger with their streak encrypted
  client-side; the session layer syncs, creates and reveals them.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
