"""Aggregate progress figures over the locally cached records."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from habit_vault.domain.models import Record

_DAYS_PER_WEEK = 7


@dataclass(frozen=True, slots=True)
class HabitStats:
    total_habits: int = 0
    completed_today: int = 0
    current_streak: int = 0
    success_rate: int = 0
    weekly_progress: int = 0


def compute_stats(records: Iterable[Record]) -> HabitStats:
    """Summarize records: a habit counts as completed once it has a revealed streak."""
    items = list(records)
    total = len(items)
    completed = sum(1 for record in items if record.streak > 0)
    longest = max((record.streak for record in items), default=0)
    success_rate = round(completed / total * 100) if total else 0
    weekly = min(100, round(completed / _DAYS_PER_WEEK * 100))
    return HabitStats(
        total_habits=total,
        completed_today=completed,
        current_streak=longest,
        success_rate=success_rate,
        weekly_progress=weekly,
    )


__all__ = ["HabitStats", "compute_stats"]
