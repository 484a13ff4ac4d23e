"""Domain layer: records, ids, encryption payloads and derived statistics."""

from habit_vault.domain.ids import generate_record_id, validate_record_id
from habit_vault.domain.models import (
    EncryptedPayload,
    HabitDraft,
    Record,
    RecordFields,
    RevealResult,
    category_index_for,
    category_name,
    category_value,
    record_from_fields,
)
from habit_vault.domain.stats import HabitStats, compute_stats

__all__ = [
    "EncryptedPayload",
    "HabitDraft",
    "HabitStats",
    "Record",
    "RecordFields",
    "RevealResult",
    "category_index_for",
    "category_name",
    "category_value",
    "compute_stats",
    "generate_record_id",
    "record_from_fields",
    "validate_record_id",
]
