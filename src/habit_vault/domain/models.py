"""Frozen dataclass domain models for habit records and the encryption round-trip."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Final, NoReturn

from habit_vault.constants import CATEGORIES, DEFAULT_CATEGORY

CATEGORY_COUNT: Final[int] = len(CATEGORIES)
FALLBACK_CATEGORY_INDEX: Final[int] = CATEGORY_COUNT - 1

_MAX_NAME = 256


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def coerce_int(value: object) -> int | None:
    """Best-effort conversion of a ledger field to ``int``; ``None`` when not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            if text.lstrip("+-")[:2].lower() == "0x":
                return int(text, 16)
            return int(text)
        except ValueError:
            return None
    return None


def category_index_for(value: object) -> int:
    """Map public field 2 onto the category set; non-numeric values fall back to the last one."""
    numeric = coerce_int(value)
    if numeric is None:
        return FALLBACK_CATEGORY_INDEX
    index = numeric % CATEGORY_COUNT
    if not 0 <= index < CATEGORY_COUNT:
        return FALLBACK_CATEGORY_INDEX
    return index


def category_name(index: int) -> str:
    if 0 <= index < CATEGORY_COUNT:
        return CATEGORIES[index]
    return CATEGORIES[FALLBACK_CATEGORY_INDEX]


def category_value(name: str) -> int:
    """Return the stored index of category ``name``."""
    normalized = name.strip().lower() if isinstance(name, str) else name
    try:
        return CATEGORIES.index(normalized)
    except ValueError:
        raise ValueError(f"unknown category {name!r}; expected one of {list(CATEGORIES)}") from None


def normalize_handle(handle: str | bytes) -> str:
    """Canonical ``0x``-prefixed lowercase hex form of an encrypted-value handle."""
    if isinstance(handle, (bytes, bytearray)):
        return "0x" + bytes(handle).hex()
    if not isinstance(handle, str):
        raise TypeError(f"handle must be str or bytes, got {type(handle).__name__}")
    text = handle.strip().lower()
    if not text:
        raise ValueError("handle must not be empty")
    return text if text.startswith("0x") else f"0x{text}"


@dataclass(frozen=True, slots=True)
class RecordFields:
    """Raw record fields as returned by the ledger's record fetch."""

    name: str
    public_value_1: object = None
    public_value_2: object = None
    decrypted_value: object = None
    timestamp: object = None
    creator: str = ""
    verified: bool = False
    description: str = ""


@dataclass(frozen=True, slots=True)
class Record:
    """A tracked habit as known locally."""

    id: str
    name: str
    frequency: int = 1
    streak: int = 0
    category_index: int = FALLBACK_CATEGORY_INDEX
    created_at: int = 0
    creator: str = ""
    verified: bool = False
    public_value_1: int = 0
    public_value_2: int = 0
    decrypted_value: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            _fail("Record.id", "must be a non-empty string")
        if self.frequency < 1:
            _fail("Record.frequency", f"must be >= 1, got {self.frequency}")
        if self.streak < 0:
            _fail("Record.streak", f"must be >= 0, got {self.streak}")
        if not 0 <= self.category_index < CATEGORY_COUNT:
            _fail("Record.category_index", f"must be in 0..{CATEGORY_COUNT - 1}")
        expected_streak = self.decrypted_value if self.verified else 0
        if self.streak != expected_streak:
            _fail(
                "Record.streak",
                f"must mirror the confirmed value ({expected_streak}) "
                f"when verified={self.verified}, got {self.streak}",
            )

    @property
    def category(self) -> str:
        return category_name(self.category_index)


def record_from_fields(record_id: str, fields: RecordFields) -> Record:
    """Map ledger fields into the local record schema."""
    public_1 = coerce_int(fields.public_value_1)
    public_2 = coerce_int(fields.public_value_2)
    decrypted = coerce_int(fields.decrypted_value)
    verified = bool(fields.verified)
    confirmed = decrypted if decrypted is not None and decrypted >= 0 else 0

    return Record(
        id=record_id,
        name=fields.name if isinstance(fields.name, str) else str(fields.name),
        frequency=public_1 if public_1 is not None and public_1 > 0 else 1,
        streak=confirmed if verified else 0,
        category_index=category_index_for(fields.public_value_2),
        created_at=coerce_int(fields.timestamp) or 0,
        creator=str(fields.creator or ""),
        verified=verified,
        public_value_1=public_1 or 0,
        public_value_2=public_2 or 0,
        decrypted_value=confirmed if verified else 0,
    )


@dataclass(frozen=True, slots=True)
class EncryptedPayload:
    """Cipher bytes plus correctness proof for one (target, principal, value) triple."""

    cipher_payload: bytes
    proof: bytes

    def __post_init__(self) -> None:
        for name in ("cipher_payload", "proof"):
            value = getattr(self, name)
            if not isinstance(value, (bytes, bytearray)) or not value:
                _fail(f"EncryptedPayload.{name}", "must be non-empty bytes")
            object.__setattr__(self, name, bytes(value))


@dataclass(frozen=True, slots=True)
class RevealResult:
    """Clear values resolved by the verify-reveal exchange, keyed by handle."""

    clear_values: Mapping[str, int] = field(default_factory=dict)
    decryption_proof: bytes | None = None

    def __post_init__(self) -> None:
        normalized: dict[str, int] = {}
        for handle, value in dict(self.clear_values).items():
            numeric = coerce_int(value)
            if numeric is None:
                _fail("RevealResult.clear_values", f"value for {handle!r} is not numeric")
            normalized[normalize_handle(handle)] = numeric
        object.__setattr__(self, "clear_values", normalized)

    def value_for(self, handle: str | bytes) -> int | None:
        return self.clear_values.get(normalize_handle(handle))


@dataclass(frozen=True, slots=True)
class HabitDraft:
    """User input for the create flow."""

    name: str = ""
    frequency: int = 1
    category: str = DEFAULT_CATEGORY
    streak: int = 0

    def with_changes(self, **changes: object) -> HabitDraft:
        return replace(self, **changes)  # type: ignore[arg-type]

    def validation_error(self) -> str | None:
        """Return a user-facing message when the draft cannot be submitted."""
        if not isinstance(self.name, str) or not self.name.strip():
            return "Habit name is required"
        if len(self.name.strip()) > _MAX_NAME:
            return f"Habit name must be at most {_MAX_NAME} characters"
        if isinstance(self.frequency, bool) or not isinstance(self.frequency, int) or self.frequency < 1:
            return "Frequency must be a positive whole number"
        if isinstance(self.streak, bool) or not isinstance(self.streak, int) or self.streak < 0:
            return "Streak must be a non-negative whole number"
        if self.category not in CATEGORIES:
            return f"Unknown category: {self.category}"
        return None


__all__ = [
    "CATEGORY_COUNT",
    "EncryptedPayload",
    "FALLBACK_CATEGORY_INDEX",
    "HabitDraft",
    "Record",
    "RecordFields",
    "RevealResult",
    "category_index_for",
    "category_name",
    "category_value",
    "coerce_int",
    "normalize_handle",
    "record_from_fields",
]
