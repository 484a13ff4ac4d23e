"""Session state — pure data, no ledger or engine imports.

File: src/habit_vault/session/state.py

Owns the canonical state of one connected session: the record cache, the
activity log, the current status notice, the create-form draft and the
single-flight guards. Coordinators receive a reference to one
``SessionState``; nothing here is module-global.
"""

from __future__ import annotations

import enum
from collections import deque
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Final, TypeAlias

from habit_vault.constants import ACTIVITY_LOG_LIMIT
from habit_vault.domain.models import HabitDraft, Record
from habit_vault.session.guards import SingleFlight

# ---------------------------------------------------------------------------
# Activity log
# ---------------------------------------------------------------------------


class ActivityAction(enum.StrEnum):
    """Tags of user-visible actions recorded in the activity log."""

    CONTRACT_TEST = "CONTRACT_TEST"
    DATA_LOADED = "DATA_LOADED"
    HABIT_CREATED = "HABIT_CREATED"
    DATA_DECRYPTED = "DATA_DECRYPTED"


@dataclass(frozen=True, slots=True)
class ProbePayload:
    result: str


@dataclass(frozen=True, slots=True)
class DataLoadedPayload:
    count: int


@dataclass(frozen=True, slots=True)
class HabitCreatedPayload:
    name: str
    streak: int


@dataclass(frozen=True, slots=True)
class DataDecryptedPayload:
    record_id: str
    value: int


ActivityPayload: TypeAlias = (
    ProbePayload | DataLoadedPayload | HabitCreatedPayload | DataDecryptedPayload
)

PAYLOAD_TYPES: Final[dict[ActivityAction, type]] = {
    ActivityAction.CONTRACT_TEST: ProbePayload,
    ActivityAction.DATA_LOADED: DataLoadedPayload,
    ActivityAction.HABIT_CREATED: HabitCreatedPayload,
    ActivityAction.DATA_DECRYPTED: DataDecryptedPayload,
}


@dataclass(frozen=True, slots=True)
class ActivityEntry:
    """A single activity log entry; the payload shape is fixed by the action."""

    action: ActivityAction
    payload: ActivityPayload
    principal: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        expected = PAYLOAD_TYPES[ActivityAction(self.action)]
        if not isinstance(self.payload, expected):
            raise TypeError(
                f"{self.action} expects {expected.__name__}, got {type(self.payload).__name__}"
            )


class ActivityLog:
    """Bounded, newest-first log of user-visible actions."""

    def __init__(self, limit: int = ACTIVITY_LOG_LIMIT) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self._limit = limit
        self._entries: deque[ActivityEntry] = deque(maxlen=limit)

    @property
    def limit(self) -> int:
        return self._limit

    def record(
        self,
        action: ActivityAction,
        payload: ActivityPayload,
        principal: str | None = None,
    ) -> ActivityEntry:
        entry = ActivityEntry(action=action, payload=payload, principal=principal)
        # appendleft on a full deque drops the oldest entry from the right.
        self._entries.appendleft(entry)
        return entry

    def entries(self) -> tuple[ActivityEntry, ...]:
        return tuple(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ActivityEntry]:
        return iter(tuple(self._entries))

    def __getitem__(self, index: int) -> ActivityEntry:
        return self._entries[index]


# ---------------------------------------------------------------------------
# Record store
# ---------------------------------------------------------------------------


class RecordStore:
    """In-memory cache of the records seen on the last completed refresh."""

    def __init__(self, records: Iterable[Record] = ()) -> None:
        self._records: tuple[Record, ...] = tuple(records)
        self._version = 0

    @property
    def version(self) -> int:
        """Incremented on every replace."""
        return self._version

    def replace(self, records: Iterable[Record]) -> None:
        self._records = tuple(records)
        self._version += 1

    def snapshot(self) -> tuple[Record, ...]:
        return self._records

    def get(self, record_id: str) -> Record | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def clear(self) -> None:
        self.replace(())

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self._records)


# ---------------------------------------------------------------------------
# Status notice
# ---------------------------------------------------------------------------


class NoticePhase(enum.StrEnum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class StatusNotice:
    """A transient notification; ``serial`` identifies this notice instance."""

    phase: NoticePhase
    message: str
    serial: int
    visible: bool = True


# ---------------------------------------------------------------------------
# Reveal state machine
# ---------------------------------------------------------------------------


class RevealPhase(enum.Enum):
    NOT_REQUESTED = "not_requested"
    ALREADY_VERIFIED = "already_verified"
    NEEDS_REVEAL = "needs_reveal"
    PROOF_REQUESTED = "proof_requested"
    PROOF_SUBMITTED = "proof_submitted"
    VERIFIED = "verified"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------


@dataclass
class SessionState:
    """Root state object for one session — mutated by the controller and coordinators."""

    # Connection
    principal: str | None = None
    contract_address: str = ""
    engine_ready: bool = False
    engine_error: str | None = None

    # Records
    records: RecordStore = field(default_factory=RecordStore)
    last_skipped: tuple[str, ...] = ()

    # Activity log and notice
    activity: ActivityLog = field(default_factory=ActivityLog)
    notice: StatusNotice | None = None

    # Create form
    draft: HabitDraft = field(default_factory=HabitDraft)
    create_dialog_open: bool = False

    # Reveal
    reveal_phase: RevealPhase = RevealPhase.NOT_REQUESTED
    last_revealed: int | None = None

    # Single-flight guards
    refresh_flight: SingleFlight = field(default_factory=lambda: SingleFlight("refresh"))
    create_flight: SingleFlight = field(default_factory=lambda: SingleFlight("create"))
    reveal_flight: SingleFlight = field(default_factory=lambda: SingleFlight("reveal"))

    @property
    def connected(self) -> bool:
        return bool(self.principal)

    @property
    def refreshing(self) -> bool:
        return self.refresh_flight.in_progress

    @property
    def creating(self) -> bool:
        return self.create_flight.in_progress

    @property
    def revealing(self) -> bool:
        return self.reveal_flight.in_progress

    def record_activity(self, action: ActivityAction, payload: ActivityPayload) -> ActivityEntry:
        """Append to the activity log, stamped with the current principal."""
        return self.activity.record(action, payload, principal=self.principal)


__all__ = [
    "ActivityAction",
    "ActivityEntry",
    "ActivityLog",
    "ActivityPayload",
    "DataDecryptedPayload",
    "DataLoadedPayload",
    "HabitCreatedPayload",
    "NoticePhase",
    "PAYLOAD_TYPES",
    "ProbePayload",
    "RecordStore",
    "RevealPhase",
    "SessionState",
    "StatusNotice",
]
