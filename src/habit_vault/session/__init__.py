"""Session layer: explicit state, status notices and single-flight guards.

``SessionController`` lives in ``habit_vault.session.controller`` and is not
re-exported here, because it depends on the coordinators, which in turn
depend on this package.
"""

from habit_vault.session.guards import SingleFlight
from habit_vault.session.state import (
    ActivityAction,
    ActivityEntry,
    ActivityLog,
    DataDecryptedPayload,
    DataLoadedPayload,
    HabitCreatedPayload,
    NoticePhase,
    ProbePayload,
    RecordStore,
    RevealPhase,
    SessionState,
    StatusNotice,
)
from habit_vault.session.status import StatusMachine

__all__ = [
    "ActivityAction",
    "ActivityEntry",
    "ActivityLog",
    "DataDecryptedPayload",
    "DataLoadedPayload",
    "HabitCreatedPayload",
    "NoticePhase",
    "ProbePayload",
    "RecordStore",
    "RevealPhase",
    "SessionState",
    "SingleFlight",
    "StatusMachine",
    "StatusNotice",
]
