"""Create flow: encrypt the streak seed, submit the record, resync on confirmation."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Final

import structlog

from habit_vault.collaborators.base import LedgerHandles
from habit_vault.collaborators.cipher import GuardedCipherEngine
from habit_vault.collaborators.errors import HabitVaultError, UserRejectedError, find_in_chain
from habit_vault.coordinators.base import require_principal, resolve_target
from habit_vault.coordinators.sync import SyncController
from habit_vault.domain.ids import generate_record_id
from habit_vault.domain.models import HabitDraft, category_value
from habit_vault.observability.logging import correlation_scope
from habit_vault.session.state import ActivityAction, HabitCreatedPayload, SessionState
from habit_vault.session.status import StatusMachine

MSG_CREATE_IN_PROGRESS: Final[str] = "Creation already in progress"
MSG_CREATING: Final[str] = "Creating habit with FHE encryption..."
MSG_AWAITING_CONFIRMATION: Final[str] = "Waiting for transaction confirmation..."
MSG_CREATED: Final[str] = "Habit created with FHE protection!"
MSG_REJECTED: Final[str] = "Transaction rejected"
MSG_CREATE_FAILED_PREFIX: Final[str] = "Creation failed: "
MSG_NO_SIGNER: Final[str] = "Failed to get contract with signer"


def note_for(name: str) -> str:
    return f"Habit: {name}"


class CreationCoordinator:
    """Single-flight create protocol for one session."""

    def __init__(
        self,
        state: SessionState,
        handles: LedgerHandles,
        cipher: GuardedCipherEngine,
        status: StatusMachine,
        sync: SyncController,
        *,
        id_factory: Callable[[], str] = generate_record_id,
        logger: Any | None = None,
    ) -> None:
        self._state = state
        self._handles = handles
        self._cipher = cipher
        self._status = status
        self._sync = sync
        self._id_factory = id_factory
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def in_progress(self) -> bool:
        return self._state.create_flight.in_progress

    async def create(self, draft: HabitDraft | None = None) -> str | None:
        """Run one create attempt; return the new record id on confirmation."""
        principal = require_principal(self._state, self._status)
        if principal is None:
            return None

        async with self._state.create_flight.hold() as acquired:
            if not acquired:
                self._status.error(MSG_CREATE_IN_PROGRESS)
                return None
            return await self._create(principal, draft if draft is not None else self._state.draft)

    async def _create(self, principal: str, draft: HabitDraft) -> str | None:
        problem = draft.validation_error()
        if problem is not None:
            self._logger.info("habit_create_invalid", reason=problem)
            self._status.error(problem)
            return None

        name = draft.name.strip()
        record_id = self._id_factory()
        with correlation_scope(record_id=record_id, operation="create"):
            self._status.pending(MSG_CREATING)
            try:
                await self._submit(record_id, principal, name, draft)
            except Exception as exc:
                self._report_failure(record_id, exc)
                return None

            self._status.success(MSG_CREATED)
            self._state.record_activity(
                ActivityAction.HABIT_CREATED,
                HabitCreatedPayload(name=name, streak=draft.streak),
            )
            self._logger.info("habit_created", record_id=record_id, category=draft.category)
            self._state.draft = HabitDraft()
            await self._sync.resync()
            self._state.create_dialog_open = False
            return record_id

    async def _submit(self, record_id: str, principal: str, name: str, draft: HabitDraft) -> None:
        signer = self._handles.signer
        if signer is None:
            raise HabitVaultError(MSG_NO_SIGNER)

        target = await resolve_target(self._state, self._handles)
        payload = await self._cipher.encrypt(target, principal, draft.streak)
        pending = await signer.create_record(
            record_id,
            name,
            payload.cipher_payload,
            payload.proof,
            draft.frequency,
            category_value(draft.category),
            note_for(name),
        )
        self._logger.info("habit_create_submitted", record_id=record_id, tx_hash=pending.tx_hash)
        self._status.pending(MSG_AWAITING_CONFIRMATION)
        await pending.wait()

    def _report_failure(self, record_id: str, exc: Exception) -> None:
        if find_in_chain(exc, UserRejectedError) is not None:
            self._logger.info("habit_create_rejected", record_id=record_id)
            self._status.error(MSG_REJECTED)
            return

        detail = exc.detail if isinstance(exc, HabitVaultError) else (str(exc) or "Unknown error")
        code = exc.code if isinstance(exc, HabitVaultError) else type(exc).__name__
        self._logger.error("habit_create_failed", record_id=record_id, code=code, error=detail)
        self._status.error(MSG_CREATE_FAILED_PREFIX + detail)


__all__ = [
    "MSG_AWAITING_CONFIRMATION",
    "MSG_CREATED",
    "MSG_CREATE_FAILED_PREFIX",
    "MSG_CREATE_IN_PROGRESS",
    "MSG_CREATING",
    "MSG_NO_SIGNER",
    "MSG_REJECTED",
    "CreationCoordinator",
    "note_for",
]
