"""
habit-vault — reveal a record's encrypted streak through a verify-reveal exchange.

File: src/habit_vault/coordinators/reveal.py

Purpose
- Drive one reveal attempt through ``RevealPhase``:
  NOT_REQUESTED -> ALREADY_VERIFIED, or
  NOT_REQUESTED -> NEEDS_REVEAL -> PROOF_REQUESTED -> PROOF_SUBMITTED
  -> VERIFIED | FAILED.

Functional requirements
- An already verified record returns its stored value without touching the
  cipher engine.
- The decryption proof is relayed to the ledger from inside the engine's
  ``verify_reveal`` call, via the ``submit`` callback built here.
- An "already verified" rejection from the ledger is a success, not a failure.
  So is a reveal transaction that reverts after another client verified the record.
"""

from __future__ import annotations

from typing import Any, Final

import structlog

from habit_vault.collaborators.base import LedgerHandles, TransactionReceipt
from habit_vault.collaborators.cipher import GuardedCipherEngine
from habit_vault.collaborators.errors import (
    AlreadyVerifiedError,
    DecryptionError,
    HabitVaultError,
    LedgerError,
    LedgerTransactionError,
    find_in_chain,
)
from habit_vault.coordinators.base import require_principal, resolve_target
from habit_vault.coordinators.sync import SyncController
from habit_vault.domain.models import record_from_fields
from habit_vault.observability.logging import correlation_scope
from habit_vault.session.state import (
    ActivityAction,
    DataDecryptedPayload,
    RevealPhase,
    SessionState,
)
from habit_vault.session.status import StatusMachine

MSG_REVEAL_IN_PROGRESS: Final[str] = "Decryption already in progress"
MSG_ALREADY_VERIFIED: Final[str] = "Data already verified"
MSG_VERIFYING: Final[str] = "Verifying FHE decryption..."
MSG_VERIFIED: Final[str] = "FHE decryption verified!"
MSG_REVEAL_FAILED: Final[str] = "FHE decryption failed"


class RevealCoordinator:
    """Single-flight reveal protocol for one session."""

    def __init__(
        self,
        state: SessionState,
        handles: LedgerHandles,
        cipher: GuardedCipherEngine,
        status: StatusMachine,
        sync: SyncController,
        *,
        logger: Any | None = None,
    ) -> None:
        self._state = state
        self._handles = handles
        self._cipher = cipher
        self._status = status
        self._sync = sync
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def in_progress(self) -> bool:
        return self._state.reveal_flight.in_progress

    @property
    def phase(self) -> RevealPhase:
        return self._state.reveal_phase

    async def reveal(self, record_id: str) -> int | None:
        if require_principal(self._state, self._status) is None:
            return None

        async with self._state.reveal_flight.hold() as acquired:
            if not acquired:
                self._status.error(MSG_REVEAL_IN_PROGRESS)
                return None
            self._state.reveal_phase = RevealPhase.NOT_REQUESTED
            with correlation_scope(record_id=record_id, operation="reveal"):
                return await self._reveal(record_id)

    async def _reveal(self, record_id: str) -> int | None:
        reader = self._handles.reader
        try:
            record = record_from_fields(record_id, await reader.get_record(record_id))
            if record.verified:
                self._state.reveal_phase = RevealPhase.ALREADY_VERIFIED
                self._state.last_revealed = record.decrypted_value
                self._logger.info("reveal_short_circuit", record_id=record_id)
                self._status.success(MSG_ALREADY_VERIFIED)
                return record.decrypted_value

            self._state.reveal_phase = RevealPhase.NEEDS_REVEAL
            self._status.pending(MSG_VERIFYING)
            handle = await reader.get_encrypted_handle(record_id)
            target = await resolve_target(self._state, self._handles)
            value = await self._verify(record_id, handle, target)
        except Exception as exc:
            return await self._handle_failure(record_id, exc)

        await self._sync.resync()
        self._state.record_activity(
            ActivityAction.DATA_DECRYPTED,
            DataDecryptedPayload(record_id=record_id, value=value),
        )
        self._state.reveal_phase = RevealPhase.VERIFIED
        self._state.last_revealed = value
        self._logger.info("reveal_verified", record_id=record_id)
        self._status.success(MSG_VERIFIED)
        return value

    async def _verify(self, record_id: str, handle: str, target: str) -> int:
        signer = self._handles.signer
        if signer is None:
            raise LedgerError("no signer bound to the session")

        async def submit(clear_values_encoded: bytes, proof: bytes) -> TransactionReceipt:
            pending = await signer.submit_reveal(record_id, clear_values_encoded, proof)
            self._state.reveal_phase = RevealPhase.PROOF_SUBMITTED
            self._logger.info("reveal_proof_submitted", record_id=record_id, tx_hash=pending.tx_hash)
            return await pending.wait()

        self._state.reveal_phase = RevealPhase.PROOF_REQUESTED
        result = await self._cipher.verify_reveal([handle], target, submit)
        value = result.value_for(handle)
        if value is None:
            raise DecryptionError(f"no clear value returned for handle {handle}")
        return int(value)

    async def _handle_failure(self, record_id: str, exc: Exception) -> None:
        if find_in_chain(exc, AlreadyVerifiedError) is not None or await self._verified_elsewhere(
            record_id, exc
        ):
            # Another client revealed the record between our fetch and our submit.
            self._state.reveal_phase = RevealPhase.ALREADY_VERIFIED
            self._logger.info("reveal_already_verified", record_id=record_id)
            self._status.success(MSG_ALREADY_VERIFIED)
            await self._sync.resync()
            return None

        self._state.reveal_phase = RevealPhase.FAILED
        code = exc.code if isinstance(exc, HabitVaultError) else type(exc).__name__
        self._logger.error("reveal_failed", record_id=record_id, code=code, error=str(exc))
        self._status.error(MSG_REVEAL_FAILED)
        return None

    async def _verified_elsewhere(self, record_id: str, exc: Exception) -> bool:
        """A reveal can pass gas estimation and still revert once a competing reveal is mined."""
        if find_in_chain(exc, LedgerTransactionError) is None:
            return False
        try:
            fields = await self._handles.reader.get_record(record_id)
            return record_from_fields(record_id, fields).verified
        except Exception as recheck_exc:
            self._logger.warning(
                "reveal_recheck_failed", record_id=record_id, error=str(recheck_exc)
            )
            return False


__all__ = [
    "MSG_ALREADY_VERIFIED",
    "MSG_REVEAL_FAILED",
    "MSG_REVEAL_IN_PROGRESS",
    "MSG_VERIFIED",
    "MSG_VERIFYING",
    "RevealCoordinator",
]
