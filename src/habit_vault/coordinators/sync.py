"""
habit-vault — reconcile the local record cache with the ledger.

File: src/habit_vault/coordinators/sync.py

Purpose
- Rebuild the ``RecordStore`` from the ledger: probe, enumerate, fetch each
  record, map it, replace the store in one step.

Functional requirements
- A record that fails to fetch or map is skipped; the rest still load.
- A failure before any record is fetched keeps the previous cache.
- User-initiated refreshes are single-flight; internal resyncs are not.
"""

from __future__ import annotations

from typing import Any, Final

import structlog

from habit_vault.collaborators.base import LedgerHandles
from habit_vault.collaborators.errors import (
    AuthenticationRequiredError,
    LoadError,
    RecordFetchError,
)
from habit_vault.coordinators.base import ensure_principal
from habit_vault.domain.models import Record, record_from_fields
from habit_vault.session.state import (
    ActivityAction,
    DataLoadedPayload,
    ProbePayload,
    SessionState,
)
from habit_vault.session.status import StatusMachine

MSG_LOAD_FAILED: Final[str] = "Failed to load data"
PROBE_AVAILABLE: Final[str] = "Available"


class SyncController:
    """Owns the refresh protocol for one session."""

    def __init__(
        self,
        state: SessionState,
        handles: LedgerHandles,
        status: StatusMachine,
        *,
        logger: Any | None = None,
    ) -> None:
        self._state = state
        self._handles = handles
        self._status = status
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def in_progress(self) -> bool:
        return self._state.refresh_flight.in_progress

    async def refresh(self) -> list[Record]:
        """User-initiated refresh; rejected while another one is pending."""
        flight = self._state.refresh_flight
        async with flight.hold() as acquired:
            if not acquired:
                self._logger.info("sync_rejected_in_flight", rejected=flight.rejected)
                return list(self._state.records.snapshot())
            return await self._run()

    async def resync(self) -> list[Record]:
        """Refresh after a create or reveal; overlapping runs resolve last-writer-wins."""
        return await self._run()

    async def _run(self) -> list[Record]:
        previous = list(self._state.records.snapshot())
        try:
            ensure_principal(self._state)
        except AuthenticationRequiredError as exc:
            self._status.error(exc.detail)
            return previous

        reader = self._handles.reader
        await self._probe()

        try:
            record_ids = list(await reader.list_record_ids())
        except Exception as exc:
            error = LoadError(exc)
            self._logger.error("sync_failed", code=error.code, error=error.detail)
            self._status.error(MSG_LOAD_FAILED)
            return previous

        records: list[Record] = []
        skipped: list[str] = []
        for record_id in record_ids:
            try:
                fields = await reader.get_record(record_id)
                records.append(record_from_fields(record_id, fields))
            except Exception as exc:
                error = exc if isinstance(exc, RecordFetchError) else RecordFetchError(record_id, exc)
                self._logger.warning(
                    "sync_record_skipped",
                    record_id=record_id,
                    code=error.code,
                    error=error.detail,
                )
                skipped.append(record_id)

        self._state.records.replace(records)
        self._state.last_skipped = tuple(skipped)
        self._state.record_activity(ActivityAction.DATA_LOADED, DataLoadedPayload(count=len(records)))
        self._logger.info(
            "sync_completed",
            count=len(records),
            skipped=len(skipped),
            version=self._state.records.version,
        )
        return records

    async def _probe(self) -> None:
        try:
            available = await self._handles.reader.probe_availability()
        except Exception as exc:
            self._logger.warning("sync_probe_failed", error=str(exc))
            return
        if available is True:
            self._state.record_activity(
                ActivityAction.CONTRACT_TEST, ProbePayload(result=PROBE_AVAILABLE)
            )


__all__ = ["MSG_LOAD_FAILED", "PROBE_AVAILABLE", "SyncController"]
