"""Unit tests for SyncController — refresh protocol and cache reconciliation.

File: tests/unit/coordinators/test_sync.py

Tests:
- Field mapping into the record store
- Per-record failure isolation
- Load failure keeps the previous cache
- Probe handling and activity log entries
- Single-flight user refresh vs. unguarded resync
"""

from __future__ import annotations

import asyncio

import pytest
from structlog.testing import capture_logs

from habit_vault.collaborators.errors import LedgerError
from habit_vault.coordinators.base import MSG_CONNECT_FIRST
from habit_vault.coordinators.sync import MSG_LOAD_FAILED
from habit_vault.session.state import (
    ActivityAction,
    DataLoadedPayload,
    NoticePhase,
    ProbePayload,
)

from . import make_fields, make_harness


@pytest.mark.unit
class TestRefresh:
    @pytest.mark.asyncio
    async def test_maps_ledger_fields_into_records(self) -> None:
        h = await make_harness(
            {
                "A": make_fields("Read", frequency=2, category=7),
                "B": make_fields("Swim", frequency=0, category="n/a", verified=True, decrypted=12),
            }
        )

        records = await h.sync.refresh()

        assert [record.id for record in records] == ["A", "B"]
        first, second = records
        assert first.frequency == 2
        assert first.category == "personal"
        assert first.streak == 0
        assert second.frequency == 1
        assert second.category == "learning"
        assert second.verified is True
        assert second.streak == 12
        assert h.state.records.snapshot() == tuple(records)

    @pytest.mark.asyncio
    async def test_skips_record_that_fails_to_fetch(self) -> None:
        h = await make_harness(
            {"A": make_fields("Read"), "B": make_fields("Swim"), "C": make_fields("Code")}
        )
        h.ledger.failing_ids.add("B")

        with capture_logs() as logs:
            records = await h.sync.refresh()

        assert [record.id for record in records] == ["A", "C"]
        assert h.state.last_skipped == ("B",)
        skipped = [entry for entry in logs if entry["event"] == "sync_record_skipped"]
        assert len(skipped) == 1
        assert skipped[0]["record_id"] == "B"
        assert skipped[0]["log_level"] == "warning"
        latest = h.state.activity[0]
        assert latest.action == ActivityAction.DATA_LOADED
        assert latest.payload == DataLoadedPayload(count=2)

    @pytest.mark.asyncio
    async def test_fetches_records_in_enumeration_order(self) -> None:
        h = await make_harness({"Z": make_fields("z"), "A": make_fields("a"), "M": make_fields("m")})

        await h.sync.refresh()

        fetched = [call[1] for call in h.ledger.calls if call[0] == "get_record"]
        assert fetched == ["Z", "A", "M"]

    @pytest.mark.asyncio
    async def test_enumeration_failure_keeps_previous_cache(self) -> None:
        h = await make_harness({"A": make_fields("Read")})
        before = await h.sync.refresh()
        version = h.state.records.version
        h.ledger.list_error = LedgerError("connection refused")

        after = await h.sync.refresh()

        assert after == before
        assert h.state.records.version == version
        assert h.state.notice is not None
        assert h.state.notice.phase == NoticePhase.ERROR
        assert h.state.notice.message == MSG_LOAD_FAILED

    @pytest.mark.asyncio
    async def test_probe_success_is_logged_as_activity(self) -> None:
        h = await make_harness({})

        await h.sync.refresh()

        actions = [entry.action for entry in h.state.activity]
        assert actions == [ActivityAction.DATA_LOADED, ActivityAction.CONTRACT_TEST]
        assert h.state.activity[1].payload == ProbePayload(result="Available")
        assert h.state.activity[1].principal == h.state.principal

    @pytest.mark.asyncio
    async def test_probe_failure_is_not_fatal(self) -> None:
        h = await make_harness({"A": make_fields("Read")})
        h.ledger.probe_error = LedgerError("isAvailable reverted")

        records = await h.sync.refresh()

        assert len(records) == 1
        assert [entry.action for entry in h.state.activity] == [ActivityAction.DATA_LOADED]

    @pytest.mark.asyncio
    async def test_requires_principal(self) -> None:
        h = await make_harness({"A": make_fields("Read")}, principal=None)

        records = await h.sync.refresh()

        assert records == []
        assert h.ledger.calls == []
        assert h.state.notice is not None
        assert h.state.notice.message == MSG_CONNECT_FIRST


@pytest.mark.unit
class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_second_user_refresh_is_rejected_while_pending(self) -> None:
        h = await make_harness({"A": make_fields("Read")})
        gate = asyncio.Event()
        original = h.ledger.list_record_ids

        async def slow_list() -> list[str]:
            await gate.wait()
            return await original()

        h.ledger.list_record_ids = slow_list  # type: ignore[method-assign]

        first = asyncio.create_task(h.sync.refresh())
        await asyncio.sleep(0)
        assert h.sync.in_progress is True

        second = await h.sync.refresh()
        assert second == []
        assert h.state.refresh_flight.rejected == 1

        gate.set()
        assert [record.id for record in await first] == ["A"]
        assert h.sync.in_progress is False

    @pytest.mark.asyncio
    async def test_resync_bypasses_guard(self) -> None:
        h = await make_harness({"A": make_fields("Read")})
        assert h.state.refresh_flight.try_begin() is True

        records = await h.sync.resync()

        assert [record.id for record in records] == ["A"]
        h.state.refresh_flight.end()
