"""Controller layer — owns SessionState, translates intents to coordinator calls.

File: src/habit_vault/session/controller.py

No rendering imports. The controller:
1. Receives intents (connect, refresh, create, reveal, form edits).
2. Dispatches to the sync, creation and reveal coordinators.
3. Notifies the view layer via a callback when state changes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime
from typing import Any

import structlog

from habit_vault.collaborators.base import CipherEngine, LedgerHandles, LedgerReader, LedgerSigner
from habit_vault.collaborators.cipher import GuardedCipherEngine
from habit_vault.collaborators.errors import InitializationError
from habit_vault.config.loader import ClientConfig
from habit_vault.coordinators.base import resolve_target
from habit_vault.coordinators.creation import CreationCoordinator
from habit_vault.coordinators.reveal import RevealCoordinator
from habit_vault.coordinators.sync import SyncController
from habit_vault.domain.ids import generate_record_id
from habit_vault.domain.models import HabitDraft, Record
from habit_vault.domain.stats import HabitStats, compute_stats
from habit_vault.observability.logging import (
    SessionLogging,
    logging_config_for,
    setup_structured_logging,
)
from habit_vault.session.state import ActivityLog, RevealPhase, SessionState, StatusNotice
from habit_vault.session.status import StatusMachine

MSG_ENGINE_INIT_FAILED = "FHE initialization failed"

# Type alias for the state-change notification callback
StateCallback = Callable[[], Awaitable[None] | None]


class SessionController:
    """Session controller — manages state and dispatches intents."""

    def __init__(
        self,
        *,
        reader: LedgerReader,
        cipher: CipherEngine,
        config: ClientConfig | None = None,
        state: SessionState | None = None,
        on_state_change: StateCallback | None = None,
        id_factory: Callable[[], str] = generate_record_id,
        logger: Any | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self.state = state or SessionState(
            contract_address=self.config.contract_address,
            activity=ActivityLog(self.config.activity_limit),
        )
        self._on_state_change = on_state_change
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._background: set[asyncio.Task[None]] = set()
        self.log_sink: SessionLogging | None = None

        self.handles = LedgerHandles(reader=reader)
        self.cipher = cipher if isinstance(cipher, GuardedCipherEngine) else GuardedCipherEngine(cipher)
        self.status = StatusMachine(
            self.state,
            dismiss_seconds=self.config.success_dismiss_seconds,
            error_dismiss_seconds=self.config.error_dismiss_seconds,
            on_change=self._on_notice_change,
        )
        self.sync = SyncController(self.state, self.handles, self.status)
        self.creation = CreationCoordinator(
            self.state,
            self.handles,
            self.cipher,
            self.status,
            self.sync,
            id_factory=id_factory,
        )
        self.reveals = RevealCoordinator(
            self.state, self.handles, self.cipher, self.status, self.sync
        )

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        cipher: CipherEngine,
        *,
        session_id: str | None = None,
        environ: Mapping[str, str] | None = None,
        on_state_change: StateCallback | None = None,
        w3: Any | None = None,
    ) -> tuple[SessionController, LedgerSigner | None, str | None]:
        """Build a controller bound to the configured ledger, logging to the configured sinks.

        Returns the controller plus the signer and principal resolved from the
        environment, ready to pass to ``connect``. ``close`` stops the log sinks.
        """
        from habit_vault.collaborators.web3_ledger import build_ledger_handles

        handles, principal = build_ledger_handles(config, environ=environ, w3=w3)
        if session_id is None:
            session_id = "session-" + datetime.now(UTC).strftime("%Y%m%dT%H%M%S%fZ")
        log_sink = setup_structured_logging(logging_config_for(config, session_id))

        controller = cls(
            reader=handles.reader,
            cipher=cipher,
            config=config,
            on_state_change=on_state_change,
        )
        controller.log_sink = log_sink
        controller._logger.info("session_started", log_path=str(log_sink.log_path))
        return controller, handles.signer, principal

    # ------------------------------------------------------------------
    # State notification
    # ------------------------------------------------------------------

    async def _notify(self) -> None:
        if self._on_state_change is not None:
            result = self._on_state_change()
            if asyncio.iscoroutine(result):
                await result

    def _on_notice_change(self, notice: StatusNotice | None) -> None:
        # Timed dismissals happen outside any intent; push them to the view too.
        if self._on_state_change is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._notify())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self, principal: str, signer: LedgerSigner | None = None) -> None:
        """Intent: a principal connected, optionally with signing capability."""
        principal = principal.strip()
        if not principal:
            raise ValueError("principal must not be empty")

        self.state.principal = principal
        self.handles.signer = signer
        self._logger.info("session_connected", principal=principal, signer=signer is not None)

        await self._initialize_engine()
        await self.sync.refresh()
        try:
            await resolve_target(self.state, self.handles)
        except Exception as exc:
            self._logger.warning("contract_address_unavailable", error=str(exc))
        await self._notify()

    async def disconnect(self) -> None:
        """Intent: the principal disconnected."""
        self._logger.info("session_disconnected", principal=self.state.principal)
        self.state.principal = None
        self.handles.signer = None
        self.state.records.clear()
        self.state.last_skipped = ()
        self.state.draft = HabitDraft()
        self.state.create_dialog_open = False
        self.state.reveal_phase = RevealPhase.NOT_REQUESTED
        self.state.last_revealed = None
        self.state.engine_ready = False
        self.cipher.reset()
        self.status.clear()
        await self._notify()

    async def _initialize_engine(self) -> None:
        try:
            await self.cipher.initialize()
        except InitializationError as exc:
            self.state.engine_ready = False
            self.state.engine_error = exc.detail
            self.status.error(MSG_ENGINE_INIT_FAILED)
            return
        self.state.engine_ready = self.cipher.is_initialized
        self.state.engine_error = None

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    async def refresh(self) -> list[Record]:
        records = await self.sync.refresh()
        await self._notify()
        return records

    async def create_habit(self, draft: HabitDraft | None = None) -> str | None:
        record_id = await self.creation.create(draft)
        await self._notify()
        return record_id

    async def reveal(self, record_id: str) -> int | None:
        value = await self.reveals.reveal(record_id)
        await self._notify()
        return value

    async def open_create_dialog(self) -> None:
        self.state.create_dialog_open = True
        await self._notify()

    async def close_create_dialog(self) -> None:
        self.state.create_dialog_open = False
        await self._notify()

    async def update_draft(self, **changes: object) -> HabitDraft:
        """Intent: the user edited the create form."""
        self.state.draft = self.state.draft.with_changes(**changes)
        await self._notify()
        return self.state.draft

    def stats(self) -> HabitStats:
        return compute_stats(self.state.records)

    def close(self) -> None:
        """Cancel pending notice timers and background notifications, then stop logging."""
        self.status.close()
        for task in list(self._background):
            task.cancel()
        if self.log_sink is not None:
            self.log_sink.close()


__all__ = ["MSG_ENGINE_INIT_FAILED", "SessionController", "StateCallback"]
