"""Shared fakes and builders for coordinator and controller tests."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Final

from habit_vault.collaborators.base import LedgerHandles, RevealSubmit, TransactionReceipt
from habit_vault.collaborators.cipher import GuardedCipherEngine
from habit_vault.collaborators.errors import LedgerError
from habit_vault.coordinators.creation import CreationCoordinator
from habit_vault.coordinators.reveal import RevealCoordinator
from habit_vault.coordinators.sync import SyncController
from habit_vault.domain.models import EncryptedPayload, RecordFields, RevealResult
from habit_vault.session.state import SessionState
from habit_vault.session.status import StatusMachine

PRINCIPAL: Final[str] = "0x1111111111111111111111111111111111111111"
CONTRACT_ADDRESS: Final[str] = "0x2222222222222222222222222222222222222222"
CREATED_AT: Final[int] = 1_767_225_600


def handle_for(record_id: str) -> str:
    return "0x" + record_id.encode("utf-8").hex().ljust(64, "0")[:64]


def make_fields(
    name: str = "Morning run",
    *,
    frequency: object = 3,
    category: object = 3,
    verified: bool = False,
    decrypted: object = 0,
) -> RecordFields:
    return RecordFields(
        name=name,
        public_value_1=frequency,
        public_value_2=category,
        decrypted_value=decrypted,
        timestamp=CREATED_AT,
        creator=PRINCIPAL,
        verified=verified,
        description=f"Habit: {name}",
    )


class FakePendingTx:
    def __init__(
        self,
        tx_hash: str,
        *,
        error: BaseException | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self._tx_hash = tx_hash
        self._error = error
        self._gate = gate
        self.waited = False

    @property
    def tx_hash(self) -> str:
        return self._tx_hash

    async def wait(self) -> TransactionReceipt:
        if self._gate is not None:
            await self._gate.wait()
        self.waited = True
        if self._error is not None:
            raise self._error
        return {"status": 1, "transactionHash": self._tx_hash}


class FakeLedger:
    """In-memory ledger implementing both the reader and the signer contracts."""

    def __init__(self, records: dict[str, RecordFields] | None = None) -> None:
        self.records: dict[str, RecordFields] = dict(records or {})
        self.calls: list[tuple[object, ...]] = []
        self.probe_result: bool = True
        self.probe_error: BaseException | None = None
        self.list_error: BaseException | None = None
        self.failing_ids: set[str] = set()
        self.create_error: BaseException | None = None
        self.create_wait_error: BaseException | None = None
        self.reveal_error: BaseException | None = None
        self.reveal_wait_error: BaseException | None = None
        self.competing_reveal: int | None = None
        self.wait_gate: asyncio.Event | None = None
        self._tx_counter = 0

    # Reader

    async def probe_availability(self) -> bool:
        self.calls.append(("probe_availability",))
        if self.probe_error is not None:
            raise self.probe_error
        return self.probe_result

    async def list_record_ids(self) -> list[str]:
        self.calls.append(("list_record_ids",))
        if self.list_error is not None:
            raise self.list_error
        return list(self.records)

    async def get_record(self, record_id: str) -> RecordFields:
        self.calls.append(("get_record", record_id))
        if record_id in self.failing_ids:
            raise LedgerError(f"execution reverted while reading {record_id}")
        try:
            return self.records[record_id]
        except KeyError:
            raise LedgerError(f"unknown record {record_id}") from None

    async def get_encrypted_handle(self, record_id: str) -> str:
        self.calls.append(("get_encrypted_handle", record_id))
        return handle_for(record_id)

    async def get_address(self) -> str:
        self.calls.append(("get_address",))
        return CONTRACT_ADDRESS

    # Signer

    async def create_record(
        self,
        record_id: str,
        name: str,
        cipher_payload: bytes,
        proof: bytes,
        frequency: int,
        category_index: int,
        note: str,
    ) -> FakePendingTx:
        self.calls.append(
            ("create_record", record_id, name, cipher_payload, proof, frequency, category_index, note)
        )
        if self.create_error is not None:
            raise self.create_error
        if self.create_wait_error is None:
            self.records[record_id] = RecordFields(
                name=name,
                public_value_1=frequency,
                public_value_2=category_index,
                decrypted_value=0,
                timestamp=CREATED_AT,
                creator=PRINCIPAL,
                verified=False,
                description=note,
            )
        return FakePendingTx(self._next_hash(), error=self.create_wait_error, gate=self.wait_gate)

    async def submit_reveal(
        self,
        record_id: str,
        clear_values_encoded: bytes,
        proof: bytes,
    ) -> FakePendingTx:
        self.calls.append(("submit_reveal", record_id, clear_values_encoded, proof))
        if self.reveal_error is not None:
            raise self.reveal_error
        if self.reveal_wait_error is not None:
            if self.competing_reveal is not None:
                self.records[record_id] = replace(
                    self.records[record_id], verified=True, decrypted_value=self.competing_reveal
                )
            return FakePendingTx(
                self._next_hash(), error=self.reveal_wait_error, gate=self.wait_gate
            )
        value = int.from_bytes(clear_values_encoded, "big")
        self.records[record_id] = replace(
            self.records[record_id], verified=True, decrypted_value=value
        )
        return FakePendingTx(self._next_hash(), gate=self.wait_gate)

    def call_names(self) -> list[object]:
        return [call[0] for call in self.calls]

    def _next_hash(self) -> str:
        self._tx_counter += 1
        return f"0x{self._tx_counter:064x}"


class FakeCipherEngine:
    """Engine that encrypts to recognizable bytes and reveals ``clear_value``."""

    def __init__(
        self,
        *,
        clear_value: int = 42,
        init_error: BaseException | None = None,
        reveal_gate: asyncio.Event | None = None,
    ) -> None:
        self.clear_value = clear_value
        self.init_error = init_error
        self.reveal_gate = reveal_gate
        self.omit_handle = False
        self.calls: list[tuple[object, ...]] = []

    async def initialize(self) -> None:
        self.calls.append(("initialize",))
        if self.init_error is not None:
            raise self.init_error

    async def encrypt(self, target: str, principal: str, value: int) -> EncryptedPayload:
        self.calls.append(("encrypt", target, principal, value))
        return EncryptedPayload(
            cipher_payload=value.to_bytes(32, "big"),
            proof=f"proof:{target}:{principal}".encode(),
        )

    async def verify_reveal(
        self,
        handles: Sequence[str],
        target: str,
        submit: RevealSubmit,
    ) -> RevealResult:
        self.calls.append(("verify_reveal", tuple(handles), target))
        if self.reveal_gate is not None:
            await self.reveal_gate.wait()
        await submit(self.clear_value.to_bytes(32, "big"), b"decryption-proof")
        if self.omit_handle:
            return RevealResult(clear_values={}, decryption_proof=b"decryption-proof")
        return RevealResult(
            clear_values={handles[0]: self.clear_value}, decryption_proof=b"decryption-proof"
        )

    def call_names(self) -> list[object]:
        return [call[0] for call in self.calls]


@dataclass
class Harness:
    state: SessionState
    ledger: FakeLedger
    engine: FakeCipherEngine
    cipher: GuardedCipherEngine
    status: StatusMachine
    handles: LedgerHandles
    sync: SyncController
    creation: CreationCoordinator
    reveal: RevealCoordinator


async def make_harness(
    records: dict[str, RecordFields] | None = None,
    *,
    principal: str | None = PRINCIPAL,
    with_signer: bool = True,
    engine: FakeCipherEngine | None = None,
    record_id: str = "habit-1767225600000-abc123xyz",
) -> Harness:
    """Build a fully wired session with an initialized engine."""
    state = SessionState(principal=principal)
    ledger = FakeLedger(records)
    fake_engine = engine or FakeCipherEngine()
    cipher = GuardedCipherEngine(fake_engine)
    await cipher.initialize()
    status = StatusMachine(state)
    handles = LedgerHandles(reader=ledger, signer=ledger if with_signer else None)
    sync = SyncController(state, handles, status)
    creation = CreationCoordinator(
        state, handles, cipher, status, sync, id_factory=lambda: record_id
    )
    reveal = RevealCoordinator(state, handles, cipher, status, sync)
    return Harness(
        state=state,
        ledger=ledger,
        engine=fake_engine,
        cipher=cipher,
        status=status,
        handles=handles,
        sync=sync,
        creation=creation,
        reveal=reveal,
    )
