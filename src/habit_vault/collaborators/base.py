"""
habit-vault — collaborator contracts for the ledger and the cipher engine.

File: src/habit_vault/collaborators/base.py

Purpose
- Describe the async call surface the coordinators rely on, independent of
  any concrete ledger SDK or encryption library.

What should be included in this file
- Read-only and signer-capable ledger protocols.
- Pending transaction protocol (``wait`` suspends until inclusion).
- Cipher engine protocol, with ``verify_reveal`` modelled as one suspending
  call that awaits the caller-supplied ``submit`` before returning.
- ``LedgerHandles``: the mutable pair of handles a session is bound to.

Non-functional requirements
- Adapters raise the errors from ``habit_vault.collaborators.errors``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol, TypeAlias, runtime_checkable

from habit_vault.domain.models import EncryptedPayload, RecordFields, RevealResult

TransactionReceipt: TypeAlias = Mapping[str, object]


@runtime_checkable
class PendingTransaction(Protocol):
    """A submitted transaction that has not necessarily been included yet."""

    @property
    def tx_hash(self) -> str: ...

    async def wait(self) -> TransactionReceipt:
        """Suspend until the transaction is included; raise on revert."""


@runtime_checkable
class LedgerReader(Protocol):
    """Read-only handle to the remote record store."""

    async def probe_availability(self) -> bool: ...

    async def list_record_ids(self) -> Sequence[str]: ...

    async def get_record(self, record_id: str) -> RecordFields: ...

    async def get_encrypted_handle(self, record_id: str) -> str: ...

    async def get_address(self) -> str: ...


@runtime_checkable
class LedgerSigner(Protocol):
    """Signer-capable handle; every call here needs the principal's authorization."""

    async def create_record(
        self,
        record_id: str,
        name: str,
        cipher_payload: bytes,
        proof: bytes,
        frequency: int,
        category_index: int,
        note: str,
    ) -> PendingTransaction: ...

    async def submit_reveal(
        self,
        record_id: str,
        clear_values_encoded: bytes,
        proof: bytes,
    ) -> PendingTransaction: ...


RevealSubmit: TypeAlias = Callable[[bytes, bytes], Awaitable[TransactionReceipt]]


@runtime_checkable
class CipherEngine(Protocol):
    """Client-side encryption and proof engine."""

    async def initialize(self) -> None: ...

    async def encrypt(self, target: str, principal: str, value: int) -> EncryptedPayload: ...

    async def verify_reveal(
        self,
        handles: Sequence[str],
        target: str,
        submit: RevealSubmit,
    ) -> RevealResult:
        """Compute the decryption proof, relay it via ``submit`` and return the clear values."""


@dataclass(slots=True)
class LedgerHandles:
    """The ledger handles a session is currently bound to."""

    reader: LedgerReader
    signer: LedgerSigner | None = None


__all__ = [
    "CipherEngine",
    "LedgerHandles",
    "LedgerReader",
    "LedgerSigner",
    "PendingTransaction",
    "RevealSubmit",
    "TransactionReceipt",
]
