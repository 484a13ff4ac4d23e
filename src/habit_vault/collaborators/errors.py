"""
habit-vault — normalized error taxonomy for ledger and cipher-engine failures.

File: src/habit_vault/collaborators/errors.py

Purpose
- Give every remote or cryptographic failure a machine-readable ``code`` so the
  coordinators can branch on error kind instead of on message text.

What should be included in this file
- Base error with deterministic ``code``/``detail`` fields.
- One subclass per failure the coordinators treat differently.
- A helper that walks ``__cause__``/``__context__`` chains.

Functional requirements
- User rejection and the "already verified" race must be distinguishable from
  generic ledger failures.
"""

from __future__ import annotations

from typing import TypeVar

TError = TypeVar("TError", bound=BaseException)

_MAX_DETAIL = 500


def _normalize_detail(detail: object) -> str:
    text = " ".join(str(detail).split())
    if not text:
        return "unknown error"
    if len(text) > _MAX_DETAIL:
        return text[: _MAX_DETAIL - 3] + "..."
    return text


class HabitVaultError(RuntimeError):
    """Base error with a stable ``code`` and a single-line ``detail``."""

    code = "error"

    def __init__(self, detail: object = "", *, code: str | None = None) -> None:
        if code is not None:
            self.code = code
        self.detail = _normalize_detail(detail)
        super().__init__(self.detail)


class InitializationError(HabitVaultError):
    """The cipher engine failed to initialize, or was used before initializing."""

    code = "initialization_failed"


class AuthenticationRequiredError(HabitVaultError):
    """No connected principal."""

    code = "authentication_required"


class LoadError(HabitVaultError):
    """A refresh failed before any record was fetched."""

    code = "load_failed"


class LedgerError(HabitVaultError):
    """Generic failure talking to the ledger."""

    code = "ledger_error"


class RecordFetchError(LedgerError):
    """One record could not be fetched during a refresh."""

    code = "record_fetch_failed"

    def __init__(self, record_id: str, detail: object = "") -> None:
        self.record_id = record_id
        super().__init__(detail or f"could not fetch record {record_id}")


class UserRejectedError(LedgerError):
    """The signer declined to authorize the transaction."""

    code = "user_rejected"


class AlreadyVerifiedError(LedgerError):
    """The ledger reports the record's encrypted value was already revealed."""

    code = "already_verified"


class LedgerTransactionError(LedgerError):
    """A submitted transaction was mined but reverted."""

    code = "transaction_reverted"

    def __init__(self, detail: object = "", *, tx_hash: str | None = None) -> None:
        self.tx_hash = tx_hash
        super().__init__(detail)


class CipherEngineError(HabitVaultError):
    """Generic failure inside the encryption/proof engine."""

    code = "cipher_engine_error"


class DecryptionError(CipherEngineError):
    """The verify-reveal exchange did not produce a usable clear value."""

    code = "decryption_failed"


def find_in_chain(exc: BaseException, error_type: type[TError]) -> TError | None:
    """Return the first exception of ``error_type`` in ``exc``'s cause/context chain."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, error_type):
            return current
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return None


__all__ = [
    "AlreadyVerifiedError",
    "AuthenticationRequiredError",
    "CipherEngineError",
    "DecryptionError",
    "HabitVaultError",
    "InitializationError",
    "LedgerError",
    "LedgerTransactionError",
    "LoadError",
    "RecordFetchError",
    "UserRejectedError",
    "find_in_chain",
]
