"""Collaborator contracts (ledger, cipher engine), their error taxonomy and adapters.

The web3 adapter is not imported here so that importing the contracts stays
free of the web3 import cost; use ``habit_vault.collaborators.web3_ledger``.
"""

from habit_vault.collaborators.base import (
    CipherEngine,
    LedgerHandles,
    LedgerReader,
    LedgerSigner,
    PendingTransaction,
    RevealSubmit,
    TransactionReceipt,
)
from habit_vault.collaborators.cipher import GuardedCipherEngine
from habit_vault.collaborators.errors import (
    AlreadyVerifiedError,
    AuthenticationRequiredError,
    CipherEngineError,
    DecryptionError,
    HabitVaultError,
    InitializationError,
    LedgerError,
    LedgerTransactionError,
    LoadError,
    RecordFetchError,
    UserRejectedError,
    find_in_chain,
)

__all__ = [
    "AlreadyVerifiedError",
    "AuthenticationRequiredError",
    "CipherEngine",
    "CipherEngineError",
    "DecryptionError",
    "GuardedCipherEngine",
    "HabitVaultError",
    "InitializationError",
    "LedgerError",
    "LedgerHandles",
    "LedgerReader",
    "LedgerSigner",
    "LedgerTransactionError",
    "LoadError",
    "PendingTransaction",
    "RecordFetchError",
    "RevealSubmit",
    "TransactionReceipt",
    "UserRejectedError",
    "find_in_chain",
]
