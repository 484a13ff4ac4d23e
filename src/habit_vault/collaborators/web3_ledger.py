"""
habit-vault — web3 adapter for the habit ledger contract.

File: src/habit_vault/collaborators/web3_ledger.py

Purpose
- Implement ``LedgerReader``/``LedgerSigner`` over an ``AsyncWeb3`` contract.

What should be included in this file
- The contract ABI fragment the client calls.
- Decoding of record tuples into ``RecordFields``.
- Two send paths: local signing with an ``eth_account`` key, or ``transact``
  through the node/wallet that holds the principal's account.
- Normalization of SDK/RPC failures into the error taxonomy at this boundary.

Functional requirements
- Signer rejection (JSON-RPC 4001) becomes ``UserRejectedError``.
- A revert whose reason says the data is already verified becomes
  ``AlreadyVerifiedError``.
- A mined receipt with status 0 becomes ``LedgerTransactionError``.
"""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Final, TypeVar

import structlog
from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted

from habit_vault.collaborators.base import LedgerHandles, TransactionReceipt
from habit_vault.collaborators.errors import (
    AlreadyVerifiedError,
    LedgerError,
    LedgerTransactionError,
    UserRejectedError,
)
from habit_vault.domain.models import RecordFields, normalize_handle

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

    from habit_vault.config.loader import ClientConfig

T = TypeVar("T")

_LOGGER = structlog.get_logger(__name__)

USER_REJECTED_RPC_CODE: Final[int] = 4001
_USER_REJECTED_MARKERS: Final[tuple[str, ...]] = (
    "user rejected",
    "user denied",
    "rejected by user",
    "action_rejected",
)
_ALREADY_VERIFIED_MARKERS: Final[tuple[str, ...]] = ("already verified",)

# Positional outputs of ``getBusinessData``.
RECORD_OUTPUT_FIELDS: Final[tuple[str, ...]] = (
    "name",
    "public_value_1",
    "public_value_2",
    "description",
    "creator",
    "timestamp",
    "decrypted_value",
    "verified",
)


def _fn(
    name: str,
    inputs: Sequence[tuple[str, str]],
    outputs: Sequence[tuple[str, str]] = (),
    *,
    mutability: str = "view",
) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": arg, "type": kind} for arg, kind in inputs],
        "outputs": [{"name": arg, "type": kind} for arg, kind in outputs],
    }


HABIT_LEDGER_ABI: Final[list[dict[str, Any]]] = [
    _fn("isAvailable", [], [("", "bool")], mutability="pure"),
    _fn("getAllBusinessIds", [], [("", "string[]")]),
    _fn(
        "getBusinessData",
        [("businessId", "string")],
        [
            ("name", "string"),
            ("publicValue1", "uint256"),
            ("publicValue2", "uint256"),
            ("description", "string"),
            ("creator", "address"),
            ("timestamp", "uint256"),
            ("decryptedValue", "uint32"),
            ("isVerified", "bool"),
        ],
    ),
    _fn("getEncryptedValue", [("businessId", "string")], [("", "bytes32")]),
    _fn(
        "createBusinessData",
        [
            ("businessId", "string"),
            ("name", "string"),
            ("encryptedValue", "bytes32"),
            ("inputProof", "bytes"),
            ("publicValue1", "uint256"),
            ("publicValue2", "uint256"),
            ("description", "string"),
        ],
        mutability="nonpayable",
    ),
    _fn(
        "verifyDecryption",
        [
            ("businessId", "string"),
            ("abiEncodedClearValue", "bytes"),
            ("decryptionProof", "bytes"),
        ],
        mutability="nonpayable",
    ),
]


def map_ledger_error(exc: BaseException) -> LedgerError:
    """Normalize an SDK/RPC exception into the ledger error taxonomy."""
    if isinstance(exc, LedgerError):
        return exc

    message = _error_message(exc)
    lowered = message.lower()
    if _rpc_error_code(exc) == USER_REJECTED_RPC_CODE or any(
        marker in lowered for marker in _USER_REJECTED_MARKERS
    ):
        return UserRejectedError(message)
    if any(marker in lowered for marker in _ALREADY_VERIFIED_MARKERS):
        return AlreadyVerifiedError(message)
    if isinstance(exc, TimeExhausted):
        return LedgerError(message, code="receipt_timeout")
    if isinstance(exc, ContractLogicError):
        return LedgerError(message, code="contract_reverted")
    return LedgerError(message)


def decode_record(raw: object) -> RecordFields:
    """Decode the ``getBusinessData`` output (tuple or mapping) into ``RecordFields``."""
    if isinstance(raw, Mapping):
        values = {field: raw.get(field) for field in RECORD_OUTPUT_FIELDS}
    elif isinstance(raw, Sequence) and not isinstance(raw, (str, bytes, bytearray)):
        if len(raw) != len(RECORD_OUTPUT_FIELDS):
            raise LedgerError(
                f"record tuple has {len(raw)} fields, expected {len(RECORD_OUTPUT_FIELDS)}",
                code="response_invalid",
            )
        values = dict(zip(RECORD_OUTPUT_FIELDS, raw, strict=True))
    else:
        raise LedgerError(
            f"unexpected record payload type {type(raw).__name__}", code="response_invalid"
        )

    name = values["name"]
    return RecordFields(
        name=name if isinstance(name, str) else "",
        public_value_1=values["public_value_1"],
        public_value_2=values["public_value_2"],
        decrypted_value=values["decrypted_value"],
        timestamp=values["timestamp"],
        creator=str(values["creator"] or ""),
        verified=bool(values["verified"]),
        description=str(values["description"] or ""),
    )


async def _guarded(operation: str, call: Callable[[], Awaitable[T]]) -> T:
    try:
        return await call()
    except LedgerError:
        raise
    except Exception as exc:
        error = map_ledger_error(exc)
        _LOGGER.warning(
            "ledger_call_failed", operation=operation, code=error.code, error=error.detail
        )
        raise error from exc


class Web3PendingTransaction:
    """A sent transaction; ``wait`` polls for its receipt."""

    def __init__(self, w3: AsyncWeb3, tx_hash: str, *, timeout_seconds: float) -> None:
        self._w3 = w3
        self._tx_hash = tx_hash
        self._timeout_seconds = timeout_seconds

    @property
    def tx_hash(self) -> str:
        return self._tx_hash

    async def wait(self) -> TransactionReceipt:
        receipt = await _guarded(
            "wait_for_receipt",
            lambda: self._w3.eth.wait_for_transaction_receipt(
                self._tx_hash, timeout=self._timeout_seconds
            ),
        )
        if receipt["status"] == 0:
            raise LedgerTransactionError(
                f"transaction {self._tx_hash} reverted", tx_hash=self._tx_hash
            )
        return receipt


class Web3LedgerReader:
    """Read-only contract handle."""

    def __init__(self, contract: Any) -> None:
        self._contract = contract

    async def probe_availability(self) -> bool:
        result = await _guarded(
            "probe_availability", lambda: self._contract.functions.isAvailable().call()
        )
        return bool(result)

    async def list_record_ids(self) -> list[str]:
        ids = await _guarded(
            "list_record_ids", lambda: self._contract.functions.getAllBusinessIds().call()
        )
        return [str(record_id) for record_id in ids]

    async def get_record(self, record_id: str) -> RecordFields:
        raw = await _guarded(
            "get_record", lambda: self._contract.functions.getBusinessData(record_id).call()
        )
        return decode_record(raw)

    async def get_encrypted_handle(self, record_id: str) -> str:
        raw = await _guarded(
            "get_encrypted_handle",
            lambda: self._contract.functions.getEncryptedValue(record_id).call(),
        )
        return normalize_handle(raw)

    async def get_address(self) -> str:
        return str(self._contract.address)


class Web3LedgerSigner:
    """Signer-capable contract handle.

    With ``account`` set, transactions are built and signed locally and sent
    raw. Otherwise they go through ``transact`` from ``sender``, which lets the
    node or wallet behind the provider ask the principal for authorization.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        contract: Any,
        *,
        account: LocalAccount | None = None,
        sender: str | None = None,
        chain_id: int,
        receipt_timeout_seconds: float,
        logger: Any | None = None,
    ) -> None:
        if account is None and not sender:
            raise ValueError("either account or sender is required")
        self._w3 = w3
        self._contract = contract
        self._account = account
        self._sender = account.address if account is not None else str(sender)
        self._chain_id = chain_id
        self._receipt_timeout_seconds = receipt_timeout_seconds
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def sender(self) -> str:
        return self._sender

    async def create_record(
        self,
        record_id: str,
        name: str,
        cipher_payload: bytes,
        proof: bytes,
        frequency: int,
        category_index: int,
        note: str,
    ) -> Web3PendingTransaction:
        call = self._contract.functions.createBusinessData(
            record_id, name, cipher_payload, proof, frequency, category_index, note
        )
        return await self._send("create_record", call)

    async def submit_reveal(
        self,
        record_id: str,
        clear_values_encoded: bytes,
        proof: bytes,
    ) -> Web3PendingTransaction:
        call = self._contract.functions.verifyDecryption(record_id, clear_values_encoded, proof)
        return await self._send("submit_reveal", call)

    async def _send(self, operation: str, call: Any) -> Web3PendingTransaction:
        if self._account is not None:
            raw_hash = await _guarded(operation, lambda: self._send_signed(call))
        else:
            raw_hash = await _guarded(
                operation, lambda: call.transact({"from": self._sender})
            )
        tx_hash = AsyncWeb3.to_hex(raw_hash)
        self._logger.info("ledger_tx_sent", operation=operation, tx_hash=tx_hash)
        return Web3PendingTransaction(
            self._w3, tx_hash, timeout_seconds=self._receipt_timeout_seconds
        )

    async def _send_signed(self, call: Any) -> bytes:
        assert self._account is not None
        nonce = await self._w3.eth.get_transaction_count(self._account.address)
        tx = await call.build_transaction(
            {"from": self._account.address, "nonce": nonce, "chainId": self._chain_id}
        )
        signed = self._account.sign_transaction(tx)
        return await self._w3.eth.send_raw_transaction(signed.raw_transaction)


def build_ledger_handles(
    config: ClientConfig,
    *,
    environ: Mapping[str, str] | None = None,
    w3: AsyncWeb3 | None = None,
    sender: str | None = None,
) -> tuple[LedgerHandles, str | None]:
    """Build reader/signer handles from config; returns the handles and the signer's principal.

    A signer is bound when the env var named by ``signer_key_env`` holds a
    private key, or when ``sender`` names an account managed by the provider.
    """
    if not config.rpc_url:
        raise LedgerError("rpc_url is not configured", code="not_configured")
    if not config.contract_address:
        raise LedgerError("contract_address is not configured", code="not_configured")

    client = w3 if w3 is not None else AsyncWeb3(AsyncHTTPProvider(config.rpc_url))
    contract = client.eth.contract(
        address=AsyncWeb3.to_checksum_address(config.contract_address),
        abi=HABIT_LEDGER_ABI,
    )
    handles = LedgerHandles(reader=Web3LedgerReader(contract))

    env_map = os.environ if environ is None else environ
    private_key = env_map.get(config.signer_key_env, "").strip() if config.signer_key_env else ""
    account = Account.from_key(private_key) if private_key else None

    if account is not None or sender:
        signer = Web3LedgerSigner(
            client,
            contract,
            account=account,
            sender=sender,
            chain_id=config.chain_id,
            receipt_timeout_seconds=config.receipt_timeout_seconds,
        )
        handles.signer = signer
        return handles, signer.sender
    return handles, None


def _error_message(exc: BaseException) -> str:
    for arg in exc.args:
        if isinstance(arg, Mapping):
            message = arg.get("message")
            if isinstance(message, str) and message.strip():
                return message
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message.strip():
        return message
    return str(exc) or type(exc).__name__


def _rpc_error_code(exc: BaseException) -> int | None:
    candidates: list[object] = [getattr(exc, "code", None)]
    rpc_response = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, Mapping):
        error = rpc_response.get("error")
        if isinstance(error, Mapping):
            candidates.append(error.get("code"))
    for arg in exc.args:
        if isinstance(arg, Mapping):
            candidates.append(arg.get("code"))
    for candidate in candidates:
        if isinstance(candidate, int) and not isinstance(candidate, bool):
            return candidate
    return None


__all__ = [
    "HABIT_LEDGER_ABI",
    "RECORD_OUTPUT_FIELDS",
    "USER_REJECTED_RPC_CODE",
    "Web3LedgerReader",
    "Web3LedgerSigner",
    "Web3PendingTransaction",
    "build_ledger_handles",
    "decode_record",
    "map_ledger_error",
]
