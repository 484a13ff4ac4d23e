"""Unit tests for the web3 ledger adapter, driven through mocked contracts."""

from __future__ import annotations

from unittest import mock

import pytest
from eth_account import Account
from web3.exceptions import ContractLogicError, TimeExhausted

from habit_vault.collaborators.errors import (
    AlreadyVerifiedError,
    LedgerError,
    LedgerTransactionError,
    UserRejectedError,
)
from habit_vault.collaborators.web3_ledger import (
    HABIT_LEDGER_ABI,
    Web3LedgerReader,
    Web3LedgerSigner,
    Web3PendingTransaction,
    build_ledger_handles,
    decode_record,
    map_ledger_error,
)
from habit_vault.config.loader import ClientConfig

# Well-known throwaway key from the eth-account documentation.
TEST_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
CONTRACT = "0x2222222222222222222222222222222222222222"
SENDER = "0x1111111111111111111111111111111111111111"


def _contract_with(function: str, **call_kwargs: object) -> mock.MagicMock:
    contract = mock.MagicMock()
    contract.address = CONTRACT
    getattr(contract.functions, function).return_value.call = mock.AsyncMock(**call_kwargs)
    return contract


@pytest.mark.unit
class TestErrorMapping:
    def test_rpc_code_4001_is_user_rejection(self) -> None:
        error = map_ledger_error(Exception({"code": 4001, "message": "User rejected the request."}))
        assert isinstance(error, UserRejectedError)
        assert error.detail == "User rejected the request."

    def test_rejection_message_without_code(self) -> None:
        error = map_ledger_error(RuntimeError("MetaMask Tx Signature: User denied transaction"))
        assert isinstance(error, UserRejectedError)

    def test_already_verified_revert(self) -> None:
        error = map_ledger_error(ContractLogicError("execution reverted: Data already verified"))
        assert isinstance(error, AlreadyVerifiedError)

    def test_other_revert(self) -> None:
        error = map_ledger_error(ContractLogicError("execution reverted: Not creator"))
        assert type(error) is LedgerError
        assert error.code == "contract_reverted"

    def test_receipt_timeout(self) -> None:
        assert map_ledger_error(TimeExhausted("not mined")).code == "receipt_timeout"

    def test_generic_and_passthrough(self) -> None:
        assert map_ledger_error(ValueError("boom")).code == "ledger_error"
        original = UserRejectedError("x")
        assert map_ledger_error(original) is original


@pytest.mark.unit
class TestDecodeRecord:
    def test_tuple_output(self) -> None:
        fields = decode_record(("Read", 3, 7, "Habit: Read", SENDER, 1_767_225_600, 0, False))
        assert fields.name == "Read"
        assert fields.public_value_1 == 3
        assert fields.public_value_2 == 7
        assert fields.description == "Habit: Read"
        assert fields.creator == SENDER
        assert fields.verified is False

    def test_mapping_output(self) -> None:
        fields = decode_record({"name": "Swim", "verified": True, "decrypted_value": 9})
        assert fields.verified is True
        assert fields.decrypted_value == 9
        assert fields.creator == ""

    def test_wrong_arity_is_rejected(self) -> None:
        with pytest.raises(LedgerError) as excinfo:
            decode_record(("Read", 3))
        assert excinfo.value.code == "response_invalid"

    def test_abi_lists_contract_functions(self) -> None:
        names = {entry["name"] for entry in HABIT_LEDGER_ABI}
        assert names == {
            "isAvailable",
            "getAllBusinessIds",
            "getBusinessData",
            "getEncryptedValue",
            "createBusinessData",
            "verifyDecryption",
        }


@pytest.mark.unit
class TestReader:
    @pytest.mark.asyncio
    async def test_list_record_ids(self) -> None:
        reader = Web3LedgerReader(_contract_with("getAllBusinessIds", return_value=["A", "B"]))
        assert await reader.list_record_ids() == ["A", "B"]

    @pytest.mark.asyncio
    async def test_probe(self) -> None:
        reader = Web3LedgerReader(_contract_with("isAvailable", return_value=True))
        assert await reader.probe_availability() is True

    @pytest.mark.asyncio
    async def test_encrypted_handle_is_normalized(self) -> None:
        contract = _contract_with("getEncryptedValue", return_value=b"\xab" * 32)
        reader = Web3LedgerReader(contract)

        assert await reader.get_encrypted_handle("A") == "0x" + "ab" * 32
        contract.functions.getEncryptedValue.assert_called_once_with("A")

    @pytest.mark.asyncio
    async def test_call_failure_is_normalized(self) -> None:
        contract = _contract_with(
            "getBusinessData", side_effect=ContractLogicError("execution reverted")
        )
        reader = Web3LedgerReader(contract)

        with pytest.raises(LedgerError) as excinfo:
            await reader.get_record("B")

        assert excinfo.value.code == "contract_reverted"
        assert isinstance(excinfo.value.__cause__, ContractLogicError)

    @pytest.mark.asyncio
    async def test_address(self) -> None:
        reader = Web3LedgerReader(_contract_with("isAvailable"))
        assert await reader.get_address() == CONTRACT


@pytest.mark.unit
class TestSigner:
    @pytest.mark.asyncio
    async def test_transact_path_sends_from_sender(self) -> None:
        contract = mock.MagicMock()
        call = contract.functions.createBusinessData.return_value
        call.transact = mock.AsyncMock(return_value=b"\x12" * 32)
        signer = Web3LedgerSigner(
            mock.MagicMock(), contract, sender=SENDER, chain_id=1, receipt_timeout_seconds=5.0
        )

        pending = await signer.create_record("A", "Read", b"c", b"p", 3, 2, "Habit: Read")

        contract.functions.createBusinessData.assert_called_once_with(
            "A", "Read", b"c", b"p", 3, 2, "Habit: Read"
        )
        call.transact.assert_awaited_once_with({"from": SENDER})
        assert pending.tx_hash == "0x" + "12" * 32

    @pytest.mark.asyncio
    async def test_local_signing_path(self) -> None:
        account = Account.from_key(TEST_KEY)
        w3 = mock.MagicMock()
        w3.eth.get_transaction_count = mock.AsyncMock(return_value=7)
        w3.eth.send_raw_transaction = mock.AsyncMock(return_value=b"\x34" * 32)
        contract = mock.MagicMock()
        call = contract.functions.verifyDecryption.return_value
        call.build_transaction = mock.AsyncMock(
            return_value={
                "to": CONTRACT,
                "value": 0,
                "gas": 200_000,
                "gasPrice": 1_000_000_000,
                "nonce": 7,
                "chainId": 11155111,
                "data": "0x",
            }
        )
        signer = Web3LedgerSigner(
            w3, contract, account=account, chain_id=11155111, receipt_timeout_seconds=5.0
        )

        pending = await signer.submit_reveal("A", b"\x00" * 31 + b"\x2a", b"proof")

        call.build_transaction.assert_awaited_once_with(
            {"from": account.address, "nonce": 7, "chainId": 11155111}
        )
        w3.eth.send_raw_transaction.assert_awaited_once()
        assert pending.tx_hash == "0x" + "34" * 32
        assert signer.sender == account.address

    @pytest.mark.asyncio
    async def test_wallet_rejection_is_normalized(self) -> None:
        contract = mock.MagicMock()
        contract.functions.createBusinessData.return_value.transact = mock.AsyncMock(
            side_effect=Exception({"code": 4001, "message": "User denied transaction signature."})
        )
        signer = Web3LedgerSigner(
            mock.MagicMock(), contract, sender=SENDER, chain_id=1, receipt_timeout_seconds=5.0
        )

        with pytest.raises(UserRejectedError):
            await signer.create_record("A", "Read", b"c", b"p", 1, 0, "Habit: Read")

    def test_requires_account_or_sender(self) -> None:
        with pytest.raises(ValueError, match="account or sender"):
            Web3LedgerSigner(
                mock.MagicMock(), mock.MagicMock(), chain_id=1, receipt_timeout_seconds=5.0
            )


@pytest.mark.unit
class TestPendingTransaction:
    @pytest.mark.asyncio
    async def test_wait_returns_successful_receipt(self) -> None:
        w3 = mock.MagicMock()
        w3.eth.wait_for_transaction_receipt = mock.AsyncMock(return_value={"status": 1})
        pending = Web3PendingTransaction(w3, "0xab", timeout_seconds=5.0)

        assert await pending.wait() == {"status": 1}
        w3.eth.wait_for_transaction_receipt.assert_awaited_once_with("0xab", timeout=5.0)

    @pytest.mark.asyncio
    async def test_reverted_receipt_raises(self) -> None:
        w3 = mock.MagicMock()
        w3.eth.wait_for_transaction_receipt = mock.AsyncMock(return_value={"status": 0})
        pending = Web3PendingTransaction(w3, "0xab", timeout_seconds=5.0)

        with pytest.raises(LedgerTransactionError) as excinfo:
            await pending.wait()
        assert excinfo.value.tx_hash == "0xab"


@pytest.mark.unit
class TestBuildLedgerHandles:
    def _config(self, **changes: object) -> ClientConfig:
        values: dict[str, object] = {"rpc_url": "http://localhost:8545", "contract_address": CONTRACT}
        values.update(changes)
        return ClientConfig(**values)  # type: ignore[arg-type]

    def test_binds_local_signer_from_env(self) -> None:
        handles, principal = build_ledger_handles(
            self._config(),
            environ={"HABIT_VAULT_SIGNER_KEY": TEST_KEY},
            w3=mock.MagicMock(),
        )

        assert isinstance(handles.reader, Web3LedgerReader)
        assert isinstance(handles.signer, Web3LedgerSigner)
        assert principal == Account.from_key(TEST_KEY).address

    def test_read_only_without_key(self) -> None:
        handles, principal = build_ledger_handles(self._config(), environ={}, w3=mock.MagicMock())

        assert handles.signer is None
        assert principal is None

    def test_provider_managed_sender(self) -> None:
        handles, principal = build_ledger_handles(
            self._config(), environ={}, w3=mock.MagicMock(), sender=SENDER
        )

        assert handles.signer is not None
        assert principal == SENDER

    def test_requires_rpc_url(self) -> None:
        with pytest.raises(LedgerError) as excinfo:
            build_ledger_handles(self._config(rpc_url=""), environ={}, w3=mock.MagicMock())
        assert excinfo.value.code == "not_configured"
