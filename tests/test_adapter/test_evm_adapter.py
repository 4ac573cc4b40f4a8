"""
EVM Adapter Test Suite

Tests for EVMAdapter without blockchain connectivity: the AsyncWeb3 instance
is replaced by a mock whose RPC calls return canned receipts.

Test Structure:
    - Paying side: transfer broadcast, confirmation, failure statuses
    - Receiving side: receipt-based verification of a transfer
    - Hub routing by CAIP-2 namespace

Usage:
    pytest tests/test_adapter/test_evm_adapter.py -v
"""

from unittest.mock import AsyncMock, Mock

import pytest
from web3.exceptions import TransactionNotFound

from x402_checkout.adapters.adapters_hub import AdapterHub
from x402_checkout.adapters.evm.adapter import EVMAdapter
from x402_checkout.adapters.evm.ERC20_ABI import TRANSFER_EVENT_TOPIC
from x402_checkout.engine.exceptions import ConfigurationError, UnsupportedScheme
from x402_checkout.schemas.bases import TransactionStatus, VerificationStatus
from x402_checkout.schemas.payments import PaymentRequirements

from conftest import ASSET, PAY_TO, PAYER, TX_HASH, make_requirements


MOCK_PRIVATE_KEY = "0x1234567890123456789012345678901234567890123456789012345678901234"
OTHER_ASSET = "0x" + "99" * 20


def _requirements(**overrides) -> PaymentRequirements:
    return PaymentRequirements.model_validate(make_requirements(**overrides))


def _topic(address: str) -> bytes:
    return bytes(12) + bytes.fromhex(address[2:])


def _transfer_log(asset: str = ASSET, to: str = PAY_TO, value: int = 500000) -> dict:
    return {
        "address": asset,
        "topics": [bytes.fromhex(TRANSFER_EVENT_TOPIC[2:]), _topic(PAYER), _topic(to)],
        "data": value.to_bytes(32, "big"),
    }


def _receipt(logs=None, status: int = 1) -> dict:
    return {
        "status": status,
        "blockNumber": 100,
        "gasUsed": 50000,
        "effectiveGasPrice": 10,
        "from": PAYER,
        "to": ASSET,
        "logs": logs if logs is not None else [_transfer_log()],
    }


def _adapter(web3: Mock, **kwargs) -> EVMAdapter:
    adapter = EVMAdapter(private_key=MOCK_PRIVATE_KEY, load_env_key=False, **kwargs)
    adapter._get_web3_instance = Mock(return_value=web3)
    adapter._sleep_async = AsyncMock()
    return adapter


def _web3(receipt=None, receipt_error=None) -> Mock:
    web3 = Mock()
    web3.eth.get_transaction_receipt = AsyncMock(return_value=receipt, side_effect=receipt_error)
    web3.eth.send_raw_transaction = AsyncMock(return_value=bytes.fromhex(TX_HASH[2:]))
    web3.to_hex = Mock(return_value=TX_HASH)
    return web3


# ========================================================================
# Receiving side
# ========================================================================

@pytest.mark.asyncio
async def test_verify_transfer_success():
    adapter = _adapter(_web3(_receipt()))

    result = await adapter.verify_transfer(TX_HASH, _requirements())

    assert result.is_success()
    assert result.payer == PAYER
    assert result.transferred_amount == 500000
    assert result.receiver == PAY_TO


@pytest.mark.asyncio
async def test_verify_transfer_accepts_overpayment():
    adapter = _adapter(_web3(_receipt([_transfer_log(value=2 ** 60)])))

    result = await adapter.verify_transfer(TX_HASH, _requirements())

    assert result.is_success()
    assert result.transferred_amount == 2 ** 60


@pytest.mark.asyncio
async def test_unknown_transaction_is_pending():
    adapter = _adapter(_web3(receipt_error=TransactionNotFound("not found")))

    result = await adapter.verify_transfer(TX_HASH, _requirements())

    assert result.status == VerificationStatus.PENDING
    assert result.is_pending()


@pytest.mark.asyncio
async def test_rpc_failure_is_blockchain_error():
    adapter = _adapter(_web3(receipt_error=ConnectionError("rpc down")))

    result = await adapter.verify_transfer(TX_HASH, _requirements())

    assert result.status == VerificationStatus.BLOCKCHAIN_ERROR


@pytest.mark.asyncio
async def test_reverted_transaction_fails():
    adapter = _adapter(_web3(_receipt(status=0)))

    result = await adapter.verify_transfer(TX_HASH, _requirements())

    assert result.status == VerificationStatus.TRANSACTION_FAILED


@pytest.mark.asyncio
@pytest.mark.parametrize("log, status", [
    (_transfer_log(asset=OTHER_ASSET), VerificationStatus.WRONG_ASSET),
    (_transfer_log(to="0x" + "cd" * 20), VerificationStatus.INVALID_DESTINATION),
    (_transfer_log(value=499999), VerificationStatus.INSUFFICIENT_AMOUNT),
])
async def test_mismatched_transfer_is_rejected(log, status):
    adapter = _adapter(_web3(_receipt([log])))

    result = await adapter.verify_transfer(TX_HASH, _requirements())

    assert result.status == status
    assert not result.is_success()


@pytest.mark.asyncio
async def test_insufficient_confirmations_are_pending():
    web3 = _web3(_receipt())
    web3.eth.block_number = _awaitable(100)
    adapter = _adapter(web3, min_confirmations=3)

    result = await adapter.verify_transfer(TX_HASH, _requirements())

    assert result.status == VerificationStatus.PENDING


@pytest.mark.asyncio
async def test_non_evm_network_is_mismatch():
    adapter = _adapter(_web3(_receipt()))

    result = await adapter.verify_transfer(TX_HASH, _requirements(network="solana:mainnet"))

    assert result.status == VerificationStatus.NETWORK_MISMATCH


# ========================================================================
# Paying side
# ========================================================================

@pytest.mark.asyncio
async def test_transfer_broadcasts_and_confirms():
    web3 = _web3(_receipt())
    adapter = _adapter(web3)
    adapter._build_transfer_transaction = AsyncMock(return_value=b"signed")

    confirmation = await adapter.transfer(_requirements())

    assert confirmation.is_success()
    assert confirmation.tx_hash == TX_HASH
    assert confirmation.from_address == PAYER
    assert confirmation.transaction_fee == 500000
    web3.eth.send_raw_transaction.assert_awaited_once_with(b"signed")


@pytest.mark.asyncio
async def test_transfer_without_key_is_configuration_error():
    adapter = EVMAdapter(load_env_key=False)

    with pytest.raises(ConfigurationError):
        await adapter.transfer(_requirements())
    with pytest.raises(ConfigurationError):
        adapter.get_wallet_address()


@pytest.mark.asyncio
async def test_transfer_broadcast_failure():
    web3 = _web3(_receipt())
    web3.eth.send_raw_transaction = AsyncMock(side_effect=ValueError("nonce too low"))
    adapter = _adapter(web3)
    adapter._build_transfer_transaction = AsyncMock(return_value=b"signed")

    confirmation = await adapter.transfer(_requirements())

    assert confirmation.status == TransactionStatus.NETWORK_ERROR
    assert "nonce too low" in confirmation.error_message


@pytest.mark.asyncio
async def test_transfer_build_failure():
    adapter = _adapter(_web3(_receipt()))
    adapter._build_transfer_transaction = AsyncMock(side_effect=ValueError("insufficient funds"))

    confirmation = await adapter.transfer(_requirements())

    assert confirmation.status == TransactionStatus.INVALID_TRANSACTION


@pytest.mark.asyncio
async def test_transfer_confirmation_timeout():
    adapter = _adapter(_web3(receipt_error=TransactionNotFound("pending")), receipt_max_attempts=3)
    adapter._build_transfer_transaction = AsyncMock(return_value=b"signed")

    confirmation = await adapter.transfer(_requirements())

    assert confirmation.status == TransactionStatus.TIMEOUT
    assert adapter._sleep_async.await_count == 3


@pytest.mark.asyncio
async def test_transfer_reverted():
    adapter = _adapter(_web3(_receipt(status=0)))
    adapter._build_transfer_transaction = AsyncMock(return_value=b"signed")

    confirmation = await adapter.transfer(_requirements())

    assert confirmation.status == TransactionStatus.FAILED


# ========================================================================
# Hub
# ========================================================================

def test_hub_routes_by_namespace():
    adapter = EVMAdapter(private_key=MOCK_PRIVATE_KEY, load_env_key=False)
    hub = AdapterHub(adapters=[adapter])

    assert hub.get_adapter(_requirements()) is adapter
    assert hub.supports("eip155:1")
    assert not hub.supports("solana:mainnet")
    assert hub.get_wallet_address("eip155:84532") == adapter.wallet_address
    with pytest.raises(UnsupportedScheme):
        hub.get_adapter(_requirements(network="solana:mainnet"))


def _awaitable(value):
    async def _value():
        return value
    return _value()
