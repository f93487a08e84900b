"""
Tests for wallet transaction building and upgrade detection.
"""
import pytest

from chain_context import ChainContextRegistry
from config import DEFAULT_CONFIG, ZERO_ADDRESS
from contracts import SET_FALLBACK_HANDLER, UPDATE_IMPLEMENTATION, decode_function_call, decode_multi_send
from models import MetaTransaction, Operation
from transactions import WalletTransactionBuilder, build_multi_send_transaction
from upgrades import UpgradeInjector

from conftest import CHAIN_ID, HANDLER_LATEST, HANDLER_V1, IMPLEMENTATION_LATEST, MULTI_SEND, RECIPIENT, WALLET


@pytest.fixture
def registry(signer, directory, context_factories):
    return ChainContextRegistry(DEFAULT_CONFIG, signer, directory, **context_factories)


@pytest.fixture
def builder(registry):
    return WalletTransactionBuilder(registry)


@pytest.fixture
def upgrades(registry):
    return UpgradeInjector(registry)


@pytest.mark.asyncio
async def test_gasless_transaction_has_zero_refund_fields(builder, reader):
    tx = await builder.create_transaction(MetaTransaction(to=RECIPIENT, value=10), CHAIN_ID)

    assert tx.to == RECIPIENT
    assert tx.value == 10
    assert tx.data == "0x"
    assert tx.operation == Operation.CALL
    assert (tx.target_tx_gas, tx.base_gas, tx.gas_price, tx.token_gas_price_factor) == (0, 0, 0, 0)
    assert tx.gas_token == ZERO_ADDRESS
    assert tx.refund_receiver == ZERO_ADDRESS
    assert not tx.is_refund
    # undeployed wallets start at nonce 0 without touching the chain
    assert tx.nonce == 0
    assert reader.wallet_nonce_calls == []


@pytest.mark.asyncio
async def test_deployed_wallet_reads_batch_nonce(builder, reader, deployed):
    tx = await builder.create_transaction(MetaTransaction(to=RECIPIENT), CHAIN_ID, batch_id=3)

    assert tx.nonce == reader.wallet_nonce
    assert reader.wallet_nonce_calls == [(WALLET, 3)]


@pytest.mark.asyncio
async def test_batch_targets_multi_send_with_delegate_call(builder):
    calls = [MetaTransaction(to=RECIPIENT, value=1), MetaTransaction(to=WALLET, data="0x01")]
    tx = await builder.create_transaction_batch(calls, CHAIN_ID)

    assert tx.to == MULTI_SEND
    assert tx.operation == Operation.DELEGATE_CALL
    assert [call.to for call in decode_multi_send(tx.data)] == [RECIPIENT, WALLET]


def test_empty_batch_is_rejected():
    with pytest.raises(ValueError):
        build_multi_send_transaction(MULTI_SEND, [])


@pytest.mark.asyncio
async def test_upgrade_not_required_when_current(upgrades, deployed):
    check = await upgrades.build_upgrade_transaction(CHAIN_ID)
    assert not check.required
    assert check.transaction is None


@pytest.mark.asyncio
async def test_upgrade_not_required_when_undeployed(upgrades, directory):
    directory.wallet_info["implementationAddress"] = "0x0000000000000000000000000000000000000bad"
    check = await upgrades.build_upgrade_transaction(CHAIN_ID)
    assert not check.required


@pytest.mark.asyncio
async def test_upgrade_required_then_no_op_once_synced(upgrades, registry, directory, stale_implementation):
    check = await upgrades.build_upgrade_transaction(CHAIN_ID)

    assert check.required
    assert check.transaction.to == WALLET
    (implementation,) = decode_function_call(UPDATE_IMPLEMENTATION, check.transaction.data)
    assert implementation == IMPLEMENTATION_LATEST

    directory.wallet_info["implementationAddress"] = IMPLEMENTATION_LATEST.lower()
    await registry.refresh_state(CHAIN_ID)
    assert not (await upgrades.build_upgrade_transaction(CHAIN_ID)).required


@pytest.mark.asyncio
async def test_fallback_handler_update(upgrades, directory, deployed):
    directory.wallet_info["fallBackHandlerAddress"] = HANDLER_V1

    check = await upgrades.build_fallback_handler_update(CHAIN_ID)

    assert check.required
    (handler,) = decode_function_call(SET_FALLBACK_HANDLER, check.transaction.data)
    assert handler == HANDLER_LATEST
