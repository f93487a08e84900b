"""
Tests for refund fee quotes and the self-funded deployment flow.
"""
import inspect

import pytest
from web3 import Web3

from models import FeeQuote, MetaTransaction

from conftest import MULTI_SEND, RECIPIENT, WALLET

USDC = Web3.to_checksum_address("0x2791bca1f2de4661ed88a30c99a7a9449aa84174")
FEE_RECEIVER = Web3.to_checksum_address("0xfee0000000000000000000000000000000000001")


@pytest.fixture
def fee_options(relayer):
    relayer.fee_options = [
        {
            "symbol": "USDC",
            "address": USDC,
            "decimal": 6,
            "tokenGasPrice": "2871",
            "offset": 1000000,
            "refundReceiver": FEE_RECEIVER,
            "logoUrl": "https://tokens.test/usdc.png",
        },
    ]
    return relayer.fee_options


@pytest.mark.asyncio
async def test_quote_then_materialize_round_trip(account, fee_options, directory):
    call = MetaTransaction(to=RECIPIENT, value=0, data="0xa9059cbb")

    (quote,) = await account.prepare_refund_transaction(call)
    assert quote == FeeQuote(
        symbol="USDC", token_address=USDC, decimal=6, token_gas_price=2871, offset=1000000,
        refund_receiver=FEE_RECEIVER, logo_url="https://tokens.test/usdc.png",
        target_tx_gas=65000, base_gas=21000,
    )

    tx = await account.create_refund_transaction(call, quote)

    assert tx.is_refund
    assert tx.gas_price == quote.token_gas_price
    assert tx.gas_token == quote.token_address
    assert tx.token_gas_price_factor == quote.offset
    assert tx.refund_receiver == quote.refund_receiver
    assert tx.base_gas == quote.base_gas
    assert tx.target_tx_gas == quote.target_tx_gas
    assert directory.estimates[0][3] is False


@pytest.mark.asyncio
async def test_batch_quote_estimates_multi_send(account, fee_options, directory):
    calls = [MetaTransaction(to=RECIPIENT), MetaTransaction(to=WALLET)]

    (quote,) = await account.prepare_refund_transaction_batch(calls)
    tx = await account.create_refund_transaction_batch(calls, quote)

    assert directory.estimates[0][2].to == MULTI_SEND
    assert tx.to == MULTI_SEND
    assert tx.gas_price == quote.token_gas_price


def test_quotes_take_no_batch_id(account):
    for quote in (account.prepare_refund_transaction, account.prepare_refund_transaction_batch,
                  account.fee_quotes.quote_refund, account.fee_quotes.quote_refund_batch):
        assert "batch_id" not in inspect.signature(quote).parameters


@pytest.mark.asyncio
async def test_no_fee_options_gives_no_quotes(account):
    assert await account.prepare_refund_transaction(MetaTransaction(to=RECIPIENT)) == []


@pytest.mark.asyncio
async def test_deploy_and_pay_fees(account, fee_options, relayer):
    (quote,) = await account.prepare_deploy_and_pay_fees()

    transaction_id = await account.deploy_and_pay_fees(quote)

    assert transaction_id == "0xrelayed"
    (request,) = relayer.requests
    assert request.signed_tx.tx.to == WALLET
    assert request.signed_tx.tx.gas_token == USDC
    assert request.gas_limit.hex == "0x1E8480"
