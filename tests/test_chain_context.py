"""
Tests for the per-chain context registry.
"""
import asyncio

import pytest
from web3 import Web3

from chain_context import ChainContextRegistry, ContextStatus
from config import DEFAULT_CONFIG, MAINNET, NetworkConfig
from directory import AccountDirectoryClient
from exceptions import ContextNotReadyError, ResolutionError

from conftest import (
    CHAIN_ID,
    ENTRY_POINT,
    FACTORY,
    GAS_TANK,
    HANDLER_LATEST,
    MULTI_SEND,
    MULTI_SEND_CALL,
    WALLET,
    chain_config_payload,
)

BACKEND_URL = "https://backend.test/v1"


@pytest.fixture
def registry(signer, directory, context_factories):
    return ChainContextRegistry(DEFAULT_CONFIG, signer, directory, **context_factories)


@pytest.mark.asyncio
async def test_ensure_context_is_idempotent(registry, directory):
    first = await registry.ensure_context(CHAIN_ID)
    second = await registry.ensure_context(CHAIN_ID, "1.0.0")

    assert first.status == ContextStatus.READY
    assert first.context is second.context
    assert directory.resolutions == 1


@pytest.mark.asyncio
async def test_context_addresses(registry, provider):
    context = await registry.require_context(CHAIN_ID)

    assert context.wallet_address == WALLET
    assert context.provider_url == "https://rpc.mumbai.test"
    assert context.contracts.wallet_factory == FACTORY
    assert context.contracts.multi_send == MULTI_SEND
    assert context.contracts.multi_send_call == MULTI_SEND_CALL
    assert context.contracts.fallback_gas_tank == GAS_TANK
    assert context.contracts.entry_point == ENTRY_POINT
    assert provider.kwargs["fallback_handler_address"] == HANDLER_LATEST
    assert provider.kwargs["wallet_address"] == WALLET


@pytest.mark.asyncio
async def test_network_config_overrides_provider_url(signer, directory, context_factories):
    config = DEFAULT_CONFIG.merge({
        "network_config": [NetworkConfig(chain_id=CHAIN_ID, provider_url="https://private-rpc.test")],
    })
    registry = ChainContextRegistry(config, signer, directory, **context_factories)

    context = await registry.require_context(CHAIN_ID)
    assert context.provider_url == "https://private-rpc.test"


@pytest.mark.asyncio
async def test_unsupported_chain(registry, directory):
    result = await registry.ensure_context(MAINNET)

    assert result.status == ContextStatus.UNSUPPORTED_CHAIN
    assert directory.resolutions == 0
    with pytest.raises(ContextNotReadyError, match="not supported"):
        await registry.require_context(MAINNET)


@pytest.mark.asyncio
async def test_failed_context_is_not_cached(registry, directory):
    directory.resolve_error = ResolutionError("backend unavailable")

    result = await registry.ensure_context(CHAIN_ID)
    assert result.status == ContextStatus.FAILED
    assert isinstance(result.error, ResolutionError)
    with pytest.raises(ContextNotReadyError, match="backend unavailable"):
        result.unwrap(CHAIN_ID)

    directory.resolve_error = None
    result = await registry.ensure_context(CHAIN_ID)
    assert result.ready


@pytest.mark.asyncio
async def test_refresh_state_replaces_snapshot(registry, directory):
    await registry.require_context(CHAIN_ID)
    assert registry.get_state(CHAIN_ID).is_deployed is False

    directory.wallet_info["isDeployed"] = True
    await registry.refresh_state(CHAIN_ID)

    state = registry.get_state(CHAIN_ID)
    assert state.is_deployed is True
    assert state.owner == registry.owner


def test_state_before_resolution(registry):
    with pytest.raises(ContextNotReadyError):
        registry.get_state(CHAIN_ID)


@pytest.mark.asyncio
async def test_concurrent_initialization_shares_one_context(registry, directory):
    resolve = directory.get_wallet_info

    async def slow_resolve(*args, **kwargs):
        await asyncio.sleep(0)
        return await resolve(*args, **kwargs)

    directory.get_wallet_info = slow_resolve

    first, second = await asyncio.gather(registry.ensure_context(CHAIN_ID), registry.ensure_context(CHAIN_ID))

    assert first.ready and second.ready
    assert first.context is second.context
    assert directory.resolutions == 2
    third = await registry.ensure_context(CHAIN_ID)
    assert third.context is first.context
    assert directory.resolutions == 2


@pytest.mark.asyncio
async def test_refresh_rejects_a_different_wallet(registry, directory):
    await registry.require_context(CHAIN_ID)
    directory.wallet_info["smartAccountAddress"] = Web3.to_checksum_address(
        "0x5a1e000000000000000000000000000000000002"
    )

    with pytest.raises(ResolutionError, match="expected"):
        await registry.refresh_state(CHAIN_ID)

    assert registry.wallet_address == WALLET
    assert registry.get_state(CHAIN_ID).address == WALLET


@pytest.mark.asyncio
async def test_lookup_wallet_leaves_state_alone(registry, directory):
    await registry.require_context(CHAIN_ID)
    directory.wallet_info["isDeployed"] = True

    info = await registry.lookup_wallet(CHAIN_ID, index=3)

    assert info.is_deployed is True
    assert registry.get_state(CHAIN_ID).is_deployed is False


@pytest.mark.asyncio
async def test_malformed_wallet_payload_fails_context(requests_mock, signer, context_factories):
    requests_mock.get(f"{BACKEND_URL}/chains/", json={"data": [chain_config_payload()]})
    requests_mock.post(f"{BACKEND_URL}/smart-accounts/", json={"data": [{"version": "1.0.0"}]})
    registry = ChainContextRegistry(DEFAULT_CONFIG, signer, AccountDirectoryClient(BACKEND_URL),
                                    **context_factories)

    result = await registry.ensure_context(CHAIN_ID)

    assert result.status == ContextStatus.FAILED
    assert isinstance(result.error, ResolutionError)
    assert "smartAccountAddress" in str(result.error)
