"""
Detection of stale wallet implementation and fallback handler
"""

import logging
from typing import Optional

from web3 import Web3

from chain_context import ChainContextRegistry
from contracts import encode_set_fallback_handler, encode_update_implementation
from models import MetaTransaction, UpgradeCheck, UpgradeKind

logger = logging.getLogger(__name__)


def _same_address(left: str, right: str) -> bool:
    return Web3.to_checksum_address(left) == Web3.to_checksum_address(right)


class UpgradeInjector:
    """Builds the self-call that moves a deployed wallet onto the latest contracts"""

    def __init__(self, registry: ChainContextRegistry):
        self.registry = registry

    async def build_upgrade_transaction(self, chain_id: int, version: Optional[str] = None) -> UpgradeCheck:
        return await self._check(chain_id, version, UpgradeKind.IMPLEMENTATION)

    async def build_fallback_handler_update(self, chain_id: int, version: Optional[str] = None) -> UpgradeCheck:
        return await self._check(chain_id, version, UpgradeKind.FALLBACK_HANDLER)

    async def _check(self, chain_id: int, version: Optional[str], kind: UpgradeKind) -> UpgradeCheck:
        context = await self.registry.require_context(chain_id, version)
        # an undeployed wallet is created from the latest contracts
        if not context.reader.is_deployed(context.wallet_address):
            return UpgradeCheck.not_required(kind)

        state = self.registry.get_state(chain_id)
        if kind == UpgradeKind.IMPLEMENTATION:
            latest = context.chain_config.latest("wallet")
            current = state.implementation_address
        else:
            latest = context.chain_config.latest("fallback_handler")
            current = state.fallback_handler_address

        if _same_address(latest, current):
            return UpgradeCheck.not_required(kind)

        logger.info(f"Wallet {context.wallet_address} {kind.value} {current} is stale, latest is {latest}")
        if kind == UpgradeKind.IMPLEMENTATION:
            data = encode_update_implementation(latest)
        else:
            data = encode_set_fallback_handler(latest)
        return UpgradeCheck.requires(MetaTransaction(to=context.wallet_address, value=0, data=data), kind)
