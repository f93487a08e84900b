"""
Relay path selection and relay request assembly.

Three paths exist for a wallet transaction:

* standard: sign, encode execTransaction on the wallet and hand it to the primary relayer
* fallback: wrap the signed call into a gas tank user operation, counter-signed by the
  signing service, and hand it to the fallback relayer
* provider: skip relayers and submit an ERC-4337 user operation through the bundler

The path is derived on every call from the fallback feature flag, what the caller asked
for and whether the wallet is deployed; nothing about it is stored.
"""

import logging
from typing import List, Optional, Sequence

from chain_context import ChainContext, ChainContextRegistry
from config import DEFAULT_BATCH_ID, DEPLOY_GAS_LIMIT, FALLBACK_CALL_GAS_LIMIT, ZERO_ADDRESS
from contracts import (
    encode_deploy_counterfactual_wallet,
    encode_exec_transaction,
    encode_handle_fallback_user_op,
    encode_multi_send_call,
)
from directory import AccountDirectoryClient
from models import (
    FallbackUserOperation,
    GasLimit,
    MetaTransaction,
    RawTransaction,
    RelayRequest,
    RelayResponse,
    SignedTransaction,
    UpgradeCheck,
    WalletTransaction,
)
from relayer import Notifier, RestRelayer
from signing import SigningCoordinator
from transactions import WalletTransactionBuilder
from upgrades import UpgradeInjector

logger = logging.getLogger(__name__)


class RelayRouter:
    """Chooses the relay path for wallet transactions and assembles relay requests"""

    def __init__(
        self,
        registry: ChainContextRegistry,
        builder: WalletTransactionBuilder,
        upgrades: UpgradeInjector,
        signing: SigningCoordinator,
        relayer: RestRelayer,
        feature_flags: AccountDirectoryClient,
        notifier: Optional[Notifier] = None,
    ):
        self.registry = registry
        self.builder = builder
        self.upgrades = upgrades
        self.signing = signing
        self.relayer = relayer
        self.feature_flags = feature_flags
        self.notifier = notifier

    async def is_fallback_enabled(self) -> bool:
        """Feature flag lookup; any failure means the flag is off"""
        try:
            enabled = await self.feature_flags.is_fallback_enabled()
        except Exception as e:
            logger.error(f"Fallback flag lookup failed, using standard relay path: {e}")
            return False
        logger.info(f"Fallback flow enabled: {enabled}")
        return enabled

    async def send_gasless_transaction(self, transaction: MetaTransaction, chain_id: int,
                                       version: Optional[str] = None,
                                       batch_id: int = DEFAULT_BATCH_ID,
                                       gas_limit: Optional[GasLimit] = None) -> RelayResponse:
        if await self.is_fallback_enabled():
            return await self.send_gasless_fallback_transaction(transaction, chain_id, version, batch_id)
        return await self.dispatch([transaction], chain_id, version, batch_id, gas_limit, batch=False)

    async def send_gasless_transaction_batch(self, transactions: Sequence[MetaTransaction], chain_id: int,
                                             version: Optional[str] = None,
                                             batch_id: int = DEFAULT_BATCH_ID,
                                             gas_limit: Optional[GasLimit] = None) -> RelayResponse:
        return await self.dispatch(list(transactions), chain_id, version, batch_id, gas_limit, batch=True)

    async def dispatch(self, transactions: List[MetaTransaction], chain_id: int,
                       version: Optional[str] = None,
                       batch_id: int = DEFAULT_BATCH_ID,
                       gas_limit: Optional[GasLimit] = None,
                       batch: bool = False) -> RelayResponse:
        """Standard path. An owed upgrade is prepended, turning a single call into a batch.

        `batch` keeps a one-element caller batch as a multi-send.
        """
        if not transactions:
            raise ValueError("Nothing to dispatch")

        upgrade: UpgradeCheck = await self.upgrades.build_upgrade_transaction(chain_id, version)
        if upgrade.required:
            logger.info(f"Prepending implementation upgrade to {len(transactions)} transaction(s)")
            transactions = [upgrade.transaction] + transactions

        if len(transactions) == 1 and not batch:
            tx = await self.builder.create_transaction(transactions[0], chain_id, version, batch_id)
        else:
            tx = await self.builder.create_transaction_batch(transactions, chain_id, version, batch_id)
        return await self.send_transaction(tx, chain_id, version, gas_limit)

    async def send_transaction(self, tx: WalletTransaction, chain_id: int,
                               version: Optional[str] = None,
                               gas_limit: Optional[GasLimit] = None) -> RelayResponse:
        """Sign a prepared wallet transaction and relay it"""
        context = await self.registry.require_context(chain_id, version)
        signature = await self.signing.sign(tx, context.wallet_address)
        return await self._relay_signed(context, tx, signature, gas_limit)

    async def send_signed_transaction(self, tx: WalletTransaction, signature: str, chain_id: int,
                                      version: Optional[str] = None,
                                      gas_limit: Optional[GasLimit] = None) -> RelayResponse:
        context = await self.registry.require_context(chain_id, version)
        return await self._relay_signed(context, tx, signature, gas_limit)

    async def _relay_signed(self, context: ChainContext, tx: WalletTransaction, signature: str,
                            gas_limit: Optional[GasLimit]) -> RelayResponse:
        raw_tx = RawTransaction(
            to=context.wallet_address,
            data=encode_exec_transaction(tx, signature),
            value=0,
            chain_id=context.chain_id,
        )
        # deploying the wallet costs far more than the call itself
        if not context.reader.is_deployed(context.wallet_address):
            gas_limit = GasLimit(hex=DEPLOY_GAS_LIMIT)

        relay_request = RelayRequest(
            signed_tx=SignedTransaction(raw_tx=raw_tx, tx=tx),
            state=self.registry.get_state(context.chain_id),
            context=context.contracts,
            gas_limit=gas_limit,
        )
        return await self.relayer.relay(relay_request, self.notifier)

    async def send_gasless_fallback_transaction(self, transaction: MetaTransaction, chain_id: int,
                                                version: Optional[str] = None,
                                                batch_id: int = DEFAULT_BATCH_ID) -> RelayResponse:
        """Fallback path through the gas tank and its own nonce space"""
        context = await self.registry.require_context(chain_id, version)
        wallet = context.wallet_address

        tx = await self.builder.create_transaction(transaction, chain_id, version, batch_id)
        signature = await self.signing.sign(tx, wallet)
        exec_data = encode_exec_transaction(tx, signature)

        gas_tank = context.contracts.fallback_gas_tank
        gas_tank_nonce = context.reader.get_gas_tank_nonce(gas_tank, wallet)

        user_op = FallbackUserOperation(
            sender=wallet,
            target=wallet,
            nonce=gas_tank_nonce,
            call_data=exec_data,
            call_gas_limit=FALLBACK_CALL_GAS_LIMIT,
        )
        if not context.reader.is_deployed(wallet):
            # the wallet has to exist before its first call runs
            user_op.target = context.contracts.multi_send_call
            user_op.call_data = encode_multi_send_call([
                MetaTransaction(to=context.contracts.wallet_factory, value=0,
                                data=self._deploy_wallet_data(context)),
                MetaTransaction(to=wallet, value=0, data=exec_data),
            ])
        logger.debug(f"Fallback user operation before signing service: {user_op.to_dict()}")

        signing_response = await context.signing_service.get_dapp_identifier_and_sign(user_op)
        user_op.dapp_identifier = signing_response["dappIdentifier"]
        user_op.signature = signing_response["signature"]

        raw_tx = RawTransaction(
            to=gas_tank,
            data=encode_handle_fallback_user_op(user_op),
            value=0,
            chain_id=chain_id,
        )
        relay_request = RelayRequest(
            signed_tx=SignedTransaction(raw_tx=raw_tx, tx=tx),
            state=self.registry.get_state(chain_id),
            context=context.contracts,
        )
        return await context.fallback_relayer.relay(relay_request, self.notifier)

    def _deploy_wallet_data(self, context: ChainContext) -> str:
        state = self.registry.get_state(context.chain_id)
        entry_point = state.entry_point_address
        if entry_point == ZERO_ADDRESS:
            entry_point = context.contracts.entry_point
        handler = state.fallback_handler_address
        if handler == ZERO_ADDRESS:
            handler = context.chain_config.latest("fallback_handler")
        return encode_deploy_counterfactual_wallet(state.owner, entry_point, handler, 0)

    async def send_via_provider(self, transactions: Sequence[MetaTransaction], chain_id: int,
                                version: Optional[str] = None, sponsored: bool = False) -> str:
        """Hand transactions straight to the account abstraction provider"""
        context = await self.registry.require_context(chain_id, version)
        return await context.aa_provider.send_transaction_batch(list(transactions), sponsored=sponsored)

    async def deploy_wallet_using_paymaster(self, chain_id: int, version: Optional[str] = None) -> str:
        return await self.send_via_provider(
            [MetaTransaction(to=ZERO_ADDRESS, value=0, data="0x")], chain_id, version, sponsored=True
        )

    async def update_implementation(self, chain_id: int, version: Optional[str] = None) -> Optional[str]:
        return await self._send_upgrade(await self.upgrades.build_upgrade_transaction(chain_id, version),
                                        chain_id, version)

    async def update_fallback_handler(self, chain_id: int, version: Optional[str] = None) -> Optional[str]:
        return await self._send_upgrade(await self.upgrades.build_fallback_handler_update(chain_id, version),
                                        chain_id, version)

    async def _send_upgrade(self, upgrade: UpgradeCheck, chain_id: int, version: Optional[str]) -> Optional[str]:
        if not upgrade.required:
            logger.info(f"Wallet {upgrade.kind.value} already up to date on chain {chain_id}")
            return None
        return await self.send_via_provider([upgrade.transaction], chain_id, version)
