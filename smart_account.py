"""
Main smart account orchestration across chains
"""

import logging
import os
from typing import Callable, Dict, List, Optional, Sequence

from chain_context import ChainContextRegistry
from config import DEFAULT_BATCH_ID, DEFAULT_CONFIG, SmartAccountConfig, configure_logging
from directory import AccountDirectoryClient
from exceptions import ConfigurationError
from fee_quotes import FeeQuoteWorkflow
from models import (
    FeeQuote,
    GasLimit,
    MetaTransaction,
    SmartAccountContext,
    SmartAccountState,
    UpgradeCheck,
    WalletInfo,
    WalletTransaction,
)
from relay_router import RelayRouter
from relayer import RestRelayer
from signing import LocalAccountSigner, Signer, SigningCoordinator
from transactions import WalletTransactionBuilder
from upgrades import UpgradeInjector

logger = logging.getLogger(__name__)


class SmartAccount:
    """Multi-chain smart account: builds, signs and relays wallet transactions.

    Every operation takes an optional `chain_id` and `version`; when omitted they
    default to the config's active network and default wallet version.
    """

    def __init__(
        self,
        signer: Signer,
        config: Optional[SmartAccountConfig] = None,
        directory: Optional[AccountDirectoryClient] = None,
        relayer: Optional[RestRelayer] = None,
        **context_factories,
    ):
        self.config = config or DEFAULT_CONFIG
        self.signer = signer
        self.directory = directory or AccountDirectoryClient(self.config.backend_url)
        self.relayer = relayer or RestRelayer(self.config.relayer_url, self.config.socket_server_url)
        self._listeners: Dict[str, List[Callable[[Dict], None]]] = {}

        self.registry = ChainContextRegistry(self.config, signer, self.directory, **context_factories)
        self.builder = WalletTransactionBuilder(self.registry)
        self.upgrades = UpgradeInjector(self.registry)
        self.signing = SigningCoordinator(signer, self.config.sign_type)
        self.fee_quotes = FeeQuoteWorkflow(self.registry, self.builder, self.relayer, self.directory)
        self.router = RelayRouter(
            self.registry, self.builder, self.upgrades, self.signing, self.relayer,
            feature_flags=self.directory, notifier=self._notify,
        )

    @property
    def owner(self) -> str:
        return self.signer.address

    @property
    def address(self) -> Optional[str]:
        return self.registry.wallet_address

    async def init(self) -> "SmartAccount":
        """Load chain deployments and initialize the active chain"""
        await self.registry.load_chain_configs()
        await self.registry.require_context(self.config.active_network_id)
        logger.info(f"Smart account {self.address} ready for owner {self.owner}")
        return self

    def on(self, event: str, listener: Callable[[Dict], None]) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def _notify(self, event: str, payload: Dict) -> None:
        for listener in self._listeners.get(event, []):
            listener(payload)

    def _chain(self, chain_id: Optional[int]) -> int:
        return chain_id or self.config.active_network_id

    # Transaction building

    async def create_transaction(self, transaction: MetaTransaction, chain_id: Optional[int] = None,
                                 version: Optional[str] = None,
                                 batch_id: int = DEFAULT_BATCH_ID) -> WalletTransaction:
        return await self.builder.create_transaction(transaction, self._chain(chain_id), version, batch_id)

    async def create_transaction_batch(self, transactions: Sequence[MetaTransaction],
                                       chain_id: Optional[int] = None, version: Optional[str] = None,
                                       batch_id: int = DEFAULT_BATCH_ID) -> WalletTransaction:
        return await self.builder.create_transaction_batch(transactions, self._chain(chain_id), version, batch_id)

    async def create_refund_transaction(self, transaction: MetaTransaction, fee_quote: FeeQuote,
                                        chain_id: Optional[int] = None, version: Optional[str] = None,
                                        batch_id: int = DEFAULT_BATCH_ID) -> WalletTransaction:
        return await self.fee_quotes.materialize_refund(transaction, fee_quote, self._chain(chain_id),
                                                        version, batch_id)

    async def create_refund_transaction_batch(self, transactions: Sequence[MetaTransaction],
                                              fee_quote: FeeQuote, chain_id: Optional[int] = None,
                                              version: Optional[str] = None,
                                              batch_id: int = DEFAULT_BATCH_ID) -> WalletTransaction:
        return await self.fee_quotes.materialize_refund_batch(transactions, fee_quote, self._chain(chain_id),
                                                              version, batch_id)

    # Fee quotes

    async def prepare_refund_transaction(self, transaction: MetaTransaction, chain_id: Optional[int] = None,
                                         version: Optional[str] = None) -> List[FeeQuote]:
        return await self.fee_quotes.quote_refund(transaction, self._chain(chain_id), version)

    async def prepare_refund_transaction_batch(self, transactions: Sequence[MetaTransaction],
                                               chain_id: Optional[int] = None,
                                               version: Optional[str] = None) -> List[FeeQuote]:
        return await self.fee_quotes.quote_refund_batch(transactions, self._chain(chain_id), version)

    async def prepare_deploy_and_pay_fees(self, chain_id: Optional[int] = None,
                                          version: Optional[str] = None) -> List[FeeQuote]:
        return await self.fee_quotes.prepare_deploy_and_pay_fees(self._chain(chain_id), version)

    async def deploy_and_pay_fees(self, fee_quote: FeeQuote, chain_id: Optional[int] = None,
                                  version: Optional[str] = None) -> str:
        """Onboarding: the counterfactual wallet pays for its own deployment"""
        chain_id = self._chain(chain_id)
        tx = await self.fee_quotes.deploy_and_pay_fees(fee_quote, chain_id, version)
        return await self.send_transaction(tx, chain_id, version)

    # Signing and relaying

    async def sign_transaction(self, tx: WalletTransaction, chain_id: Optional[int] = None,
                               version: Optional[str] = None) -> str:
        context = await self.registry.require_context(self._chain(chain_id), version)
        return await self.signing.sign(tx, context.wallet_address)

    async def send_transaction(self, tx: WalletTransaction, chain_id: Optional[int] = None,
                               version: Optional[str] = None, gas_limit: Optional[GasLimit] = None) -> str:
        response = await self.router.send_transaction(tx, self._chain(chain_id), version, gas_limit)
        return response.transaction_id or ""

    async def send_signed_transaction(self, tx: WalletTransaction, signature: str,
                                      chain_id: Optional[int] = None, version: Optional[str] = None,
                                      gas_limit: Optional[GasLimit] = None) -> str:
        response = await self.router.send_signed_transaction(tx, signature, self._chain(chain_id),
                                                             version, gas_limit)
        return response.transaction_id or ""

    async def send_gasless_transaction(self, transaction: MetaTransaction, chain_id: Optional[int] = None,
                                       version: Optional[str] = None, batch_id: int = DEFAULT_BATCH_ID,
                                       gas_limit: Optional[GasLimit] = None) -> str:
        response = await self.router.send_gasless_transaction(transaction, self._chain(chain_id), version,
                                                              batch_id, gas_limit)
        return response.transaction_id or ""

    async def send_gasless_transaction_batch(self, transactions: Sequence[MetaTransaction],
                                             chain_id: Optional[int] = None, version: Optional[str] = None,
                                             batch_id: int = DEFAULT_BATCH_ID,
                                             gas_limit: Optional[GasLimit] = None) -> str:
        response = await self.router.send_gasless_transaction_batch(transactions, self._chain(chain_id),
                                                                    version, batch_id, gas_limit)
        return response.transaction_id or ""

    async def send_gasless_fallback_transaction(self, transaction: MetaTransaction,
                                                chain_id: Optional[int] = None, version: Optional[str] = None,
                                                batch_id: int = DEFAULT_BATCH_ID) -> str:
        response = await self.router.send_gasless_fallback_transaction(transaction, self._chain(chain_id),
                                                                       version, batch_id)
        return response.transaction_id or ""

    # Direct account abstraction provider

    async def send_provider_transaction(self, transaction: MetaTransaction, chain_id: Optional[int] = None,
                                        version: Optional[str] = None, sponsored: bool = True) -> str:
        return await self.router.send_via_provider([transaction], self._chain(chain_id), version, sponsored)

    async def send_provider_transaction_batch(self, transactions: Sequence[MetaTransaction],
                                              chain_id: Optional[int] = None, version: Optional[str] = None,
                                              sponsored: bool = True) -> str:
        return await self.router.send_via_provider(transactions, self._chain(chain_id), version, sponsored)

    async def deploy_wallet_using_paymaster(self, chain_id: Optional[int] = None,
                                            version: Optional[str] = None) -> str:
        return await self.router.deploy_wallet_using_paymaster(self._chain(chain_id), version)

    # Upgrades

    async def update_implementation_transaction(self, chain_id: Optional[int] = None,
                                                version: Optional[str] = None) -> UpgradeCheck:
        return await self.upgrades.build_upgrade_transaction(self._chain(chain_id), version)

    async def update_fallback_handler_transaction(self, chain_id: Optional[int] = None,
                                                  version: Optional[str] = None) -> UpgradeCheck:
        return await self.upgrades.build_fallback_handler_update(self._chain(chain_id), version)

    async def update_implementation(self, chain_id: Optional[int] = None,
                                    version: Optional[str] = None) -> Optional[str]:
        return await self.router.update_implementation(self._chain(chain_id), version)

    async def update_fallback_handler(self, chain_id: Optional[int] = None,
                                      version: Optional[str] = None) -> Optional[str]:
        return await self.router.update_fallback_handler(self._chain(chain_id), version)

    # State and directory lookups

    async def get_address(self, chain_id: Optional[int] = None, index: int = 0,
                          version: Optional[str] = None) -> WalletInfo:
        return await self.registry.lookup_wallet(self._chain(chain_id), version, index)

    async def is_deployed(self, chain_id: Optional[int] = None, version: Optional[str] = None) -> bool:
        context = await self.registry.require_context(self._chain(chain_id), version)
        return context.reader.is_deployed(context.wallet_address)

    async def get_smart_account_state(self, chain_id: Optional[int] = None,
                                      version: Optional[str] = None) -> SmartAccountState:
        chain_id = self._chain(chain_id)
        await self.registry.require_context(chain_id, version)
        return self.registry.get_state(chain_id)

    async def get_smart_account_context(self, chain_id: Optional[int] = None,
                                        version: Optional[str] = None) -> SmartAccountContext:
        context = await self.registry.require_context(self._chain(chain_id), version)
        return context.contracts

    async def get_smart_accounts_by_owner(self, chain_id: Optional[int] = None, index: int = 0) -> List[Dict]:
        return await self.directory.get_smart_accounts_by_owner(self._chain(chain_id), self.owner, index)

    async def get_all_token_balances(self, chain_id: Optional[int] = None,
                                     token_addresses: Optional[List[str]] = None) -> List[Dict]:
        return await self.directory.get_all_token_balances(self._chain(chain_id), self.owner, token_addresses)

    async def get_total_balance_in_usd(self, chain_id: Optional[int] = None,
                                       token_addresses: Optional[List[str]] = None) -> Dict:
        return await self.directory.get_total_balance_in_usd(self._chain(chain_id), self.owner, token_addresses)

    async def get_transaction_by_address(self, chain_id: int, address: str) -> List[Dict]:
        return await self.directory.get_transaction_by_address(chain_id, address)

    async def get_transaction_by_hash(self, tx_hash: str) -> Dict:
        return await self.directory.get_transaction_by_hash(tx_hash)


def create_smart_account(private_key: Optional[str] = None,
                         config: Optional[SmartAccountConfig] = None) -> SmartAccount:
    """Create a SmartAccount from a private key and environment configuration"""
    private_key = private_key or os.environ.get("SMART_ACCOUNT_PRIVATE_KEY")
    if not private_key:
        raise ConfigurationError("SMART_ACCOUNT_PRIVATE_KEY environment variable is required")
    config = config or SmartAccountConfig.from_env()
    if config.debug:
        configure_logging(debug=True)
    return SmartAccount(LocalAccountSigner(private_key), config)
