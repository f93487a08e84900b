"""
Per-chain, per-version cache of contract addresses, wallet state and chain helpers
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from aa_provider import AccountAbstractionProvider
from bundler import BundlerClient
from config import SmartAccountConfig
from contracts import ChainReader
from directory import AccountDirectoryClient
from exceptions import ContextNotReadyError, ResolutionError, SmartAccountError
from models import ChainConfig, SmartAccountContext, SmartAccountState, WalletInfo
from relayer import FallbackRelayer
from signing import Signer
from signing_service import SigningService

logger = logging.getLogger(__name__)


@dataclass
class ChainContext:
    """Contract handles and helpers for one wallet on one (chain, version)"""
    chain_id: int
    version: str
    wallet_address: str
    chain_config: ChainConfig
    contracts: SmartAccountContext
    provider_url: str
    bundler_url: str
    reader: ChainReader
    fallback_relayer: FallbackRelayer
    signing_service: SigningService
    aa_provider: AccountAbstractionProvider


class ContextStatus(str, Enum):
    READY = "ready"
    UNSUPPORTED_CHAIN = "unsupported_chain"
    FAILED = "failed"


@dataclass(frozen=True)
class ContextResult:
    status: ContextStatus
    context: Optional[ChainContext] = None
    error: Optional[Exception] = None

    @property
    def ready(self) -> bool:
        return self.status == ContextStatus.READY

    def unwrap(self, chain_id: int) -> ChainContext:
        if self.ready:
            return self.context
        if self.status == ContextStatus.UNSUPPORTED_CHAIN:
            raise ContextNotReadyError(chain_id, "chain is not supported by this configuration")
        raise ContextNotReadyError(chain_id, str(self.error))


class ChainContextRegistry:
    """Lazily resolves the wallet and builds chain helpers the first time a chain is used.

    Entries are only ever added; a populated (chain, version) key is never replaced.
    """

    def __init__(
        self,
        config: SmartAccountConfig,
        signer: Signer,
        directory: AccountDirectoryClient,
        reader_factory: Callable[[str], ChainReader] = ChainReader,
        fallback_relayer_factory: Optional[Callable[..., FallbackRelayer]] = None,
        signing_service_factory: Optional[Callable[..., SigningService]] = None,
        provider_factory: Optional[Callable[..., AccountAbstractionProvider]] = None,
    ):
        self.config = config
        self.signer = signer
        self.directory = directory
        self.reader_factory = reader_factory
        self.fallback_relayer_factory = fallback_relayer_factory or FallbackRelayer
        self.signing_service_factory = signing_service_factory or SigningService
        self.provider_factory = provider_factory or AccountAbstractionProvider

        self._chain_configs: Optional[Dict[int, ChainConfig]] = None
        self._contexts: Dict[Tuple[int, str], ChainContext] = {}
        self._states: Dict[int, SmartAccountState] = {}
        self.wallet_address: Optional[str] = None

    @property
    def owner(self) -> str:
        return self.signer.address

    async def load_chain_configs(self) -> List[ChainConfig]:
        """Fetch chain deployments once, keeping only the configured chains"""
        if self._chain_configs is None:
            chains = await self.directory.get_all_supported_chains()
            supported = set(self.config.supported_network_ids)
            self._chain_configs = {chain.chain_id: chain for chain in chains if chain.chain_id in supported}
        return list(self._chain_configs.values())

    def get_chain_config(self, chain_id: int) -> Optional[ChainConfig]:
        if self._chain_configs is None:
            return None
        return self._chain_configs.get(chain_id)

    def get_state(self, chain_id: int) -> SmartAccountState:
        try:
            return self._states[chain_id]
        except KeyError:
            raise ContextNotReadyError(chain_id, "smart account state has not been resolved")

    async def ensure_context(self, chain_id: int, version: Optional[str] = None) -> ContextResult:
        """Return the context for (chain_id, version), building it on first use"""
        version = version or self.config.default_version
        key = (chain_id, version)
        existing = self._contexts.get(key)
        if existing:
            return ContextResult(ContextStatus.READY, context=existing)

        try:
            await self.load_chain_configs()
            chain_config = self.get_chain_config(chain_id)
            if not chain_config:
                logger.warning(f"Chain {chain_id} has no network configuration, context left unset")
                return ContextResult(ContextStatus.UNSUPPORTED_CHAIN)

            logger.info(f"Instantiating chain {chain_id} (version {version})")
            wallet_info = await self.refresh_state(chain_id, version)
            context = self._build_context(chain_config, version, wallet_info)
        except SmartAccountError as e:
            logger.error(f"Failed to initialize chain {chain_id}: {e}")
            return ContextResult(ContextStatus.FAILED, error=e)

        # a concurrent initializer may have finished first
        context = self._contexts.setdefault(key, context)
        return ContextResult(ContextStatus.READY, context=context)

    async def require_context(self, chain_id: int, version: Optional[str] = None) -> ChainContext:
        result = await self.ensure_context(chain_id, version)
        return result.unwrap(chain_id)

    async def lookup_wallet(self, chain_id: int, version: Optional[str] = None, index: int = 0) -> WalletInfo:
        """Resolve a wallet of the owner without touching the active state"""
        version = version or self.config.default_version
        return await self.directory.get_wallet_info(self.owner, chain_id, index, version)

    async def refresh_state(self, chain_id: int, version: Optional[str] = None) -> WalletInfo:
        """Re-resolve the active (index 0) wallet and replace the chain's state snapshot"""
        version = version or self.config.default_version
        wallet_info = await self.lookup_wallet(chain_id, version)
        context = self._contexts.get((chain_id, version))
        if context and context.wallet_address != wallet_info.smart_account_address:
            raise ResolutionError(
                f"Directory resolved {wallet_info.smart_account_address} on chain {chain_id}, "
                f"expected {context.wallet_address}"
            )
        self.wallet_address = wallet_info.smart_account_address
        self._states[chain_id] = SmartAccountState(
            chain_id=chain_id,
            version=wallet_info.version or version,
            address=wallet_info.smart_account_address,
            owner=self.owner,
            is_deployed=wallet_info.is_deployed,
            entry_point_address=wallet_info.entry_point_address,
            implementation_address=wallet_info.implementation_address,
            fallback_handler_address=wallet_info.fallback_handler_address,
            factory_address=wallet_info.factory_address,
        )
        logger.info(f"smart wallet address is {self.wallet_address}")
        return wallet_info

    def _build_context(self, chain_config: ChainConfig, version: str, wallet_info: WalletInfo) -> ChainContext:
        chain_id = chain_config.chain_id
        network = self.config.find_network_config(chain_id)
        provider_url = (network.provider_url if network else "") or chain_config.provider_url
        bundler_url = (network.bundler_url if network else "") or self.config.bundler_url
        dapp_api_key = network.dapp_api_key if network else ""
        entry_point = self.config.entry_point_address or chain_config.latest("entry_point")

        contracts = SmartAccountContext(
            base_wallet=chain_config.address_for("wallet", version),
            wallet_factory=chain_config.address_for("wallet_factory", version),
            multi_send=chain_config.address_for("multi_send", version),
            multi_send_call=chain_config.address_for("multi_send_call", version),
            fallback_gas_tank=chain_config.address_for("fallback_gas_tank", version),
            entry_point=entry_point,
        )

        reader = self.reader_factory(provider_url)
        signing_service = self.signing_service_factory(self.config.signing_service_url, dapp_api_key)
        fallback_relayer = self.fallback_relayer_factory(
            url=self.config.relayer_url,
            dapp_api_key=dapp_api_key,
            relayer_service_url=self.config.socket_server_url,
        )
        aa_provider = self.provider_factory(
            chain_id=chain_id,
            signer=self.signer,
            reader=reader,
            bundler=BundlerClient(bundler_url, entry_point),
            wallet_address=wallet_info.smart_account_address,
            factory_address=chain_config.latest("wallet_factory"),
            fallback_handler_address=chain_config.latest("fallback_handler"),
            entry_point_address=entry_point,
            signing_service=signing_service,
        )

        return ChainContext(
            chain_id=chain_id,
            version=version,
            wallet_address=wallet_info.smart_account_address,
            chain_config=chain_config,
            contracts=contracts,
            provider_url=provider_url,
            bundler_url=bundler_url,
            reader=reader,
            fallback_relayer=fallback_relayer,
            signing_service=signing_service,
            aa_provider=aa_provider,
        )

