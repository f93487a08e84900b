"""
Configuration for smart account orchestration
"""

import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional

from exceptions import ConfigurationError

# Chain ids
MAINNET = 1
GOERLI = 5
BSC_TESTNET = 97
POLYGON_MAINNET = 137
POLYGON_MUMBAI = 80001

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

DEFAULT_VERSION = "1.0.0"
DEFAULT_BATCH_ID = 1

# Gas limit override handed to the relayer when the wallet still has to be deployed
DEPLOY_GAS_LIMIT = "0x1E8480"

FALLBACK_CALL_GAS_LIMIT = 800000

# Default gas limits for UserOperations
DEFAULT_GAS_LIMITS = {
    "call": 300000,
    "verification": 1000000,
    "pre_verification": 60000,
    "fee": 1100000
}


class SignType(str, Enum):
    PERSONAL_SIGN = "PERSONAL_SIGN"
    EIP712_SIGN = "EIP712_SIGN"


@dataclass(frozen=True)
class NetworkConfig:
    """Caller-side overrides for a single chain"""
    chain_id: int
    provider_url: str = ""
    dapp_api_key: str = ""
    bundler_url: str = ""


@dataclass(frozen=True)
class SmartAccountConfig:
    """Configuration for smart account operations.

    Values are immutable; use `merge` to derive a new configuration.
    """
    active_network_id: int
    supported_network_ids: List[int] = field(default_factory=list)
    sign_type: SignType = SignType.EIP712_SIGN
    backend_url: str = ""
    relayer_url: str = ""
    socket_server_url: str = ""
    bundler_url: str = ""
    signing_service_url: str = ""
    entry_point_address: Optional[str] = None
    network_config: List[NetworkConfig] = field(default_factory=list)
    default_version: str = DEFAULT_VERSION
    debug: bool = False

    def __post_init__(self):
        if not self.active_network_id:
            raise ConfigurationError("active chain needs to be specified")
        if not self.supported_network_ids:
            object.__setattr__(self, "supported_network_ids", [self.active_network_id])

    def merge(self, overrides: Optional[Dict] = None) -> "SmartAccountConfig":
        """Return a new config with `overrides` applied.

        Network entries are unioned by chain id, entries from `overrides` win.
        """
        if not overrides:
            return self
        overrides = dict(overrides)
        custom_networks = overrides.pop("network_config", None) or []
        merged_networks = {network.chain_id: network for network in self.network_config}
        for network in custom_networks:
            merged_networks[network.chain_id] = network
        return replace(self, network_config=list(merged_networks.values()), **overrides)

    def get_network_config(self, chain_id: int) -> NetworkConfig:
        for network in self.network_config:
            if network.chain_id == chain_id:
                return network
        raise ConfigurationError(f"Could not get network config values for chain {chain_id}")

    def find_network_config(self, chain_id: int) -> Optional[NetworkConfig]:
        try:
            return self.get_network_config(chain_id)
        except ConfigurationError:
            return None

    @classmethod
    def from_env(cls, base: Optional["SmartAccountConfig"] = None) -> "SmartAccountConfig":
        """Build a config from SMART_ACCOUNT_* environment variables on top of `base`.

        SMART_ACCOUNT_ENVIRONMENT picks the preset only when no `base` is given;
        an explicit `base` always wins over it.
        """
        if base is None:
            environment = os.environ.get("SMART_ACCOUNT_ENVIRONMENT")
            base = get_preset(environment) if environment else DEFAULT_CONFIG

        overrides = {}
        if os.environ.get("SMART_ACCOUNT_ACTIVE_CHAIN_ID"):
            overrides["active_network_id"] = int(os.environ["SMART_ACCOUNT_ACTIVE_CHAIN_ID"])
        if os.environ.get("SMART_ACCOUNT_SIGN_TYPE"):
            overrides["sign_type"] = SignType(os.environ["SMART_ACCOUNT_SIGN_TYPE"])
        for name in ("backend_url", "relayer_url", "socket_server_url", "bundler_url",
                     "signing_service_url", "entry_point_address"):
            value = os.environ.get(f"SMART_ACCOUNT_{name.upper()}")
            if value:
                overrides[name] = value
        if os.environ.get("SMART_ACCOUNT_DEBUG"):
            overrides["debug"] = os.environ["SMART_ACCOUNT_DEBUG"].lower() in ("1", "true", "yes")

        dapp_api_key = os.environ.get("SMART_ACCOUNT_DAPP_API_KEY")
        if dapp_api_key:
            overrides["network_config"] = [
                replace(network, dapp_api_key=dapp_api_key) for network in base.network_config
            ]
        return base.merge(overrides)


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO)


PRODUCTION_CONFIG = SmartAccountConfig(
    active_network_id=MAINNET,
    supported_network_ids=[GOERLI, POLYGON_MUMBAI, POLYGON_MAINNET, BSC_TESTNET, MAINNET],
    backend_url="https://sdk-backend.prod.biconomy.io/v1",
    relayer_url="https://sdk-relayer.prod.biconomy.io/api/v1/relay",
    socket_server_url="wss://sdk-testing-ws.prod.biconomy.io/connection/websocket",
    bundler_url="https://sdk-relayer.prod.biconomy.io/api/v1/relay",
    signing_service_url="https://paymaster-signing-service.prod.biconomy.io/api/v1/sign",
    network_config=[NetworkConfig(chain_id=chain_id) for chain_id in
                    (GOERLI, MAINNET, POLYGON_MUMBAI, BSC_TESTNET, POLYGON_MAINNET)],
)

STAGING_CONFIG = SmartAccountConfig(
    active_network_id=POLYGON_MUMBAI,
    supported_network_ids=[GOERLI, POLYGON_MUMBAI, BSC_TESTNET],
    backend_url="https://sdk-backend.staging.biconomy.io/v1",
    relayer_url="https://sdk-relayer.staging.biconomy.io/api/v1/relay",
    socket_server_url="wss://sdk-testing-ws.staging.biconomy.io/connection/websocket",
    bundler_url="https://sdk-relayer.staging.biconomy.io/api/v1/relay",
    signing_service_url="https://paymaster-signing-service.staging.biconomy.io/api/v1/sign",
    network_config=[NetworkConfig(chain_id=chain_id) for chain_id in
                    (GOERLI, POLYGON_MUMBAI, BSC_TESTNET)],
)

DEVELOPMENT_CONFIG = SmartAccountConfig(
    active_network_id=POLYGON_MUMBAI,
    supported_network_ids=[GOERLI, POLYGON_MUMBAI, BSC_TESTNET],
    backend_url="https://sdk-backend.dev.biconomy.io/v1",
    relayer_url="https://sdk-relayer.dev.biconomy.io/api/v1/relay",
    socket_server_url="wss://sdk-testing-ws.dev.biconomy.io/connection/websocket",
    bundler_url="https://sdk-relayer.dev.biconomy.io/api/v1/relay",
    signing_service_url="https://paymaster-signing-service.dev.biconomy.io/api/v1/sign",
    network_config=[NetworkConfig(chain_id=chain_id) for chain_id in
                    (GOERLI, POLYGON_MUMBAI, BSC_TESTNET)],
)

DEFAULT_CONFIG = STAGING_CONFIG.merge({
    "supported_network_ids": [GOERLI, POLYGON_MUMBAI, POLYGON_MAINNET, BSC_TESTNET],
    "network_config": [NetworkConfig(chain_id=POLYGON_MAINNET)],
})

_PRESETS = {
    "production": PRODUCTION_CONFIG,
    "staging": STAGING_CONFIG,
    "development": DEVELOPMENT_CONFIG,
}


def get_preset(name: str) -> SmartAccountConfig:
    try:
        return _PRESETS[name.lower()]
    except KeyError:
        raise ConfigurationError(f"Unknown environment '{name}', expected one of {sorted(_PRESETS)}")
