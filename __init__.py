"""
Counterfactual Smart Account Orchestration

Builds, signs and relays transactions for a multi-chain smart contract wallet
through a primary relayer, a gas tank fallback relayer, or an ERC-4337 bundler.
"""

# Main service
from smart_account import SmartAccount, create_smart_account

# Configuration
from config import SignType, SmartAccountConfig, NetworkConfig

# Data model
from models import FeeQuote, GasLimit, MetaTransaction, Operation, WalletTransaction

# Individual components for advanced usage
from chain_context import ChainContextRegistry
from relay_router import RelayRouter
from signing import LocalAccountSigner, SigningCoordinator
from bundler import BundlerClient
from exceptions import SmartAccountError

__version__ = "1.0.0"

__all__ = [
    "SmartAccount",
    "create_smart_account",
    "SmartAccountConfig",
    "NetworkConfig",
    "SignType",
    "MetaTransaction",
    "Operation",
    "WalletTransaction",
    "FeeQuote",
    "GasLimit",
    "ChainContextRegistry",
    "RelayRouter",
    "LocalAccountSigner",
    "SigningCoordinator",
    "BundlerClient",
    "SmartAccountError",
]
