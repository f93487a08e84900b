"""
Account directory service client: chain metadata, wallet resolution and feature flags
"""

import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

import requests

from exceptions import ResolutionError
from models import ChainConfig, MetaTransaction, WalletInfo

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30

T = TypeVar("T")


class AccountDirectoryClient:
    """Client for the backend that resolves counterfactual wallets and chain deployments"""

    def __init__(self, backend_url: str, timeout: int = REQUEST_TIMEOUT):
        self.backend_url = backend_url.rstrip("/")
        self.timeout = timeout

    async def get_all_supported_chains(self) -> List[ChainConfig]:
        data = self._make_directory_request("GET", "/chains/")
        chains = self._parse("/chains/", lambda: [ChainConfig.from_dict(chain) for chain in data])
        logger.info(f"Directory serves {len(chains)} chains")
        return chains

    async def get_wallet_info(self, owner: str, chain_id: int, index: int = 0,
                              version: Optional[str] = None) -> WalletInfo:
        """Resolve the counterfactual wallet of `owner` on `chain_id`"""
        body = {"chainId": chain_id, "owner": owner, "index": index}
        if version:
            body["version"] = version
        accounts = self._make_directory_request("POST", "/smart-accounts/", json=body)
        if not accounts:
            raise ResolutionError(f"No smart account resolved for {owner} on chain {chain_id}")
        wallet_info = self._parse("/smart-accounts/", lambda: WalletInfo.from_dict(accounts[0]))
        logger.info(f"Resolved smart account {wallet_info.smart_account_address} on chain {chain_id}")
        return wallet_info

    async def is_fallback_enabled(self) -> bool:
        data = self._make_directory_request("GET", "/feature-flags/fallback")
        return bool(data.get("enable_fallback_flow"))

    async def estimate_transaction_gas(self, chain_id: int, wallet_address: str,
                                       transaction: MetaTransaction, is_deployed: bool) -> Dict[str, int]:
        """Estimate target and base gas for a wallet transaction"""
        body = {
            "chainId": chain_id,
            "walletAddress": wallet_address,
            "isDeployed": is_deployed,
            "to": transaction.to,
            "value": transaction.value,
            "data": transaction.data,
            "operation": int(transaction.operation),
        }
        data = self._make_directory_request("POST", "/estimator/transaction", json=body)
        return self._parse("/estimator/transaction", lambda: {
            "targetTxGas": int(data["targetTxGas"]),
            "baseGas": int(data["baseGas"]),
        })

    async def get_smart_accounts_by_owner(self, chain_id: int, owner: str, index: int = 0) -> List[Dict]:
        return self._make_directory_request(
            "POST", "/smart-accounts/", json={"chainId": chain_id, "owner": owner, "index": index}
        )

    async def get_all_token_balances(self, chain_id: int, eoa_address: str,
                                     token_addresses: Optional[List[str]] = None) -> List[Dict]:
        body = {"chainId": chain_id, "eoaAddress": eoa_address, "tokenAddresses": token_addresses or []}
        return self._make_directory_request("POST", "/smart-accounts/balances", json=body)

    async def get_total_balance_in_usd(self, chain_id: int, eoa_address: str,
                                       token_addresses: Optional[List[str]] = None) -> Dict:
        body = {"chainId": chain_id, "eoaAddress": eoa_address, "tokenAddresses": token_addresses or []}
        return self._make_directory_request("POST", "/smart-accounts/balances/usd", json=body)

    async def get_transaction_by_address(self, chain_id: int, address: str) -> List[Dict]:
        return self._make_directory_request("GET", f"/transactions/{chain_id}/{address}")

    async def get_transaction_by_hash(self, tx_hash: str) -> Dict:
        return self._make_directory_request("GET", f"/transactions/hash/{tx_hash}")

    def _make_directory_request(self, method: str, path: str, json: Optional[Dict] = None) -> Any:
        """Call the directory and return the `data` member of its response"""
        url = f"{self.backend_url}{path}"
        try:
            response = requests.request(
                method,
                url,
                json=json,
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout
            )
            response.raise_for_status()
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Directory request {method} {path} failed: {e}")
            raise ResolutionError(f"Directory request {method} {path} failed: {e}") from e

        if "data" not in result:
            raise ResolutionError(f"Malformed directory response for {path}: {result}")
        return result["data"]

    @staticmethod
    def _parse(path: str, parse: Callable[[], T]) -> T:
        try:
            return parse()
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed directory payload for {path}: {e!r}")
            raise ResolutionError(f"Malformed directory payload for {path}: {e!r}") from e
