"""
Relayer clients that dispatch assembled relay requests to the network
"""

import logging
from typing import Callable, Dict, List, Optional

import requests

from models import RelayRequest, RelayResponse

logger = logging.getLogger(__name__)

Notifier = Callable[[str, Dict], None]

RELAYED_EVENT = "transactionRelayed"


class RestRelayer:
    """Primary relayer: executes signed wallet transactions and quotes refund fees"""

    relay_method = "eth_sendSmartContractWalletTransaction"

    def __init__(self, url: str, socket_server_url: str = "", timeout: int = 30):
        self.url = url.rstrip("/")
        self.socket_server_url = socket_server_url
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        return {'Content-Type': 'application/json'}

    async def get_fee_options(self, chain_id: int) -> List[Dict]:
        """Fetch the tokens the relayer accepts as refund on `chain_id`"""
        try:
            response = requests.get(
                f"{self.url}/feeOptions",
                params={"chainId": chain_id},
                headers=self._headers(),
                timeout=self.timeout
            )
            response.raise_for_status()
            options = response.json().get("data", [])
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Fee options request failed: {e}")
            return []
        logger.info(f"Relayer offers {len(options)} fee options on chain {chain_id}")
        return options

    async def relay(self, relay_request: RelayRequest, notifier: Optional[Notifier] = None) -> RelayResponse:
        """Send `relay_request` and return the relayer's transaction id, if any"""
        payload = relay_request.to_payload()
        logger.info(f"Relaying transaction to {payload['rawTx']['to']} on chain {payload['rawTx']['chainId']}")
        logger.debug(f"Relay payload: {payload}")

        result = self._make_relayer_request(self.relay_method, [payload])
        if not result or not result.get("transactionId"):
            return RelayResponse()

        relay_response = RelayResponse(
            transaction_id=result["transactionId"],
            connection_url=result.get("connectionUrl") or self.socket_server_url or None,
        )
        logger.info(f"Transaction relayed: {relay_response.transaction_id}")
        if notifier:
            notifier(RELAYED_EVENT, {"transactionId": relay_response.transaction_id})
        return relay_response

    def _make_relayer_request(self, method: str, params: List) -> Optional[Dict]:
        """Make JSON-RPC request to relayer"""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": 1
        }

        try:
            response = requests.post(
                self.url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout
            )

            if response.status_code == 200:
                result = response.json()
                if 'result' in result:
                    return result['result']
                elif 'error' in result:
                    error = result['error']
                    logger.error(f"Relayer error: {error.get('message', 'Unknown error')}")
                    return None
                logger.error(f"Malformed relayer response: {result}")
                return None
            else:
                logger.error(f"HTTP error: {response.status_code}")
                return None

        except (requests.RequestException, ValueError) as e:
            logger.error(f"Request failed: {e}")
            return None


class FallbackRelayer(RestRelayer):
    """Relayer backed by the gas tank, authenticated with the dapp API key"""

    relay_method = "eth_sendFallbackUserOperation"

    def __init__(self, url: str, dapp_api_key: str, relayer_service_url: str = "", timeout: int = 30):
        super().__init__(url, socket_server_url=relayer_service_url, timeout=timeout)
        self.dapp_api_key = dapp_api_key

    def _headers(self) -> Dict[str, str]:
        return {'Content-Type': 'application/json', 'x-api-key': self.dapp_api_key}
