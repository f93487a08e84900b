"""
Signing service round trips for gas tank user operations and paymaster sponsorship
"""

import logging
from typing import Dict

import requests

from exceptions import SigningServiceError
from models import FallbackUserOperation

logger = logging.getLogger(__name__)


class SigningService:
    """Counter-signs fallback user operations and sponsors ERC-4337 operations for a dapp"""

    def __init__(self, url: str, dapp_api_key: str, timeout: int = 30):
        self.url = url.rstrip("/")
        self.dapp_api_key = dapp_api_key
        self.timeout = timeout

    async def get_dapp_identifier_and_sign(self, user_op: FallbackUserOperation) -> Dict[str, str]:
        """Request the dapp identifier and gas tank signature for `user_op`"""
        logger.info(f"Requesting gas tank signature for {user_op.sender}, nonce={user_op.nonce}")
        data = self._post({"fallbackUserOp": user_op.to_dict()})

        if not data.get("dappIdentifier") or not data.get("signature"):
            raise SigningServiceError(f"Incomplete signing service response: {data}")
        return {"dappIdentifier": data["dappIdentifier"], "signature": data["signature"]}

    async def get_paymaster_and_data(self, user_op: Dict) -> str:
        """Request sponsorship for an ERC-4337 user operation"""
        logger.info(f"Requesting paymaster sponsorship for {user_op.get('sender')}")
        data = self._post({"userOp": user_op})

        paymaster_and_data = data.get("paymasterAndData")
        if not paymaster_and_data:
            raise SigningServiceError(f"No paymasterAndData in signing service response: {data}")
        return paymaster_and_data

    def _post(self, body: Dict) -> Dict:
        try:
            response = requests.post(
                self.url,
                json=body,
                headers={'Content-Type': 'application/json', 'x-api-key': self.dapp_api_key},
                timeout=self.timeout
            )
            response.raise_for_status()
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            raise SigningServiceError(f"Signing service request failed: {e}") from e

        data = result.get("data")
        if not isinstance(data, dict):
            raise SigningServiceError(f"Malformed signing service response: {result}")
        return data
