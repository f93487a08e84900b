"""
Bundler integration and format conversion utilities for smart accounts
"""

import logging
from typing import Dict, List, Optional, Union

import requests

from exceptions import BundlerError
from user_operations import SignedUserOperation, UserOperation

logger = logging.getLogger(__name__)

DUMMY_SIGNATURE = "0x" + "0" * 130


def convert_user_operation_to_rpc_format(
    user_op: Union[UserOperation, SignedUserOperation],
    signature: bytes = None
) -> Dict:
    """Convert UserOperation to bundler JSON-RPC format (EntryPoint v0.6)"""
    # Handle SignedUserOperation wrapper
    if isinstance(user_op, SignedUserOperation):
        op = user_op.user_operation
        signature = user_op.signature
    else:
        op = user_op

    rpc_dict = {
        "sender": op.sender,
        "nonce": hex(op.nonce),
        "initCode": "0x" + op.init_code.hex(),
        "callData": "0x" + op.call_data.hex(),
        "callGasLimit": hex(op.call_gas_limit),
        "verificationGasLimit": hex(op.verification_gas_limit),
        "preVerificationGas": hex(op.pre_verification_gas),
        "maxFeePerGas": hex(op.max_fee_per_gas),
        "maxPriorityFeePerGas": hex(op.max_priority_fee_per_gas),
        "paymasterAndData": "0x" + op.paymaster_and_data.hex(),
    }

    if signature:
        rpc_dict["signature"] = "0x" + signature.hex() if isinstance(signature, bytes) else signature
    else:
        rpc_dict["signature"] = "0x"

    return rpc_dict


class BundlerClient:
    """Client for interacting with ERC-4337 bundlers"""

    def __init__(self, bundler_url: str, entry_point_address: str, timeout: int = 30):
        self.bundler_url = bundler_url
        self.entry_point_address = entry_point_address
        self.timeout = timeout

    def estimate_user_operation_gas(self, user_operation: UserOperation) -> Dict:
        """Estimate gas for UserOperation"""
        user_op_dict = convert_user_operation_to_rpc_format(user_operation)
        user_op_dict['signature'] = DUMMY_SIGNATURE

        return self._make_bundler_request("eth_estimateUserOperationGas", [user_op_dict, self.entry_point_address])

    def send_user_operation(self, signed_user_op: SignedUserOperation) -> str:
        """Send SignedUserOperation to bundler and return its user operation hash"""
        logger.info("Sending UserOperation to bundler...")

        user_op_dict = convert_user_operation_to_rpc_format(signed_user_op)
        logger.debug(f"Full UserOp to bundler: {user_op_dict}")
        result = self._make_bundler_request("eth_sendUserOperation", [user_op_dict, self.entry_point_address])

        logger.info(f"UserOperation sent successfully: {result}")
        return result

    def _make_bundler_request(self, method: str, params: List) -> Optional[Union[Dict, str]]:
        """Make JSON-RPC request to bundler"""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": 1
        }

        try:
            response = requests.post(
                self.bundler_url,
                json=payload,
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise BundlerError(f"Request failed: {e}") from e

        if response.status_code != 200:
            raise BundlerError(f"HTTP error: {response.status_code}", code=response.status_code)

        result = response.json()
        if 'error' in result:
            error = result['error'] or {}
            logger.error(f"Bundler error: {error.get('message', 'Unknown error')}")
            raise BundlerError(error.get('message', 'Unknown error'), code=error.get('code'))
        return result.get('result')
