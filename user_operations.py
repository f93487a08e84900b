"""
ERC-4337 UserOperation creation utilities for smart accounts
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from config import DEFAULT_GAS_LIMITS
from contracts import encode_deploy_counterfactual_wallet, encode_execute_batch_call, encode_execute_call
from models import MetaTransaction

logger = logging.getLogger(__name__)


@dataclass
class UserOperation:
    """EntryPoint v0.6 user operation"""
    sender: str
    nonce: int
    init_code: bytes
    call_data: bytes
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster_and_data: bytes = b''


@dataclass
class SignedUserOperation:
    """Wrapper holding a UserOperation and its signature"""
    user_operation: UserOperation
    signature: bytes


def build_init_code(factory: str, owner: str, entry_point: str, handler: str, index: int = 0) -> bytes:
    """initCode deploying the counterfactual wallet through its factory"""
    deploy_data = encode_deploy_counterfactual_wallet(owner, entry_point, handler, index)
    return bytes(HexBytes(factory)) + bytes(HexBytes(deploy_data))


def create_user_operation(
    smart_account: str,
    transactions: Sequence[MetaTransaction],
    nonce: int,
    init_code: Optional[bytes] = None,
) -> UserOperation:
    """Create UserOperation executing `transactions` from the smart account"""
    if len(transactions) == 1:
        call_data = encode_execute_call(transactions[0])
    else:
        call_data = encode_execute_batch_call(transactions)

    logger.info(f"Created UserOperation with {len(transactions)} call(s) for {smart_account}")

    return UserOperation(
        sender=smart_account,
        nonce=nonce,
        init_code=init_code or b'',
        call_data=bytes(HexBytes(call_data)),
        call_gas_limit=DEFAULT_GAS_LIMITS["call"],
        verification_gas_limit=DEFAULT_GAS_LIMITS["verification"],
        pre_verification_gas=DEFAULT_GAS_LIMITS["pre_verification"],
        max_fee_per_gas=DEFAULT_GAS_LIMITS["fee"],
        max_priority_fee_per_gas=DEFAULT_GAS_LIMITS["fee"],
    )


def get_user_operation_hash(user_op: UserOperation, entry_point: str, chain_id: int) -> bytes:
    """Hash signed by the wallet owner, as computed by EntryPoint.getUserOpHash"""
    packed = encode(
        ["address", "uint256", "bytes32", "bytes32", "uint256", "uint256", "uint256",
         "uint256", "uint256", "bytes32"],
        [
            Web3.to_checksum_address(user_op.sender),
            user_op.nonce,
            Web3.keccak(user_op.init_code),
            Web3.keccak(user_op.call_data),
            user_op.call_gas_limit,
            user_op.verification_gas_limit,
            user_op.pre_verification_gas,
            user_op.max_fee_per_gas,
            user_op.max_priority_fee_per_gas,
            Web3.keccak(user_op.paymaster_and_data),
        ],
    )
    return Web3.keccak(encode(
        ["bytes32", "address", "uint256"],
        [Web3.keccak(packed), Web3.to_checksum_address(entry_point), chain_id],
    ))
