"""
Contract call encoding and on-chain reads for smart account contracts
"""

import logging
from typing import List, Sequence, Tuple

from eth_abi import decode, encode
from eth_abi.packed import encode_packed
from hexbytes import HexBytes
from web3 import Web3

from models import FallbackUserOperation, MetaTransaction, Operation, WalletTransaction

logger = logging.getLogger(__name__)

WALLET_TX_TUPLE = "(address,uint256,bytes,uint8,uint256)"
FEE_REFUND_TUPLE = "(uint256,uint256,uint256,address,address)"
FALLBACK_USER_OP_TUPLE = "(address,address,uint256,bytes,uint256,bytes32,bytes)"

EXEC_TRANSACTION = f"execTransaction({WALLET_TX_TUPLE},{FEE_REFUND_TUPLE},bytes)"
MULTI_SEND = "multiSend(bytes)"
UPDATE_IMPLEMENTATION = "updateImplementation(address)"
SET_FALLBACK_HANDLER = "setFallbackHandler(address)"
DEPLOY_COUNTERFACTUAL_WALLET = "deployCounterFactualWallet(address,address,address,uint256)"
HANDLE_FALLBACK_USER_OP = f"handleFallbackUserOp({FALLBACK_USER_OP_TUPLE})"
EXECUTE_CALL = "executeCall(address,uint256,bytes)"
EXECUTE_BATCH_CALL = "executeBatchCall(address[],uint256[],bytes[])"

WALLET_GET_NONCE = "getNonce(uint256)"
GAS_TANK_GET_NONCE = "getNonce(address)"
ENTRY_POINT_GET_NONCE = "getNonce(address,uint192)"


def function_selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


def argument_types(signature: str) -> List[str]:
    """Split the argument list of a function signature into ABI types"""
    arguments = signature[signature.index("(") + 1:-1]
    types, depth, current = [], 0, ""
    for char in arguments:
        if char == "," and depth == 0:
            types.append(current)
            current = ""
            continue
        depth += {"(": 1, ")": -1}.get(char, 0)
        current += char
    if current:
        types.append(current)
    return types


def encode_function_call(signature: str, args: Sequence) -> str:
    """Encode `args` for the function `signature` into hex call data"""
    encoded = encode(argument_types(signature), list(args))
    return "0x" + (function_selector(signature) + encoded).hex()


def decode_function_call(signature: str, data: str) -> Tuple:
    raw = bytes(HexBytes(data))
    if raw[:4] != function_selector(signature):
        raise ValueError(f"Call data is not a {signature} call")
    return decode(argument_types(signature), raw[4:])


def _checksum(address: str) -> str:
    return Web3.to_checksum_address(address)


def encode_exec_transaction(tx: WalletTransaction, signature: str) -> str:
    """Encode the wallet's execTransaction call for a signed transaction"""
    refund = tx.refund_terms()
    exec_tuple = (_checksum(tx.to),) + tx.exec_tuple()[1:]
    refund_tuple = refund.as_tuple()[:3] + (_checksum(refund.gas_token), _checksum(refund.refund_receiver))
    return encode_function_call(EXEC_TRANSACTION, [exec_tuple, refund_tuple, bytes(HexBytes(signature))])


def encode_multi_send(transactions: Sequence[MetaTransaction]) -> bytes:
    """Pack transactions the way the multi-send helper unpacks them"""
    packed = b""
    for tx in transactions:
        data = bytes(HexBytes(tx.data))
        packed += encode_packed(
            ["uint8", "address", "uint256", "uint256", "bytes"],
            [int(tx.operation), _checksum(tx.to), int(tx.value), len(data), data],
        )
    return packed


def encode_multi_send_call(transactions: Sequence[MetaTransaction]) -> str:
    return encode_function_call(MULTI_SEND, [encode_multi_send(transactions)])


def decode_multi_send(data: str) -> List[MetaTransaction]:
    """Unpack multiSend(bytes) call data back into its transactions"""
    (packed,) = decode_function_call(MULTI_SEND, data)
    transactions = []
    position = 0
    while position < len(packed):
        operation = packed[position]
        to = _checksum("0x" + packed[position + 1:position + 21].hex())
        value = int.from_bytes(packed[position + 21:position + 53], "big")
        length = int.from_bytes(packed[position + 53:position + 85], "big")
        payload = packed[position + 85:position + 85 + length]
        transactions.append(MetaTransaction(to=to, value=value, data="0x" + payload.hex(),
                                            operation=Operation(operation)))
        position += 85 + length
    return transactions


def encode_update_implementation(implementation: str) -> str:
    return encode_function_call(UPDATE_IMPLEMENTATION, [_checksum(implementation)])


def encode_set_fallback_handler(handler: str) -> str:
    return encode_function_call(SET_FALLBACK_HANDLER, [_checksum(handler)])


def encode_deploy_counterfactual_wallet(owner: str, entry_point: str, handler: str, index: int = 0) -> str:
    return encode_function_call(
        DEPLOY_COUNTERFACTUAL_WALLET,
        [_checksum(owner), _checksum(entry_point), _checksum(handler), index],
    )


def encode_handle_fallback_user_op(user_op: FallbackUserOperation) -> str:
    op_tuple = user_op.as_tuple()
    op_tuple = (_checksum(op_tuple[0]), _checksum(op_tuple[1])) + op_tuple[2:]
    return encode_function_call(HANDLE_FALLBACK_USER_OP, [op_tuple])


def encode_execute_call(tx: MetaTransaction) -> str:
    return encode_function_call(EXECUTE_CALL, [_checksum(tx.to), int(tx.value), bytes(HexBytes(tx.data))])


def encode_execute_batch_call(transactions: Sequence[MetaTransaction]) -> str:
    return encode_function_call(
        EXECUTE_BATCH_CALL,
        [
            [_checksum(tx.to) for tx in transactions],
            [int(tx.value) for tx in transactions],
            [bytes(HexBytes(tx.data)) for tx in transactions],
        ],
    )


class ChainReader:
    """Read-only access to wallet, gas tank and entry point state on one chain"""

    def __init__(self, provider_url: str):
        self.provider_url = provider_url
        self.web3 = Web3(Web3.HTTPProvider(provider_url))

    def is_deployed(self, address: str) -> bool:
        code = self.web3.eth.get_code(_checksum(address))
        return len(code) > 0

    def call(self, to: str, data: str) -> bytes:
        return bytes(self.web3.eth.call({"to": _checksum(to), "data": data}))

    def _call_uint(self, to: str, signature: str, args: Sequence) -> int:
        result = self.call(to, encode_function_call(signature, args))
        (value,) = decode(["uint256"], result)
        return value

    def get_wallet_nonce(self, wallet: str, batch_id: int) -> int:
        nonce = self._call_uint(wallet, WALLET_GET_NONCE, [batch_id])
        logger.info(f"Wallet {wallet} nonce for batch {batch_id}: {nonce}")
        return nonce

    def get_gas_tank_nonce(self, gas_tank: str, sender: str) -> int:
        nonce = self._call_uint(gas_tank, GAS_TANK_GET_NONCE, [_checksum(sender)])
        logger.info(f"Gas tank nonce for {sender}: {nonce}")
        return nonce

    def get_entry_point_nonce(self, entry_point: str, sender: str, key: int = 0) -> int:
        nonce = self._call_uint(entry_point, ENTRY_POINT_GET_NONCE, [_checksum(sender), key])
        logger.info(f"Current nonce: {nonce}")
        return nonce

    def get_gas_price(self) -> int:
        return self.web3.eth.gas_price
