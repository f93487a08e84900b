"""
Owner signatures over canonical wallet transaction hashes
"""

import logging
from typing import Any, Dict, Protocol

from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data
from hexbytes import HexBytes
from web3 import Web3

from config import SignType
from exceptions import SigningError
from models import WalletTransaction

logger = logging.getLogger(__name__)

DOMAIN_TYPE = "EIP712Domain(uint256 chainId,address verifyingContract)"
WALLET_TX_TYPE = (
    "WalletTx(address to,uint256 value,bytes data,uint8 operation,uint256 targetTxGas,"
    "uint256 baseGas,uint256 gasPrice,uint256 tokenGasPriceFactor,address gasToken,"
    "address refundReceiver,uint256 nonce)"
)
DOMAIN_TYPEHASH = Web3.keccak(text=DOMAIN_TYPE)
WALLET_TX_TYPEHASH = Web3.keccak(text=WALLET_TX_TYPE)

# Wallet contracts tell eth_sign signatures apart from typed ones by v > 30
ETH_SIGN_V_OFFSET = 4

EIP712_TYPES = {
    "EIP712Domain": [
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "WalletTx": [
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "data", "type": "bytes"},
        {"name": "operation", "type": "uint8"},
        {"name": "targetTxGas", "type": "uint256"},
        {"name": "baseGas", "type": "uint256"},
        {"name": "gasPrice", "type": "uint256"},
        {"name": "tokenGasPriceFactor", "type": "uint256"},
        {"name": "gasToken", "type": "address"},
        {"name": "refundReceiver", "type": "address"},
        {"name": "nonce", "type": "uint256"},
    ],
}


class Signer(Protocol):
    """Owner key capability"""

    @property
    def address(self) -> str: ...

    async def sign_message(self, message: bytes) -> bytes: ...

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes: ...


class LocalAccountSigner:
    """Signer backed by a private key held in memory"""

    def __init__(self, private_key: str):
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_message(self, message: bytes) -> bytes:
        signed = self._account.sign_message(encode_defunct(primitive=message))
        return bytes(signed.signature)

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        signed = self._account.sign_message(encode_typed_data(full_message=typed_data))
        return bytes(signed.signature)


def get_domain_separator(wallet_address: str, chain_id: int) -> bytes:
    return Web3.keccak(encode(
        ["bytes32", "uint256", "address"],
        [DOMAIN_TYPEHASH, chain_id, Web3.to_checksum_address(wallet_address)],
    ))


def get_transaction_hash(tx: WalletTransaction, wallet_address: str) -> bytes:
    """EIP-712 digest the wallet contract validates signatures against"""
    struct_hash = Web3.keccak(encode(
        ["bytes32", "address", "uint256", "bytes32", "uint8", "uint256", "uint256",
         "uint256", "uint256", "address", "address", "uint256"],
        [
            WALLET_TX_TYPEHASH,
            Web3.to_checksum_address(tx.to),
            tx.value,
            Web3.keccak(HexBytes(tx.data)),
            tx.operation,
            tx.target_tx_gas,
            tx.base_gas,
            tx.gas_price,
            tx.token_gas_price_factor,
            Web3.to_checksum_address(tx.gas_token),
            Web3.to_checksum_address(tx.refund_receiver),
            tx.nonce,
        ],
    ))
    return Web3.keccak(b"\x19\x01" + get_domain_separator(wallet_address, tx.chain_id) + struct_hash)


def build_typed_data(tx: WalletTransaction, wallet_address: str) -> Dict[str, Any]:
    return {
        "types": EIP712_TYPES,
        "primaryType": "WalletTx",
        "domain": {
            "chainId": tx.chain_id,
            "verifyingContract": Web3.to_checksum_address(wallet_address),
        },
        "message": {
            "to": Web3.to_checksum_address(tx.to),
            "value": tx.value,
            "data": bytes(HexBytes(tx.data)),
            "operation": tx.operation,
            "targetTxGas": tx.target_tx_gas,
            "baseGas": tx.base_gas,
            "gasPrice": tx.gas_price,
            "tokenGasPriceFactor": tx.token_gas_price_factor,
            "gasToken": Web3.to_checksum_address(tx.gas_token),
            "refundReceiver": Web3.to_checksum_address(tx.refund_receiver),
            "nonce": tx.nonce,
        },
    }


class SigningCoordinator:
    """Signs wallet transactions with the owner key using the configured scheme"""

    def __init__(self, signer: Signer, sign_type: SignType = SignType.EIP712_SIGN):
        self.signer = signer
        self.sign_type = sign_type

    async def sign(self, tx: WalletTransaction, wallet_address: str) -> str:
        """Return a hex signature the wallet accepts for `tx`"""
        try:
            if self.sign_type == SignType.PERSONAL_SIGN:
                signature = await self._sign_message(tx, wallet_address)
            else:
                signature = await self.signer.sign_typed_data(build_typed_data(tx, wallet_address))
        except SigningError:
            raise
        except Exception as e:
            raise SigningError(f"Signer failed to sign transaction nonce {tx.nonce} "
                               f"on chain {tx.chain_id}: {e}") from e

        logger.info(f"Signed wallet transaction nonce {tx.nonce} on chain {tx.chain_id} ({self.sign_type.value})")
        return "0x" + bytes(signature).hex()

    async def _sign_message(self, tx: WalletTransaction, wallet_address: str) -> bytes:
        signature = bytearray(await self.signer.sign_message(get_transaction_hash(tx, wallet_address)))
        if len(signature) != 65:
            raise SigningError(f"Unexpected signature length {len(signature)}")
        signature[64] += ETH_SIGN_V_OFFSET
        return bytes(signature)
