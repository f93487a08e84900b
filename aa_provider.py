"""
Direct ERC-4337 submission for smart account transactions
"""

import logging
from typing import List, Optional, Sequence

from hexbytes import HexBytes

from bundler import BundlerClient, convert_user_operation_to_rpc_format
from contracts import ChainReader
from exceptions import ConfigurationError, SigningError
from models import MetaTransaction
from signing import Signer
from signing_service import SigningService
from user_operations import (
    SignedUserOperation,
    UserOperation,
    build_init_code,
    create_user_operation,
    get_user_operation_hash,
)

logger = logging.getLogger(__name__)


class AccountAbstractionProvider:
    """Builds, signs and submits user operations for one wallet on one chain.

    The bundler owns mempool semantics; this provider never goes through a relayer.
    """

    def __init__(
        self,
        chain_id: int,
        signer: Signer,
        reader: ChainReader,
        bundler: BundlerClient,
        wallet_address: str,
        factory_address: str,
        fallback_handler_address: str,
        entry_point_address: str,
        signing_service: Optional[SigningService] = None,
    ):
        self.chain_id = chain_id
        self.signer = signer
        self.reader = reader
        self.bundler = bundler
        self.wallet_address = wallet_address
        self.factory_address = factory_address
        self.fallback_handler_address = fallback_handler_address
        self.entry_point_address = entry_point_address
        self.signing_service = signing_service

        logger.info(f"Account abstraction provider initialized for {wallet_address} on chain {chain_id}")

    async def send_transaction(self, transaction: MetaTransaction, sponsored: bool = False) -> str:
        return await self.send_transaction_batch([transaction], sponsored=sponsored)

    async def send_transaction_batch(self, transactions: Sequence[MetaTransaction],
                                     sponsored: bool = False) -> str:
        """Submit `transactions` as one user operation and return its hash"""
        user_operation = self._create_user_operation(list(transactions))
        user_operation = self._optimize_gas_settings(user_operation)

        if sponsored:
            user_operation = await self._sponsor(user_operation)

        signed_user_operation = await self._sign(user_operation)
        return self.bundler.send_user_operation(signed_user_operation)

    def _create_user_operation(self, transactions: List[MetaTransaction]) -> UserOperation:
        if self.reader.is_deployed(self.wallet_address):
            nonce = self.reader.get_entry_point_nonce(self.entry_point_address, self.wallet_address)
            init_code = None
        else:
            nonce = 0
            init_code = build_init_code(
                self.factory_address,
                self.signer.address,
                self.entry_point_address,
                self.fallback_handler_address,
            )
            logger.info(f"Wallet {self.wallet_address} not deployed, attaching initCode")

        return create_user_operation(
            smart_account=self.wallet_address,
            transactions=transactions,
            nonce=nonce,
            init_code=init_code,
        )

    def _optimize_gas_settings(self, user_operation: UserOperation) -> UserOperation:
        """Update UserOperation with network gas price and bundler estimates"""
        gas_price = self.reader.get_gas_price()
        if gas_price:
            user_operation.max_fee_per_gas = gas_price
            user_operation.max_priority_fee_per_gas = gas_price

        gas_estimates = self.bundler.estimate_user_operation_gas(user_operation)
        if gas_estimates:
            if 'callGasLimit' in gas_estimates:
                user_operation.call_gas_limit = int(gas_estimates['callGasLimit'], 16)
            if 'verificationGasLimit' in gas_estimates:
                user_operation.verification_gas_limit = int(gas_estimates['verificationGasLimit'], 16)
            if 'preVerificationGas' in gas_estimates:
                user_operation.pre_verification_gas = int(gas_estimates['preVerificationGas'], 16)

        return user_operation

    async def _sponsor(self, user_operation: UserOperation) -> UserOperation:
        if not self.signing_service:
            raise ConfigurationError(f"No paymaster signing service configured for chain {self.chain_id}")
        paymaster_and_data = await self.signing_service.get_paymaster_and_data(
            convert_user_operation_to_rpc_format(user_operation)
        )
        user_operation.paymaster_and_data = bytes(HexBytes(paymaster_and_data))
        return user_operation

    async def _sign(self, user_operation: UserOperation) -> SignedUserOperation:
        user_op_hash = get_user_operation_hash(user_operation, self.entry_point_address, self.chain_id)
        try:
            signature = await self.signer.sign_message(user_op_hash)
        except Exception as e:
            raise SigningError(f"Signer failed to sign user operation: {e}") from e
        return SignedUserOperation(user_operation=user_operation, signature=signature)
