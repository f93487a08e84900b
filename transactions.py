"""
Wallet transaction creation for single calls, batches and fee-refund transactions
"""

import logging
from typing import Optional, Sequence

from chain_context import ChainContext, ChainContextRegistry
from config import DEFAULT_BATCH_ID
from contracts import encode_multi_send_call
from models import FeeQuote, FeeRefundTerms, MetaTransaction, Operation, WalletTransaction

logger = logging.getLogger(__name__)


def build_multi_send_transaction(multi_send_address: str,
                                 transactions: Sequence[MetaTransaction]) -> MetaTransaction:
    """Wrap `transactions` into one delegate call to the multi-send helper"""
    if not transactions:
        raise ValueError("A batch needs at least one transaction")
    return MetaTransaction(
        to=multi_send_address,
        value=0,
        data=encode_multi_send_call(transactions),
        operation=Operation.DELEGATE_CALL,
    )


class WalletTransactionBuilder:
    """Turns caller calls into canonical, fully populated wallet transactions"""

    def __init__(self, registry: ChainContextRegistry):
        self.registry = registry

    async def create_transaction(self, transaction: MetaTransaction, chain_id: int,
                                 version: Optional[str] = None,
                                 batch_id: int = DEFAULT_BATCH_ID) -> WalletTransaction:
        """Gasless transaction: every refund field is zero"""
        context = await self.registry.require_context(chain_id, version)
        return self._build(context, transaction, batch_id, FeeRefundTerms(), target_tx_gas=0)

    async def create_transaction_batch(self, transactions: Sequence[MetaTransaction], chain_id: int,
                                       version: Optional[str] = None,
                                       batch_id: int = DEFAULT_BATCH_ID) -> WalletTransaction:
        context = await self.registry.require_context(chain_id, version)
        multi_send = build_multi_send_transaction(context.contracts.multi_send, transactions)
        logger.info(f"Packed {len(transactions)} calls into a multi-send on chain {chain_id}")
        return self._build(context, multi_send, batch_id, FeeRefundTerms(), target_tx_gas=0)

    async def create_refund_transaction(self, transaction: MetaTransaction, fee_quote: FeeQuote,
                                        chain_id: int, version: Optional[str] = None,
                                        batch_id: int = DEFAULT_BATCH_ID) -> WalletTransaction:
        """Refund transaction with its fee fields copied from `fee_quote`"""
        context = await self.registry.require_context(chain_id, version)
        return self._build(context, transaction, batch_id, fee_quote.refund_terms(),
                           target_tx_gas=fee_quote.target_tx_gas)

    async def create_refund_transaction_batch(self, transactions: Sequence[MetaTransaction],
                                              fee_quote: FeeQuote, chain_id: int,
                                              version: Optional[str] = None,
                                              batch_id: int = DEFAULT_BATCH_ID) -> WalletTransaction:
        context = await self.registry.require_context(chain_id, version)
        multi_send = build_multi_send_transaction(context.contracts.multi_send, transactions)
        return self._build(context, multi_send, batch_id, fee_quote.refund_terms(),
                           target_tx_gas=fee_quote.target_tx_gas)

    def get_nonce(self, context: ChainContext, batch_id: int) -> int:
        if not context.reader.is_deployed(context.wallet_address):
            return 0
        return context.reader.get_wallet_nonce(context.wallet_address, batch_id)

    def _build(self, context: ChainContext, transaction: MetaTransaction, batch_id: int,
               refund: FeeRefundTerms, target_tx_gas: int) -> WalletTransaction:
        return WalletTransaction(
            to=transaction.to,
            value=int(transaction.value),
            data=transaction.data or "0x",
            operation=int(transaction.operation),
            target_tx_gas=target_tx_gas,
            base_gas=refund.base_gas,
            gas_price=refund.gas_price,
            token_gas_price_factor=refund.token_gas_price_factor,
            gas_token=refund.gas_token,
            refund_receiver=refund.refund_receiver,
            nonce=self.get_nonce(context, batch_id),
            chain_id=context.chain_id,
            version=context.version,
        )
