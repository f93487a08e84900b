"""
Fee quotes for refund transactions and their materialization
"""

import logging
from typing import List, Optional, Sequence

from chain_context import ChainContext, ChainContextRegistry
from config import DEFAULT_BATCH_ID
from directory import AccountDirectoryClient
from models import FeeQuote, MetaTransaction, WalletTransaction
from relayer import RestRelayer
from transactions import WalletTransactionBuilder, build_multi_send_transaction

logger = logging.getLogger(__name__)


class FeeQuoteWorkflow:
    """Quotes refund options without touching wallet state, then builds the chosen one.

    Quoting and materializing are separate so a caller can show several options first.
    """

    def __init__(self, registry: ChainContextRegistry, builder: WalletTransactionBuilder,
                 relayer: RestRelayer, directory: AccountDirectoryClient):
        self.registry = registry
        self.builder = builder
        self.relayer = relayer
        self.directory = directory

    async def quote_refund(self, transaction: MetaTransaction, chain_id: int,
                           version: Optional[str] = None) -> List[FeeQuote]:
        context = await self.registry.require_context(chain_id, version)
        return await self._quote(context, transaction)

    async def quote_refund_batch(self, transactions: Sequence[MetaTransaction], chain_id: int,
                                 version: Optional[str] = None) -> List[FeeQuote]:
        context = await self.registry.require_context(chain_id, version)
        multi_send = build_multi_send_transaction(context.contracts.multi_send, transactions)
        return await self._quote(context, multi_send)

    async def materialize_refund(self, transaction: MetaTransaction, fee_quote: FeeQuote,
                                 chain_id: int, version: Optional[str] = None,
                                 batch_id: int = DEFAULT_BATCH_ID) -> WalletTransaction:
        return await self.builder.create_refund_transaction(
            transaction, fee_quote, chain_id, version, batch_id
        )

    async def materialize_refund_batch(self, transactions: Sequence[MetaTransaction],
                                       fee_quote: FeeQuote, chain_id: int,
                                       version: Optional[str] = None,
                                       batch_id: int = DEFAULT_BATCH_ID) -> WalletTransaction:
        return await self.builder.create_refund_transaction_batch(
            transactions, fee_quote, chain_id, version, batch_id
        )

    async def prepare_deploy_and_pay_fees(self, chain_id: int,
                                          version: Optional[str] = None) -> List[FeeQuote]:
        """Quotes for deploying the wallet with its own funds"""
        context = await self.registry.require_context(chain_id, version)
        return await self._quote(context, self._deploy_transaction(context))

    async def deploy_and_pay_fees(self, fee_quote: FeeQuote, chain_id: int,
                                  version: Optional[str] = None) -> WalletTransaction:
        context = await self.registry.require_context(chain_id, version)
        return await self.builder.create_refund_transaction(
            self._deploy_transaction(context), fee_quote, chain_id, version
        )

    @staticmethod
    def _deploy_transaction(context: ChainContext) -> MetaTransaction:
        return MetaTransaction(to=context.wallet_address, value=0, data="0x")

    async def _quote(self, context: ChainContext, transaction: MetaTransaction) -> List[FeeQuote]:
        is_deployed = context.reader.is_deployed(context.wallet_address)
        estimate = await self.directory.estimate_transaction_gas(
            context.chain_id, context.wallet_address, transaction, is_deployed
        )
        options = await self.relayer.get_fee_options(context.chain_id)
        quotes = [
            FeeQuote.from_option(option, target_tx_gas=estimate["targetTxGas"], base_gas=estimate["baseGas"])
            for option in options
        ]
        logger.info(f"Prepared {len(quotes)} fee quotes on chain {context.chain_id}")
        return quotes
