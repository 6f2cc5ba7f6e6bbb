"""Wallet service: fetches transactions and prices, then runs the P&L engine."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Sequence

from opentelemetry import trace

from wallet_pnl.aggregation import InvestmentMode
from wallet_pnl.config import WalletPnLSettings, get_settings
from wallet_pnl.engine import PnLEngine
from wallet_pnl.models import ZERO, CostBasisMethod, PnLResult, Transaction
from wallet_pnl.providers.base import PriceSourceError
from wallet_pnl.providers.coingecko import CoinGeckoPriceSource
from wallet_pnl.providers.defillama import DefiLlamaPriceSource
from wallet_pnl.services.prices import (
    CachingPriceSource,
    FallbackPriceSource,
    PriceSource,
    day_of,
    unique_symbols,
)
from wallet_pnl.services.transactions import TransactionSource

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def build_price_source(settings: WalletPnLSettings | None = None) -> CachingPriceSource:
    """DeFiLlama first, CoinGecko as fallback when an API key is configured, cached."""

    settings = settings or get_settings()
    timeout = settings.price_request_timeout_seconds
    sources: list[PriceSource] = [
        DefiLlamaPriceSource(base_url=settings.defillama_base_url, timeout_seconds=timeout)
    ]
    if settings.coingecko_api_key:
        sources.append(
            CoinGeckoPriceSource(
                settings.coingecko_api_key,
                base_url=settings.coingecko_pro_base_url,
                timeout_seconds=timeout,
            )
        )
    return CachingPriceSource(
        FallbackPriceSource(sources),
        current_ttl_seconds=settings.cache_ttl_prices_seconds,
    )


class WalletService:
    """Orchestrates transaction and price sources around ``PnLEngine``.

    Sources are injected so callers decide on caching and transport.
    """

    def __init__(
        self,
        transaction_source: TransactionSource,
        price_source: PriceSource,
        *,
        settings: WalletPnLSettings | None = None,
    ):
        self.transaction_source = transaction_source
        self.price_source = price_source
        self.settings = settings or get_settings()
        self.unknown_tokens: set[str] = set()

    async def calculate_pnl(
        self,
        wallet_address: str,
        chains: Sequence[str] | None = None,
        method: CostBasisMethod | str | None = None,
        *,
        investment_mode: InvestmentMode | str | None = None,
    ) -> PnLResult:
        chains = list(chains or self.settings.supported_chains)
        engine = PnLEngine(
            method or self.settings.cost_basis_method,
            investment_mode=investment_mode or self.settings.initial_investment_mode,
            data_sources=self.settings.data_sources,
        )
        with tracer.start_as_current_span("wallet.calculate_pnl") as span:
            span.set_attribute("wallet.chains", len(chains))
            logger.info(
                "Calculating P&L for %s on %s using %s",
                wallet_address,
                ", ".join(chains),
                engine.method.value,
            )
            self.unknown_tokens = set()
            transactions = await self.fetch_transactions(wallet_address, chains)
            if not transactions:
                logger.warning("No transactions found for %s", wallet_address)
                result = engine.calculate([], {})
                result.metadata.chains_queried = chains
                return result

            enriched = await self.enrich_with_prices(transactions)
            symbols = unique_symbols(tx.token_symbol for tx in enriched)
            current_prices = await self.get_current_prices(symbols)
            result = engine.calculate(enriched, current_prices)
            span.set_attribute("wallet.transactions", len(enriched))
        self.log_summary(result)
        return result

    async def fetch_transactions(self, wallet_address: str, chains: Sequence[str]) -> list[Transaction]:
        batches = await asyncio.gather(
            *(self.transaction_source.fetch_transactions(wallet_address, chain) for chain in chains)
        )
        transactions = [tx for batch in batches for tx in batch]
        logger.info("Fetched %d transactions across %d chains", len(transactions), len(chains))
        return transactions

    async def enrich_with_prices(self, transactions: Sequence[Transaction]) -> list[Transaction]:
        """Attach the historical USD price of each transaction's day.

        Lookups are deduplicated per symbol and UTC day and issued in batches
        with a pause between them. A failed or empty lookup prices the
        transaction at 0 and records the symbol as unknown.
        """

        pending: dict[tuple[str, object], tuple[str, int]] = {}
        for tx in transactions:
            key = (tx.token_symbol, day_of(tx.timestamp))
            pending.setdefault(key, (tx.token_symbol, tx.timestamp))

        keys = list(pending)
        batch_size = self.settings.price_batch_size
        prices: dict[tuple[str, object], Decimal] = {}
        logger.info("Looking up %d historical prices for %d transactions", len(keys), len(transactions))
        for start in range(0, len(keys), batch_size):
            batch = keys[start : start + batch_size]
            results = await asyncio.gather(
                *(self._historical_price(*pending[key]) for key in batch)
            )
            for key, price in zip(batch, results):
                prices[key] = price
            if start + batch_size < len(keys) and self.settings.price_batch_delay_seconds:
                await asyncio.sleep(self.settings.price_batch_delay_seconds)

        if self.unknown_tokens:
            logger.info("%d unknown tokens (no price data available)", len(self.unknown_tokens))
        return [
            tx.with_price(prices[(tx.token_symbol, day_of(tx.timestamp))])
            for tx in transactions
        ]

    async def _historical_price(self, symbol: str, timestamp_ms: int) -> Decimal:
        try:
            price = await self.price_source.get_historical_price(symbol, timestamp_ms)
        except PriceSourceError as exc:
            logger.debug("Historical price lookup failed for %s: %s", symbol, exc)
            price = None
        if price is None or price <= 0:
            self.unknown_tokens.add(symbol)
            return ZERO
        return price

    async def get_current_prices(self, symbols: Sequence[str]) -> dict[str, Decimal]:
        try:
            return await self.price_source.get_current_prices(symbols)
        except PriceSourceError as exc:
            logger.error("Current price lookup failed: %s", exc)
            return {}

    def clear_cache(self) -> None:
        for source in (self.transaction_source, self.price_source):
            clear = getattr(source, "clear", None)
            if callable(clear):
                clear()

    def cache_stats(self) -> dict[str, object]:
        stats: dict[str, object] = {}
        for name, source in (("transactions", self.transaction_source), ("prices", self.price_source)):
            source_stats = getattr(source, "stats", None)
            if callable(source_stats):
                stats[name] = source_stats()
        return stats

    @staticmethod
    def log_summary(result: PnLResult) -> None:
        summary = result.summary
        logger.info(
            "Total P&L %.2f USD (%.2f%%); realized %.2f, unrealized %.2f, "
            "initial investment %.2f, current value %.2f",
            summary.total_pnl_usd,
            summary.total_pnl_percentage,
            summary.total_realized_pnl_usd,
            summary.total_unrealized_pnl_usd,
            summary.initial_investment_usd,
            summary.current_value_usd,
        )


__all__ = ["WalletService", "build_price_source"]
