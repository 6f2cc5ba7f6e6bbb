"""Wallet service orchestration tests with in-memory collaborators."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from wallet_pnl.config import WalletPnLSettings
from wallet_pnl.models import Transaction
from wallet_pnl.providers.defillama import PriceSourceError
from wallet_pnl.services.prices import CachingPriceSource, InMemoryPriceSource
from wallet_pnl.services.transactions import CachingTransactionSource, InMemoryTransactionSource
from wallet_pnl.services.wallet import WalletService

JAN_1 = 1_704_067_200_000
JAN_2 = JAN_1 + 86_400_000


def settings(**overrides) -> WalletPnLSettings:
    values = {"price_batch_size": 2, "price_batch_delay_seconds": 0.0, "supported_chains": ["ethereum", "arbitrum"]}
    values.update(overrides)
    return WalletPnLSettings(**values)


def unpriced(kind: str, quantity: str, timestamp: int, symbol: str = "ETH", chain: str = "ethereum") -> Transaction:
    return Transaction(
        hash=f"0x{kind}-{symbol}-{timestamp}",
        chain=chain,
        timestamp=timestamp,
        kind=kind,
        token_symbol=symbol,
        token_address="0x0",
        quantity=Decimal(quantity),
        unit_price_usd=Decimal("0"),
    )


def wallet_transactions() -> list[Transaction]:
    return [
        unpriced("buy", "2", JAN_1),
        unpriced("buy", "1", JAN_1 + 3_600_000),
        unpriced("sell", "1", JAN_2),
        unpriced("transfer_in", "10", JAN_1, symbol="FOO", chain="arbitrum"),
    ]


class CountingTransactionSource(InMemoryTransactionSource):
    def __init__(self, transactions) -> None:
        super().__init__(transactions)
        self.calls: list[tuple[str, str]] = []

    async def fetch_transactions(self, wallet_address, chain):
        self.calls.append((wallet_address, chain))
        return await super().fetch_transactions(wallet_address, chain)


class RecordingPriceSource(InMemoryPriceSource):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.historical_calls: list[str] = []

    async def get_historical_price(self, symbol, timestamp_ms):
        self.historical_calls.append(symbol)
        return await super().get_historical_price(symbol, timestamp_ms)


def price_source() -> RecordingPriceSource:
    return RecordingPriceSource(
        current={"ETH": "2100"},
        historical={"ETH": {date(2024, 1, 1): "1800", date(2024, 1, 2): "2200"}},
    )


@pytest.mark.asyncio
async def test_calculate_pnl_enriches_prices_and_runs_engine():
    prices = price_source()
    service = WalletService(InMemoryTransactionSource(wallet_transactions()), prices, settings=settings())
    result = await service.calculate_pnl("0xwallet", method="fifo")

    eth = next(t for t in result.by_token if t.token_symbol == "ETH")
    assert eth.realized_pnl_usd == Decimal("400")
    assert eth.quantity_held == Decimal("2")
    assert eth.unrealized_pnl_usd == Decimal("600")
    assert result.metadata.missing_price_symbols == ["FOO"]
    assert result.metadata.data_sources == ["etherscan", "defillama", "coingecko"]
    assert service.unknown_tokens == {"FOO"}
    # one lookup per symbol and day
    assert sorted(prices.historical_calls) == ["ETH", "ETH", "FOO"]


@pytest.mark.asyncio
async def test_fetch_transactions_queries_each_chain():
    source = CountingTransactionSource(wallet_transactions())
    service = WalletService(source, price_source(), settings=settings())
    transactions = await service.fetch_transactions("0xwallet", ["ethereum", "arbitrum", "base"])
    assert len(transactions) == 4
    assert [chain for _, chain in source.calls] == ["ethereum", "arbitrum", "base"]


@pytest.mark.asyncio
async def test_empty_wallet_returns_zero_result_with_requested_chains():
    service = WalletService(InMemoryTransactionSource([]), price_source(), settings=settings())
    result = await service.calculate_pnl("0xempty", ["base"])
    assert result.by_token == []
    assert result.summary.total_pnl_usd == 0
    assert result.metadata.chains_queried == ["base"]


@pytest.mark.asyncio
async def test_failed_historical_lookup_degrades_to_zero_price():
    class FailingSource(InMemoryPriceSource):
        async def get_historical_price(self, symbol, timestamp_ms):
            raise PriceSourceError("down")

    service = WalletService(InMemoryTransactionSource([]), FailingSource(), settings=settings())
    enriched = await service.enrich_with_prices([unpriced("buy", "1", JAN_1)])
    assert enriched[0].unit_price_usd == Decimal("0")
    assert service.unknown_tokens == {"ETH"}


@pytest.mark.asyncio
async def test_failed_current_price_lookup_returns_empty_map():
    class FailingSource(InMemoryPriceSource):
        async def get_current_prices(self, symbols):
            raise PriceSourceError("down")

    service = WalletService(InMemoryTransactionSource([]), FailingSource(), settings=settings())
    assert await service.get_current_prices(["ETH"]) == {}


@pytest.mark.asyncio
async def test_cached_sources_expose_stats_and_clear():
    transactions = CachingTransactionSource(InMemoryTransactionSource(wallet_transactions()))
    prices = CachingPriceSource(price_source())
    service = WalletService(transactions, prices, settings=settings())
    await service.calculate_pnl("0xwallet", ["ethereum"])
    stats = service.cache_stats()
    assert stats["transactions"]["size"] == 1
    assert stats["prices"]["current_prices"]["size"] == 1
    service.clear_cache()
    assert service.cache_stats()["transactions"]["size"] == 0


@pytest.mark.asyncio
async def test_cost_basis_method_defaults_to_settings():
    service = WalletService(
        InMemoryTransactionSource(wallet_transactions()),
        price_source(),
        settings=settings(cost_basis_method="lifo"),
    )
    result = await service.calculate_pnl("0xwallet", ["ethereum"])
    assert result.metadata.cost_basis_method.value == "lifo"
    assert result.by_token[0].realized_pnl_usd == Decimal("400")
