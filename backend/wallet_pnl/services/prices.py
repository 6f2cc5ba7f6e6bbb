"""Price sources consumed by the wallet service.

A price source answers two questions: the current USD price for a set of
symbols, and the USD price of one symbol on the calendar day (UTC) of a
timestamp. Sources are injected; nothing here is module-global state.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, Mapping, Protocol, Sequence

from wallet_pnl.models import to_decimal
from wallet_pnl.providers.base import PriceSourceError
from wallet_pnl.services.cache import TTLCache

logger = logging.getLogger(__name__)


def day_of(timestamp_ms: int) -> date:
    """UTC calendar day for a millisecond timestamp."""

    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).date()


class PriceSource(Protocol):
    """Pluggable price provider."""

    async def get_current_prices(self, symbols: Sequence[str]) -> dict[str, Decimal]:
        ...

    async def get_historical_price(self, symbol: str, timestamp_ms: int) -> Decimal | None:
        ...


class InMemoryPriceSource:
    """Simple price source for tests and offline runs."""

    def __init__(
        self,
        current: Mapping[str, Decimal | float | str] | None = None,
        historical: Mapping[str, Mapping[date, Decimal | float | str]] | None = None,
    ):
        self._current = {symbol.upper(): to_decimal(price) for symbol, price in (current or {}).items()}
        self._historical: dict[str, dict[date, Decimal]] = {
            symbol.upper(): {d: to_decimal(p) for d, p in series.items()}
            for symbol, series in (historical or {}).items()
        }

    async def get_current_prices(self, symbols: Sequence[str]) -> dict[str, Decimal]:
        result: dict[str, Decimal] = {}
        for symbol in symbols:
            price = self._current.get(symbol.upper())
            if price is not None:
                result[symbol] = price
        return result

    async def get_historical_price(self, symbol: str, timestamp_ms: int) -> Decimal | None:
        series = self._historical.get(symbol.upper(), {})
        return series.get(day_of(timestamp_ms))


class CachingPriceSource:
    """Cache wrapper to avoid refetching the same prices.

    Current prices expire after ``current_ttl_seconds``; historical prices
    are keyed by symbol and UTC day and kept until cleared.
    """

    def __init__(self, delegate: PriceSource, *, current_ttl_seconds: float = 120):
        self.delegate = delegate
        self._current_cache = TTLCache(current_ttl_seconds)
        self._historical_cache = TTLCache(None)

    async def get_current_prices(self, symbols: Sequence[str]) -> dict[str, Decimal]:
        result: dict[str, Decimal] = {}
        uncached: list[str] = []
        for symbol in symbols:
            cached = self._current_cache.get(symbol)
            if cached is None:
                uncached.append(symbol)
            else:
                result[symbol] = cached
        if uncached:
            fetched = await self.delegate.get_current_prices(uncached)
            for symbol, price in fetched.items():
                self._current_cache.set(symbol, price)
                result[symbol] = price
        return result

    async def get_historical_price(self, symbol: str, timestamp_ms: int) -> Decimal | None:
        key = (symbol.upper(), day_of(timestamp_ms))
        if key in self._historical_cache:
            return self._historical_cache.get(key)
        price = await self.delegate.get_historical_price(symbol, timestamp_ms)
        if price is not None:
            self._historical_cache.set(key, price)
        return price

    def clear(self) -> None:
        self._current_cache.clear()
        self._historical_cache.clear()

    def stats(self) -> dict[str, dict[str, int]]:
        return {
            "current_prices": self._current_cache.stats(),
            "historical_prices": self._historical_cache.stats(),
        }


class FallbackPriceSource:
    """Asks each source in turn for whatever the previous ones did not price.

    A source that raises ``PriceSourceError`` is skipped. The error only
    propagates when every source failed.
    """

    def __init__(self, sources: Sequence[PriceSource]):
        if not sources:
            raise ValueError("FallbackPriceSource needs at least one source")
        self.sources = list(sources)

    async def get_current_prices(self, symbols: Sequence[str]) -> dict[str, Decimal]:
        result: dict[str, Decimal] = {}
        missing = list(symbols)
        errors: list[PriceSourceError] = []
        for source in self.sources:
            if not missing:
                break
            try:
                fetched = await source.get_current_prices(missing)
            except PriceSourceError as exc:
                logger.warning("%s failed for current prices: %s", type(source).__name__, exc)
                errors.append(exc)
                continue
            result.update(fetched)
            missing = [symbol for symbol in missing if symbol not in result]
        if len(errors) == len(self.sources):
            raise errors[-1]
        return result

    async def get_historical_price(self, symbol: str, timestamp_ms: int) -> Decimal | None:
        errors: list[PriceSourceError] = []
        for source in self.sources:
            try:
                price = await source.get_historical_price(symbol, timestamp_ms)
            except PriceSourceError as exc:
                logger.debug("%s failed for %s: %s", type(source).__name__, symbol, exc)
                errors.append(exc)
                continue
            if price is not None and price > 0:
                return price
        if len(errors) == len(self.sources):
            raise errors[-1]
        return None


def unique_symbols(symbols: Iterable[str]) -> list[str]:
    seen: list[str] = []
    for symbol in symbols:
        if symbol not in seen:
            seen.append(symbol)
    return seen


__all__ = [
    "PriceSource",
    "InMemoryPriceSource",
    "CachingPriceSource",
    "FallbackPriceSource",
    "day_of",
    "unique_symbols",
]
