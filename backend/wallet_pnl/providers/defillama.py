"""DeFiLlama coins API client used as the default price source."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Sequence

import httpx

from wallet_pnl.config import get_settings

from .base import COINGECKO_IDS, CoinIdPriceSource, PriceSourceError

logger = logging.getLogger(__name__)


class DefiLlamaPriceSource(CoinIdPriceSource):
    """Current and historical USD prices from coins.llama.fi."""

    provider_name = "DeFiLlama"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        token_ids: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        super().__init__(
            base_url=base_url or settings.defillama_base_url,
            timeout_seconds=timeout_seconds or settings.price_request_timeout_seconds,
            token_ids=token_ids,
            client=client,
        )

    def _coin_key(self, symbol: str) -> str | None:
        token_id = self.get_token_id(symbol)
        return f"coingecko:{token_id}" if token_id else None

    def _price_for(self, payload: dict[str, Any], coin_key: str) -> Decimal | None:
        coins = payload.get("coins") or {}
        entry = coins.get(coin_key)
        if not isinstance(entry, dict):
            return None
        return self._decimal_price(entry.get("price"))

    async def get_current_prices(self, symbols: Sequence[str]) -> dict[str, Decimal]:
        keyed = {symbol: self._coin_key(symbol) for symbol in symbols}
        coin_keys = sorted({key for key in keyed.values() if key})
        if not coin_keys:
            logger.warning("No known price ids for %d symbols", len(symbols))
            return {}
        logger.info("Fetching current prices for %d tokens from DeFiLlama", len(coin_keys))
        payload = await self._get(f"/prices/current/{','.join(coin_keys)}")
        prices: dict[str, Decimal] = {}
        for symbol, coin_key in keyed.items():
            if coin_key is None:
                continue
            price = self._price_for(payload, coin_key)
            if price is not None:
                prices[symbol] = price
        return prices

    async def get_historical_price(self, symbol: str, timestamp_ms: int) -> Decimal | None:
        coin_key = self._coin_key(symbol)
        if coin_key is None:
            return None
        payload = await self._get(f"/prices/historical/{timestamp_ms // 1000}/{coin_key}")
        return self._price_for(payload, coin_key)


__all__ = ["COINGECKO_IDS", "DefiLlamaPriceSource", "PriceSourceError"]
