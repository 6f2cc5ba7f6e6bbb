"""CoinGecko client used as the fallback price source."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Sequence

import httpx

from wallet_pnl.config import get_settings
from wallet_pnl.services.prices import day_of

from .base import CoinIdPriceSource

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-cg-pro-api-key"


class CoinGeckoPriceSource(CoinIdPriceSource):
    """Current and daily historical USD prices from CoinGecko.

    With an API key requests go to the pro endpoint and carry the key
    header; without one the public endpoint is used.
    """

    provider_name = "CoinGecko"

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        token_ids: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.coingecko_api_key
        default_url = settings.coingecko_pro_base_url if self.api_key else settings.coingecko_base_url
        super().__init__(
            base_url=base_url or default_url,
            timeout_seconds=timeout_seconds or settings.price_request_timeout_seconds,
            token_ids=token_ids,
            client=client,
        )

    @property
    def _headers(self) -> dict[str, str]:
        return {API_KEY_HEADER: self.api_key} if self.api_key else {}

    async def get_current_prices(self, symbols: Sequence[str]) -> dict[str, Decimal]:
        ids = {symbol: self.get_token_id(symbol) for symbol in symbols}
        known = sorted({token_id for token_id in ids.values() if token_id})
        if not known:
            return {}
        logger.info("Fetching current prices for %d tokens from CoinGecko", len(known))
        payload = await self._get(
            "/simple/price",
            params={"ids": ",".join(known), "vs_currencies": "usd"},
            headers=self._headers,
        )
        prices: dict[str, Decimal] = {}
        for symbol, token_id in ids.items():
            entry = payload.get(token_id) if token_id else None
            if not isinstance(entry, dict):
                continue
            price = self._decimal_price(entry.get("usd"))
            if price is not None:
                prices[symbol] = price
        return prices

    async def get_historical_price(self, symbol: str, timestamp_ms: int) -> Decimal | None:
        token_id = self.get_token_id(symbol)
        if token_id is None:
            return None
        day = day_of(timestamp_ms)
        payload = await self._get(
            f"/coins/{token_id}/history",
            params={"date": day.strftime("%d-%m-%Y"), "localization": "false"},
            headers=self._headers,
        )
        market_data = payload.get("market_data") or {}
        current_price = market_data.get("current_price") or {}
        return self._decimal_price(current_price.get("usd"))


__all__ = ["API_KEY_HEADER", "CoinGeckoPriceSource"]
