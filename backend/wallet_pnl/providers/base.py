"""Shared plumbing for HTTP price providers keyed by CoinGecko ids."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

import httpx

from wallet_pnl.models import to_decimal

# Symbol to CoinGecko id; DeFiLlama accepts the same ids as ``coingecko:<id>``.
COINGECKO_IDS: dict[str, str] = {
    "ETH": "ethereum",
    "BTC": "bitcoin",
    "USDC": "usd-coin",
    "USDT": "tether",
    "DAI": "dai",
    "WETH": "weth",
    "WBTC": "wrapped-bitcoin",
    "MATIC": "matic-network",
    "BNB": "binancecoin",
    "ARB": "arbitrum",
    "OP": "optimism",
    "LINK": "chainlink",
    "UNI": "uniswap",
    "AAVE": "aave",
    "CRV": "curve-dao-token",
    "PEPE": "pepe",
    "SHIB": "shiba-inu",
    "APE": "apecoin",
    "LDO": "lido-dao",
    "MKR": "maker",
    "SNX": "synthetix-network-token",
}


class PriceSourceError(RuntimeError):
    """Raised when a price API cannot be reached or returns a bad payload."""


class CoinIdPriceSource:
    """Base for providers that look tokens up by CoinGecko id over HTTP."""

    provider_name = "price API"

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float,
        token_ids: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._token_ids = dict(COINGECKO_IDS)
        if token_ids:
            for symbol, coin_id in token_ids.items():
                self.add_token_mapping(symbol, coin_id)
        self._client = client

    def add_token_mapping(self, symbol: str, coingecko_id: str) -> None:
        self._token_ids[symbol.upper()] = coingecko_id

    def get_token_id(self, symbol: str) -> str | None:
        return self._token_ids.get(symbol.upper())

    async def _get(
        self,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.get(
                    url, params=params, headers=headers, timeout=self.timeout_seconds
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.get(url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise PriceSourceError(f"Failed to reach {self.provider_name}: {exc}") from exc

        if response.status_code >= 400:
            raise PriceSourceError(f"{self.provider_name} error {response.status_code} for {url}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise PriceSourceError(f"{self.provider_name} returned invalid JSON payload") from exc
        if not isinstance(payload, dict):
            raise PriceSourceError(f"{self.provider_name} response is not an object")
        return payload

    def _decimal_price(self, value: Any) -> Decimal | None:
        if value is None:
            return None
        try:
            return to_decimal(value)
        except ValueError as exc:
            raise PriceSourceError(f"{self.provider_name} returned a non-numeric price {value!r}") from exc


__all__ = ["COINGECKO_IDS", "CoinIdPriceSource", "PriceSourceError"]
