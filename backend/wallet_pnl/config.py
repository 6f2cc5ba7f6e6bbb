"""Configuration for the wallet P&L engine and its collaborators."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_CHAINS = ["ethereum", "base", "arbitrum", "optimism", "polygon", "bsc"]
DEFAULT_DATA_SOURCES = ["etherscan", "defillama", "coingecko"]


class WalletPnLSettings(BaseSettings):
    """Runtime configuration, read from the environment or ``.env``."""

    app_name: str = Field(default="wallet-pnl")

    cost_basis_method: Literal["fifo", "lifo", "avg"] = Field(default="fifo")
    initial_investment_mode: Literal["exact", "approximate"] = Field(
        default="exact",
        description="How the portfolio initial investment is derived from disposals.",
    )

    supported_chains: list[str] = Field(default_factory=lambda: list(DEFAULT_CHAINS))
    data_sources: list[str] = Field(default_factory=lambda: list(DEFAULT_DATA_SOURCES))

    defillama_base_url: str = Field(default="https://coins.llama.fi")
    coingecko_base_url: str = Field(default="https://api.coingecko.com/api/v3")
    coingecko_pro_base_url: str = Field(default="https://pro-api.coingecko.com/api/v3")
    coingecko_api_key: str | None = Field(
        default=None,
        description="Enables the CoinGecko pro API as a fallback price source.",
    )
    price_request_timeout_seconds: float = Field(default=10.0)
    price_batch_size: int = Field(default=5, ge=1)
    price_batch_delay_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Pause between historical price batches to stay under rate limits.",
    )

    cache_ttl_transactions_seconds: int = Field(default=600)
    cache_ttl_prices_seconds: int = Field(default=120)

    log_level: str = Field(default="INFO")

    telemetry_enabled: bool = Field(default=False)
    telemetry_service_name: str = Field(default="wallet-pnl")
    telemetry_otlp_endpoint: str | None = Field(default=None)
    telemetry_otlp_insecure: bool = Field(default=True)
    telemetry_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def dict_for_logging(self) -> dict[str, Any]:
        """Return a sanitized dict for logging purposes."""

        hidden = {"coingecko_api_key"}
        return {k: ("***" if k in hidden and v else v) for k, v in self.model_dump().items()}


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> WalletPnLSettings:
    """Return cached settings with optional overrides."""

    if overrides:
        return WalletPnLSettings(**overrides)
    return WalletPnLSettings()


__all__ = ["WalletPnLSettings", "get_settings", "DEFAULT_CHAINS", "DEFAULT_DATA_SOURCES"]
