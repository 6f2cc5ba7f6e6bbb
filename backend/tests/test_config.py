"""Settings, logging and telemetry setup."""

from __future__ import annotations

import io
import logging

from wallet_pnl.config import WalletPnLSettings, get_settings
from wallet_pnl.core import telemetry
from wallet_pnl.core.logging import setup_logging
from wallet_pnl.core.telemetry import setup_telemetry


def test_settings_defaults():
    settings = WalletPnLSettings()
    assert settings.cost_basis_method == "fifo"
    assert settings.initial_investment_mode == "exact"
    assert settings.price_batch_size == 5
    assert settings.cache_ttl_transactions_seconds == 600
    assert settings.cache_ttl_prices_seconds == 120
    assert "ethereum" in settings.supported_chains


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("COST_BASIS_METHOD", "avg")
    monkeypatch.setenv("PRICE_BATCH_SIZE", "3")
    settings = WalletPnLSettings()
    assert settings.cost_basis_method == "avg"
    assert settings.price_batch_size == 3


def test_settings_overrides_and_masking():
    settings = WalletPnLSettings(cost_basis_method="lifo", coingecko_api_key="secret")
    assert settings.cost_basis_method == "lifo"
    assert settings.dict_for_logging()["coingecko_api_key"] == "***"
    assert get_settings(price_batch_size=3).price_batch_size == 3


def test_setup_logging_writes_to_given_stream():
    stream = io.StringIO()
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    try:
        setup_logging("warning", stream=stream)
        logging.getLogger("wallet_pnl.test").warning("price lookup failed")
        assert "price lookup failed" in stream.getvalue()
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        for handler in list(root.handlers):
            if handler not in handlers:
                root.removeHandler(handler)
        root.setLevel(level)


def test_telemetry_disabled_by_default():
    assert setup_telemetry(WalletPnLSettings(telemetry_enabled=False)) is False


def test_telemetry_configures_traces_and_logs_only(monkeypatch):
    configured: list[str] = []

    class FakeInstrumentor:
        def instrument(self):
            configured.append("httpx")

    monkeypatch.setattr(telemetry, "_TELEMETRY_INITIALISED", False)
    monkeypatch.setattr(telemetry, "_configure_tracing", lambda *args: configured.append("traces"))
    monkeypatch.setattr(telemetry, "_configure_logging", lambda *args: configured.append("logs"))
    monkeypatch.setattr(telemetry, "HTTPXClientInstrumentor", FakeInstrumentor)

    settings = WalletPnLSettings(telemetry_enabled=True, telemetry_otlp_endpoint="collector:4317")
    assert setup_telemetry(settings) is True
    assert configured == ["traces", "logs", "httpx"]
    # second call is a no-op
    assert setup_telemetry(settings) is True
    assert configured == ["traces", "logs", "httpx"]
    assert telemetry._build_exporter_options(settings) == {"insecure": True, "endpoint": "collector:4317"}
