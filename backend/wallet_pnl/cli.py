"""Compute wallet P&L for exported transactions from the command line."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

from wallet_pnl.aggregation import InvestmentMode
from wallet_pnl.config import get_settings
from wallet_pnl.core.logging import setup_logging
from wallet_pnl.core.telemetry import setup_telemetry
from wallet_pnl.engine import PnLEngine
from wallet_pnl.models import CostBasisMethod, PnLResult
from wallet_pnl.schemas import PnLResultSchema
from wallet_pnl.services.transactions import (
    CachingTransactionSource,
    JsonFileTransactionSource,
    TransactionSourceError,
    load_transactions,
)
from wallet_pnl.services.wallet import WalletService, build_price_source

logger = logging.getLogger(__name__)


def _load_prices(path: str | None) -> dict[str, str]:
    if not path:
        return {}
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise TransactionSourceError(f"Cannot read prices from {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise TransactionSourceError(f"{path} must map token symbols to USD prices")
    return {str(symbol): str(price) for symbol, price in payload.items()}


async def _run_live(args: argparse.Namespace, method: CostBasisMethod, mode: InvestmentMode) -> PnLResult:
    settings = get_settings()
    file_source = JsonFileTransactionSource(args.transactions)
    chains = args.chains or sorted({tx.chain for tx in file_source.transactions})
    source = CachingTransactionSource(file_source, ttl_seconds=settings.cache_ttl_transactions_seconds)
    service = WalletService(source, build_price_source(settings), settings=settings)
    return await service.calculate_pnl(args.wallet, chains, method, investment_mode=mode)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compute realized and unrealized P&L for a wallet")
    parser.add_argument("transactions", help="JSON file with the wallet's transactions")
    parser.add_argument("--prices", help="JSON file mapping token symbol to current USD price")
    parser.add_argument("--method", default=None, choices=[m.value for m in CostBasisMethod])
    parser.add_argument(
        "--approximate-investment",
        action="store_true",
        help="Estimate initial investment from |realized P&L| instead of tracked disposals",
    )
    parser.add_argument(
        "--live-prices",
        action="store_true",
        help="Reprice transactions and holdings from DeFiLlama instead of using the file prices",
    )
    parser.add_argument("--wallet", default="", help="Wallet address label for live runs")
    parser.add_argument("--chains", nargs="*", help="Chains to include in live runs")
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--indent", type=int, default=2)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    # stdout carries the JSON result
    setup_logging(args.log_level or settings.log_level, stream=sys.stderr)
    setup_telemetry(settings)

    method = CostBasisMethod.parse(args.method or settings.cost_basis_method)
    mode = InvestmentMode.APPROXIMATE if args.approximate_investment else InvestmentMode(settings.initial_investment_mode)
    try:
        if args.live_prices:
            result = asyncio.run(_run_live(args, method, mode))
        else:
            transactions = load_transactions(args.transactions)
            engine = PnLEngine(method, investment_mode=mode, data_sources=["file"])
            result = engine.calculate(transactions, _load_prices(args.prices))
    except TransactionSourceError as exc:
        logger.error("%s", exc)
        return 1
    except ValueError as exc:
        parser.error(str(exc))

    sys.stdout.write(PnLResultSchema.from_result(result).model_dump_json(indent=args.indent))
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
