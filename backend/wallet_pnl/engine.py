"""P&L engine: replays transactions through per-token ledgers and prices the result."""
from __future__ import annotations

import logging
import time
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Sequence

from opentelemetry import trace

from .aggregation import InvestmentMode, aggregate_by_chain, finalize_token, summarize
from .ledger import PositionLedger
from .models import (
    CostBasisMethod,
    PnLResult,
    ResultMetadata,
    TokenPnL,
    Transaction,
    to_decimal,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

TokenKey = tuple[str, str, str]


def _now_ms() -> int:
    return int(time.time() * 1000)


class EngineState(str, Enum):
    IDLE = "idle"
    SORTING = "sorting"
    REPLAYING = "replaying"
    FINALIZING = "finalizing"
    DONE = "done"


class PnLEngine:
    """Computes realized, unrealized and total P&L for a wallet.

    Each ``calculate`` call starts from empty ledgers, so an instance can be
    reused without results leaking between runs.
    """

    def __init__(
        self,
        method: CostBasisMethod | str = CostBasisMethod.FIFO,
        *,
        investment_mode: InvestmentMode | str = InvestmentMode.EXACT,
        data_sources: Sequence[str] | None = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self.method = CostBasisMethod.parse(method)
        self.investment_mode = InvestmentMode(investment_mode)
        self.data_sources = list(data_sources) if data_sources is not None else []
        self._clock = clock
        self.state = EngineState.IDLE
        self._ledgers: Dict[TokenKey, PositionLedger] = {}
        self._tokens: Dict[TokenKey, TokenPnL] = {}

    def _reset(self) -> None:
        self._ledgers = {}
        self._tokens = {}
        self.state = EngineState.IDLE

    def _ledger_for(self, tx: Transaction) -> tuple[PositionLedger, TokenPnL]:
        key = tx.token_key
        ledger = self._ledgers.get(key)
        if ledger is None:
            ledger = PositionLedger(key, self.method)
            self._ledgers[key] = ledger
            self._tokens[key] = TokenPnL(
                chain=tx.chain,
                token_address=tx.token_address,
                token_symbol=tx.token_symbol,
            )
        return ledger, self._tokens[key]

    def _replay(self, tx: Transaction) -> Transaction:
        ledger, token = self._ledger_for(tx)
        if tx.kind.is_acquisition:
            ledger.acquire(tx)
            return tx
        cost_basis = ledger.dispose(tx)
        proceeds = tx.total_value_usd
        realized = proceeds - cost_basis
        token.realized_pnl_usd += realized
        token.total_sale_proceeds_usd += proceeds
        token.cost_basis_disposed_usd += cost_basis
        return tx.with_realized_pnl(realized)

    def calculate(
        self,
        transactions: Iterable[Transaction],
        current_prices: Mapping[str, Decimal | float | int | str],
    ) -> PnLResult:
        self._reset()
        prices = {symbol: to_decimal(price) for symbol, price in current_prices.items()}
        for symbol, price in prices.items():
            if price < 0:
                raise ValueError(f"Current price for {symbol} must be >= 0")

        with tracer.start_as_current_span("pnl.calculate") as span:
            self.state = EngineState.SORTING
            # sorted() is stable, so same-timestamp events keep source order
            ordered = sorted(transactions, key=lambda tx: tx.timestamp)
            logger.debug("Replaying %d transactions using %s", len(ordered), self.method.value)

            self.state = EngineState.REPLAYING
            processed: List[Transaction] = [self._replay(tx) for tx in ordered]

            self.state = EngineState.FINALIZING
            by_token = [
                finalize_token(token, self._ledgers[key].quantity_held, self._ledgers[key].average_cost, prices)
                for key, token in self._tokens.items()
            ]
            by_chain = aggregate_by_chain(by_token)
            summary = summarize(by_token, investment_mode=self.investment_mode)

            unpriced = [t for t in by_token if not t.has_price]
            missing = sorted({t.token_symbol for t in unpriced})
            if unpriced:
                logger.warning("%d tokens have no current price; valued at 0", len(unpriced))

            chains: list[str] = []
            for tx in processed:
                if tx.chain not in chains:
                    chains.append(tx.chain)

            span.set_attribute("pnl.method", self.method.value)
            span.set_attribute("pnl.transactions", len(processed))
            span.set_attribute("pnl.tokens", len(by_token))
            span.set_attribute("pnl.tokens_missing_price", len(unpriced))

            self.state = EngineState.DONE

        return PnLResult(
            summary=summary,
            by_chain=by_chain,
            by_token=by_token,
            transactions=processed,
            metadata=ResultMetadata(
                last_updated=self._clock(),
                chains_queried=chains,
                data_sources=list(self.data_sources),
                cost_basis_method=self.method,
                tokens_missing_price=len(unpriced),
                missing_price_symbols=missing,
            ),
        )


def calculate_pnl(
    transactions: Iterable[Transaction],
    current_prices: Mapping[str, Decimal | float | int | str],
    method: CostBasisMethod | str = CostBasisMethod.FIFO,
    *,
    investment_mode: InvestmentMode | str = InvestmentMode.EXACT,
) -> PnLResult:
    """Run a one-off calculation on a fresh engine."""

    return PnLEngine(method, investment_mode=investment_mode).calculate(transactions, current_prices)


__all__ = ["EngineState", "PnLEngine", "calculate_pnl"]
