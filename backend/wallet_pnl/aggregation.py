"""Derived views over finalized token P&L: per-token figures, chain rollups and the portfolio summary."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Dict, List, Mapping, Sequence

from .models import ZERO, ChainPnL, PnLSummary, TokenPnL

HUNDRED = Decimal("100")


class InvestmentMode(str, Enum):
    EXACT = "exact"
    APPROXIMATE = "approximate"


def _pct(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator == 0:
        return ZERO
    return numerator / denominator * HUNDRED


def finalize_token(
    token: TokenPnL,
    quantity_held: Decimal,
    average_cost: Decimal,
    current_prices: Mapping[str, Decimal],
) -> TokenPnL:
    """Apply the current price to ``token`` and fill in unrealized and total P&L."""

    token.quantity_held = quantity_held
    token.average_buy_price_usd = average_cost if quantity_held > 0 else ZERO
    price = current_prices.get(token.token_symbol)
    if price is None:
        price = current_prices.get(token.token_symbol.upper())
    token.has_price = price is not None
    token.current_price_usd = Decimal(str(price)) if price is not None else ZERO
    if token.quantity_held > 0:
        token.unrealized_pnl_usd = token.quantity_held * (
            token.current_price_usd - token.average_buy_price_usd
        )
    else:
        token.unrealized_pnl_usd = ZERO
    token.total_pnl_usd = token.realized_pnl_usd + token.unrealized_pnl_usd
    # |realized| stands in for the cost of what was already sold.
    invested = token.cost_basis_usd + abs(token.realized_pnl_usd)
    token.pnl_percentage = _pct(token.total_pnl_usd, invested)
    return token


def aggregate_by_chain(tokens: Sequence[TokenPnL]) -> List[ChainPnL]:
    chains: Dict[str, ChainPnL] = {}
    for token in tokens:
        entry = chains.setdefault(token.chain, ChainPnL(chain=token.chain))
        entry.realized_pnl_usd += token.realized_pnl_usd
        entry.unrealized_pnl_usd += token.unrealized_pnl_usd
        entry.total_pnl_usd += token.total_pnl_usd
    for entry in chains.values():
        invested = abs(entry.total_pnl_usd - entry.realized_pnl_usd)
        entry.pnl_percentage = _pct(entry.total_pnl_usd, invested)
    return list(chains.values())


def summarize(
    tokens: Sequence[TokenPnL],
    *,
    investment_mode: InvestmentMode | str = InvestmentMode.EXACT,
) -> PnLSummary:
    """Portfolio totals.

    ``total_pnl_usd`` is derived from value and investment, never by adding
    the realized and unrealized breakdowns, which are reported alongside.

    EXACT mode uses the tracked disposal figures: the initial investment is
    the cost basis still held plus the cost basis already disposed, and
    total P&L is current value plus sale proceeds minus that investment.
    Counting disposed cost rather than sale proceeds as invested is
    deliberate: with proceeds, a profitable full exit (buy 100, sell 150)
    would report -150 instead of +50.

    APPROXIMATE mode reproduces the legacy estimate, where the initial
    investment is the cost basis still held plus ``|sum(realized)|`` and
    total P&L is current value minus that figure. The two diverge whenever
    a position was partly or fully sold.
    """

    mode = InvestmentMode(investment_mode)
    total_realized = sum((t.realized_pnl_usd for t in tokens), ZERO)
    total_unrealized = sum((t.unrealized_pnl_usd for t in tokens), ZERO)
    current_value = sum((t.current_value_usd for t in tokens), ZERO)
    remaining_cost_basis = sum((t.cost_basis_usd for t in tokens), ZERO)
    if mode == InvestmentMode.EXACT:
        initial_investment = remaining_cost_basis + sum(
            (t.cost_basis_disposed_usd for t in tokens), ZERO
        )
        proceeds = sum((t.total_sale_proceeds_usd for t in tokens), ZERO)
        total_pnl = current_value + proceeds - initial_investment
    else:
        initial_investment = remaining_cost_basis + abs(total_realized)
        total_pnl = current_value - initial_investment
    return PnLSummary(
        total_realized_pnl_usd=total_realized,
        total_unrealized_pnl_usd=total_unrealized,
        total_pnl_usd=total_pnl,
        total_pnl_percentage=_pct(total_pnl, initial_investment),
        initial_investment_usd=initial_investment,
        current_value_usd=current_value,
    )


__all__ = ["InvestmentMode", "aggregate_by_chain", "finalize_token", "summarize"]
