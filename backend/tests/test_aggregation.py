"""Chain rollups and portfolio summary math."""

from __future__ import annotations

from decimal import Decimal

from wallet_pnl.aggregation import InvestmentMode, aggregate_by_chain, finalize_token, summarize
from wallet_pnl.engine import calculate_pnl
from wallet_pnl.models import TokenPnL, Transaction


def token(chain: str, symbol: str, realized: str, unrealized: str) -> TokenPnL:
    realized_value = Decimal(realized)
    unrealized_value = Decimal(unrealized)
    return TokenPnL(
        chain=chain,
        token_address=f"0x{symbol.lower()}",
        token_symbol=symbol,
        realized_pnl_usd=realized_value,
        unrealized_pnl_usd=unrealized_value,
        total_pnl_usd=realized_value + unrealized_value,
    )


def test_chain_rollup_sums_components():
    chains = aggregate_by_chain(
        [
            token("ethereum", "ETH", "100", "50"),
            token("arbitrum", "ARB", "-10", "0"),
            token("ethereum", "USDC", "0", "-20"),
        ]
    )
    assert [c.chain for c in chains] == ["ethereum", "arbitrum"]
    eth = chains[0]
    assert eth.realized_pnl_usd == Decimal("100")
    assert eth.unrealized_pnl_usd == Decimal("30")
    assert eth.total_pnl_usd == Decimal("130")
    # 130 / |130 - 100| * 100
    assert abs(eth.pnl_percentage - Decimal("433.3333")) < Decimal("0.001")


def test_chain_percentage_is_zero_when_only_realized():
    chains = aggregate_by_chain([token("arbitrum", "ARB", "-10", "0")])
    assert chains[0].pnl_percentage == 0


def test_finalize_token_guards_division_by_zero():
    empty = finalize_token(TokenPnL(chain="base", token_address="0x1", token_symbol="X"), Decimal("0"), Decimal("0"), {})
    assert empty.pnl_percentage == 0
    assert empty.unrealized_pnl_usd == 0
    assert empty.has_price is False


def test_finalize_token_percentage_uses_held_cost_plus_realized_magnitude():
    entry = TokenPnL(chain="base", token_address="0x1", token_symbol="X", realized_pnl_usd=Decimal("-20"))
    finalize_token(entry, Decimal("10"), Decimal("8"), {"X": Decimal("10")})
    assert entry.unrealized_pnl_usd == Decimal("20")
    assert entry.total_pnl_usd == Decimal("0")
    entry.realized_pnl_usd = Decimal("20")
    finalize_token(entry, Decimal("10"), Decimal("8"), {"X": Decimal("10")})
    # 40 / (80 + 20) * 100
    assert entry.pnl_percentage == Decimal("40")


def test_price_lookup_falls_back_to_upper_case_symbol():
    entry = finalize_token(
        TokenPnL(chain="base", token_address="0x1", token_symbol="weth"),
        Decimal("1"),
        Decimal("1000"),
        {"WETH": Decimal("1500")},
    )
    assert entry.current_price_usd == Decimal("1500")
    assert entry.has_price is True


def canonical() -> list[Transaction]:
    return [
        Transaction("0x1", "ethereum", 1_000, "buy", "ETH", "0x0", Decimal("2"), Decimal("1800")),
        Transaction("0x2", "ethereum", 2_000, "buy", "ETH", "0x0", Decimal("1"), Decimal("2000")),
        Transaction("0x3", "ethereum", 3_000, "sell", "ETH", "0x0", Decimal("1"), Decimal("2200")),
    ]


def test_exact_summary_tracks_disposed_cost_and_proceeds():
    summary = calculate_pnl(canonical(), {"ETH": "2100"}).summary
    assert summary.current_value_usd == Decimal("4200")
    assert summary.initial_investment_usd == Decimal("5600")
    assert summary.total_pnl_usd == Decimal("800")
    assert summary.total_realized_pnl_usd == Decimal("400")
    assert summary.total_unrealized_pnl_usd == Decimal("400")
    assert abs(summary.total_pnl_percentage - Decimal("14.2857")) < Decimal("0.0001")


def test_approximate_summary_keeps_legacy_estimate():
    summary = calculate_pnl(canonical(), {"ETH": "2100"}, investment_mode="approximate").summary
    # 3800 held cost + |400| realized
    assert summary.initial_investment_usd == Decimal("4200")
    assert summary.total_pnl_usd == Decimal("0")
    assert summary.total_pnl_percentage == 0
    # breakdowns are reported even though they do not add up to the total
    assert summary.total_realized_pnl_usd + summary.total_unrealized_pnl_usd == Decimal("800")


def test_summary_of_no_tokens_is_all_zero():
    for mode in InvestmentMode:
        summary = summarize([], investment_mode=mode)
        assert summary.total_pnl_usd == 0
        assert summary.total_pnl_percentage == 0
        assert summary.initial_investment_usd == 0
