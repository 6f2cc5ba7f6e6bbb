"""Wallet profit/loss accounting with FIFO, LIFO and average cost basis."""

from .engine import PnLEngine, calculate_pnl
from .ledger import PositionLedger, select_lots
from .models import (
    ChainPnL,
    CostBasisMethod,
    Lot,
    PnLResult,
    PnLSummary,
    TokenPnL,
    Transaction,
    TransactionKind,
)

__all__ = [
    "PnLEngine",
    "calculate_pnl",
    "PositionLedger",
    "select_lots",
    "ChainPnL",
    "CostBasisMethod",
    "Lot",
    "PnLResult",
    "PnLSummary",
    "TokenPnL",
    "Transaction",
    "TransactionKind",
]
