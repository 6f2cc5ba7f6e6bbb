"""Domain models used by the wallet P&L engine."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation, getcontext
from enum import Enum
from typing import Any, Optional

getcontext().prec = 28

ZERO = Decimal("0")


class InvalidTransactionError(ValueError):
    """Raised when a transaction violates the engine's input contract."""


class CostBasisMethodError(ValueError):
    """Raised for an unrecognized cost-basis method."""


class CostBasisMethod(str, Enum):
    FIFO = "fifo"
    LIFO = "lifo"
    AVERAGE = "avg"

    @classmethod
    def parse(cls, value: "CostBasisMethod | str") -> "CostBasisMethod":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if normalized in {"average", "average_cost"}:
            normalized = cls.AVERAGE.value
        try:
            return cls(normalized)
        except ValueError as exc:
            allowed = ", ".join(m.value for m in cls)
            raise CostBasisMethodError(
                f"Unknown cost basis method {value!r}; expected one of {allowed}"
            ) from exc


class TransactionKind(str, Enum):
    BUY = "buy"
    SELL = "sell"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"

    @property
    def is_acquisition(self) -> bool:
        return self in (TransactionKind.BUY, TransactionKind.TRANSFER_IN)

    @property
    def is_disposal(self) -> bool:
        return not self.is_acquisition


def to_decimal(value: Any) -> Decimal:
    """Convert ints, floats and strings to ``Decimal`` without float noise.

    Raises ``ValueError`` for text that is not a number and for NaN or
    infinite values.
    """

    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"{value!r} is not a number") from exc
    if not result.is_finite():
        raise ValueError(f"{value!r} is not a finite number")
    return result


@dataclass(frozen=True)
class Transaction:
    """A normalized transfer or trade event for one token on one chain."""

    hash: str
    chain: str
    timestamp: int
    kind: TransactionKind
    token_symbol: str
    token_address: str
    quantity: Decimal
    unit_price_usd: Decimal
    realized_pnl_usd: Optional[Decimal] = None

    def __post_init__(self) -> None:
        try:
            kind = TransactionKind(str(getattr(self.kind, "value", self.kind)).lower())
        except ValueError as exc:
            raise InvalidTransactionError(
                f"Transaction {self.hash}: unknown kind {self.kind!r}"
            ) from exc
        try:
            quantity = to_decimal(self.quantity)
            price = to_decimal(self.unit_price_usd)
        except ValueError as exc:
            raise InvalidTransactionError(f"Transaction {self.hash}: {exc}") from exc
        if quantity < 0:
            raise InvalidTransactionError(f"Transaction {self.hash}: quantity must be >= 0")
        if price < 0:
            raise InvalidTransactionError(f"Transaction {self.hash}: unit_price_usd must be >= 0")
        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "quantity", quantity)
        object.__setattr__(self, "unit_price_usd", price)
        object.__setattr__(self, "timestamp", int(self.timestamp))
        if self.realized_pnl_usd is not None:
            object.__setattr__(self, "realized_pnl_usd", to_decimal(self.realized_pnl_usd))

    @property
    def total_value_usd(self) -> Decimal:
        return self.quantity * self.unit_price_usd

    @property
    def token_key(self) -> tuple[str, str, str]:
        """Ledger key; case-insensitive across chain, symbol and address."""

        return (self.chain.lower(), self.token_symbol.lower(), self.token_address.lower())

    def with_price(self, unit_price_usd: Decimal) -> "Transaction":
        return replace(self, unit_price_usd=to_decimal(unit_price_usd))

    def with_realized_pnl(self, realized_pnl_usd: Decimal | None) -> "Transaction":
        return replace(self, realized_pnl_usd=realized_pnl_usd)


@dataclass
class Lot:
    """A slice of acquired quantity that has not been fully disposed."""

    quantity_remaining: Decimal
    unit_cost_usd: Decimal
    acquired_at: int
    source_hash: str
    sequence: int = 0

    @property
    def cost_total(self) -> Decimal:
        return self.quantity_remaining * self.unit_cost_usd


@dataclass
class TokenPnL:
    """Per-token aggregate, finalized once current prices are applied."""

    chain: str
    token_address: str
    token_symbol: str
    quantity_held: Decimal = ZERO
    average_buy_price_usd: Decimal = ZERO
    current_price_usd: Decimal = ZERO
    realized_pnl_usd: Decimal = ZERO
    unrealized_pnl_usd: Decimal = ZERO
    total_pnl_usd: Decimal = ZERO
    pnl_percentage: Decimal = ZERO
    total_sale_proceeds_usd: Decimal = ZERO
    cost_basis_disposed_usd: Decimal = ZERO
    has_price: bool = False

    @property
    def cost_basis_usd(self) -> Decimal:
        return self.quantity_held * self.average_buy_price_usd

    @property
    def current_value_usd(self) -> Decimal:
        return self.quantity_held * self.current_price_usd


@dataclass
class ChainPnL:
    chain: str
    realized_pnl_usd: Decimal = ZERO
    unrealized_pnl_usd: Decimal = ZERO
    total_pnl_usd: Decimal = ZERO
    pnl_percentage: Decimal = ZERO


@dataclass
class PnLSummary:
    total_realized_pnl_usd: Decimal = ZERO
    total_unrealized_pnl_usd: Decimal = ZERO
    total_pnl_usd: Decimal = ZERO
    total_pnl_percentage: Decimal = ZERO
    initial_investment_usd: Decimal = ZERO
    current_value_usd: Decimal = ZERO


@dataclass
class ResultMetadata:
    """Pass-through bookkeeping attached to every result."""

    last_updated: int
    chains_queried: list[str] = field(default_factory=list)
    data_sources: list[str] = field(default_factory=list)
    cost_basis_method: CostBasisMethod = CostBasisMethod.FIFO
    tokens_missing_price: int = 0
    missing_price_symbols: list[str] = field(default_factory=list)


@dataclass
class PnLResult:
    summary: PnLSummary
    by_chain: list[ChainPnL]
    by_token: list[TokenPnL]
    transactions: list[Transaction]
    metadata: ResultMetadata


__all__ = [
    "ZERO",
    "InvalidTransactionError",
    "CostBasisMethodError",
    "CostBasisMethod",
    "TransactionKind",
    "to_decimal",
    "Transaction",
    "Lot",
    "TokenPnL",
    "ChainPnL",
    "PnLSummary",
    "ResultMetadata",
    "PnLResult",
]
