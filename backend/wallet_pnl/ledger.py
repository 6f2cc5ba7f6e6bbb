"""Per-token lot ledger and cost-basis lot selection.

``select_lots`` is the pure strategy used to match a disposal against open
lots; ``PositionLedger`` owns the open lots for a single
``(chain, symbol, address)`` key and applies the allocations it returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Sequence

from .models import ZERO, CostBasisMethod, Lot, Transaction


@dataclass(frozen=True)
class LotAllocation:
    """Quantity drawn from one lot and the unit cost it is charged at."""

    lot: Lot
    quantity: Decimal
    unit_cost_usd: Decimal

    @property
    def cost_basis_usd(self) -> Decimal:
        return self.quantity * self.unit_cost_usd


def pooled_unit_cost(lots: Iterable[Lot]) -> Decimal:
    """Quantity-weighted average unit cost of ``lots`` (0 when empty)."""

    total_qty = ZERO
    total_cost = ZERO
    for lot in lots:
        total_qty += lot.quantity_remaining
        total_cost += lot.quantity_remaining * lot.unit_cost_usd
    if total_qty <= 0:
        return ZERO
    return total_cost / total_qty


def _ordered(lots: Sequence[Lot], method: CostBasisMethod) -> list[Lot]:
    if method == CostBasisMethod.LIFO:
        return sorted(lots, key=lambda l: (-l.acquired_at, l.sequence))
    return sorted(lots, key=lambda l: (l.acquired_at, l.sequence))


def _draw_in_order(lots: Sequence[Lot], quantity_needed: Decimal) -> list[LotAllocation]:
    allocations: list[LotAllocation] = []
    remaining = quantity_needed
    for lot in lots:
        if remaining <= 0:
            break
        take = min(lot.quantity_remaining, remaining)
        if take <= 0:
            continue
        allocations.append(LotAllocation(lot=lot, quantity=take, unit_cost_usd=lot.unit_cost_usd))
        remaining -= take
    return allocations


def _draw_pro_rata(lots: Sequence[Lot], quantity_needed: Decimal) -> list[LotAllocation]:
    open_lots = [lot for lot in _ordered(lots, CostBasisMethod.FIFO) if lot.quantity_remaining > 0]
    available = sum((lot.quantity_remaining for lot in open_lots), ZERO)
    if available <= 0:
        return []
    avg_cost = pooled_unit_cost(open_lots)
    if quantity_needed >= available:
        return [
            LotAllocation(lot=lot, quantity=lot.quantity_remaining, unit_cost_usd=avg_cost)
            for lot in open_lots
        ]
    allocations: list[LotAllocation] = []
    ratio = quantity_needed / available
    drawn = ZERO
    for index, lot in enumerate(open_lots):
        if index == len(open_lots) - 1:
            take = min(lot.quantity_remaining, quantity_needed - drawn)
        else:
            take = min(lot.quantity_remaining, lot.quantity_remaining * ratio)
        if take <= 0:
            continue
        allocations.append(LotAllocation(lot=lot, quantity=take, unit_cost_usd=avg_cost))
        drawn += take
    return allocations


def select_lots(
    open_lots: Sequence[Lot],
    quantity_needed: Decimal,
    method: CostBasisMethod | str,
) -> List[LotAllocation]:
    """Choose which lots a disposal of ``quantity_needed`` consumes.

    FIFO draws oldest lots first and LIFO newest first; lots sharing a
    timestamp keep their insertion order. AVERAGE prices every unit at the
    pooled cost of the lots open right now and draws from each lot pro rata,
    which leaves the average cost of the remainder unchanged.

    Allocations never exceed what is open. The caller treats any shortfall
    as having zero cost basis. Lots are not mutated here.
    """

    method = CostBasisMethod.parse(method)
    if quantity_needed <= 0:
        return []
    if method == CostBasisMethod.AVERAGE:
        return _draw_pro_rata(open_lots, quantity_needed)
    return _draw_in_order(_ordered(open_lots, method), quantity_needed)


class PositionLedger:
    """Open lots for one (chain, symbol, address) token key."""

    def __init__(self, key: tuple[str, str, str], method: CostBasisMethod | str = CostBasisMethod.FIFO):
        self.key = key
        self.method = CostBasisMethod.parse(method)
        self._lots: list[Lot] = []
        self._sequence = 0

    @property
    def open_lots(self) -> list[Lot]:
        return list(self._lots)

    @property
    def quantity_held(self) -> Decimal:
        return sum((lot.quantity_remaining for lot in self._lots), ZERO)

    @property
    def average_cost(self) -> Decimal:
        return pooled_unit_cost(self._lots)

    def _pooled_lot(self) -> Lot:
        first = _ordered(self._lots, CostBasisMethod.FIFO)[0]
        return Lot(
            quantity_remaining=self.quantity_held,
            unit_cost_usd=self.average_cost,
            acquired_at=first.acquired_at,
            source_hash=first.source_hash,
            sequence=first.sequence,
        )

    def acquire(self, tx: Transaction) -> Lot | None:
        if tx.quantity <= 0:
            return None
        lot = Lot(
            quantity_remaining=tx.quantity,
            unit_cost_usd=tx.unit_price_usd,
            acquired_at=tx.timestamp,
            source_hash=tx.hash,
            sequence=self._sequence,
        )
        self._sequence += 1
        self._lots.append(lot)
        return lot

    def dispose(self, tx: Transaction) -> Decimal:
        """Consume lots for ``tx`` and return the cost basis consumed.

        Overselling empties the ledger; units beyond what was held carry no
        cost basis, which covers wallets whose early history was not fetched.

        Under AVERAGE the open lots are first merged into one pooled lot, so
        the disposal is a single subtraction and selling everything held
        leaves exactly zero.
        """

        if self.method == CostBasisMethod.AVERAGE and len(self._lots) > 1:
            self._lots = [self._pooled_lot()]
        allocations = select_lots(self._lots, tx.quantity, self.method)
        cost_basis = ZERO
        for allocation in allocations:
            allocation.lot.quantity_remaining -= allocation.quantity
            cost_basis += allocation.cost_basis_usd
        self._lots = [lot for lot in self._lots if lot.quantity_remaining > 0]
        return cost_basis


__all__ = ["LotAllocation", "PositionLedger", "pooled_unit_cost", "select_lots"]
