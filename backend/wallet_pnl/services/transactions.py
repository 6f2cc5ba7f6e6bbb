"""Transaction sources and JSON decoding for wallet transfer records."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol

from wallet_pnl.models import Transaction
from wallet_pnl.services.cache import TTLCache

logger = logging.getLogger(__name__)


class TransactionSourceError(RuntimeError):
    """Raised when transactions cannot be read or decoded."""


class TransactionSource(Protocol):
    async def fetch_transactions(self, wallet_address: str, chain: str) -> list[Transaction]:
        ...


def transaction_from_dict(raw: Mapping[str, Any]) -> Transaction:
    """Build a ``Transaction`` from a JSON record.

    Accepts both ``hash``/``tx_hash``, ``kind``/``type`` and
    ``unit_price_usd``/``price_usd`` spellings. ``total_value_usd`` is
    derived and ignored on input.
    """

    try:
        return Transaction(
            hash=str(raw.get("hash") or raw.get("tx_hash") or ""),
            chain=str(raw["chain"]),
            timestamp=int(raw["timestamp"]),
            kind=raw.get("kind") or raw["type"],
            token_symbol=str(raw["token_symbol"]),
            token_address=str(raw.get("token_address") or ""),
            quantity=raw["quantity"],
            unit_price_usd=raw.get("unit_price_usd", raw.get("price_usd", 0)),
        )
    except KeyError as exc:
        raise TransactionSourceError(f"Transaction record missing field {exc.args[0]!r}") from exc


def load_transactions(path: str | Path) -> list[Transaction]:
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise TransactionSourceError(f"Cannot read transactions from {path}: {exc}") from exc
    if isinstance(payload, dict):
        payload = payload.get("transactions", [])
    if not isinstance(payload, list):
        raise TransactionSourceError(f"{path} does not contain a list of transactions")
    transactions = [transaction_from_dict(item) for item in payload]
    logger.info("Loaded %d transactions from %s", len(transactions), path)
    return transactions


class InMemoryTransactionSource:
    """Serves a fixed set of transactions, filtered by chain."""

    def __init__(self, transactions: Iterable[Transaction]):
        self._transactions = list(transactions)

    @property
    def transactions(self) -> list[Transaction]:
        return list(self._transactions)

    async def fetch_transactions(self, wallet_address: str, chain: str) -> list[Transaction]:
        return [tx for tx in self._transactions if tx.chain.lower() == chain.lower()]


class JsonFileTransactionSource(InMemoryTransactionSource):
    """Transactions exported to a JSON file (a list, or ``{"transactions": [...]}``)."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        super().__init__(load_transactions(self.path))


class CachingTransactionSource:
    """Caches fetched transactions per wallet and chain for ``ttl_seconds``."""

    def __init__(self, delegate: TransactionSource, *, ttl_seconds: float = 600):
        self.delegate = delegate
        self._cache = TTLCache(ttl_seconds)

    async def fetch_transactions(self, wallet_address: str, chain: str) -> list[Transaction]:
        key = (wallet_address.lower(), chain.lower())
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)
        transactions = await self.delegate.fetch_transactions(wallet_address, chain)
        if transactions:
            self._cache.set(key, list(transactions))
        return transactions

    def clear(self) -> None:
        self._cache.clear()

    def stats(self) -> dict[str, int]:
        return self._cache.stats()


__all__ = [
    "TransactionSource",
    "TransactionSourceError",
    "InMemoryTransactionSource",
    "JsonFileTransactionSource",
    "CachingTransactionSource",
    "transaction_from_dict",
    "load_transactions",
]
