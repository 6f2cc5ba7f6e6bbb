"""Transaction decoding and source tests."""

from __future__ import annotations

import json
from decimal import Decimal

import pytest

from wallet_pnl.models import TransactionKind
from wallet_pnl.services.transactions import (
    CachingTransactionSource,
    InMemoryTransactionSource,
    JsonFileTransactionSource,
    TransactionSourceError,
    load_transactions,
    transaction_from_dict,
)


def test_transaction_from_dict_accepts_both_spellings():
    first = transaction_from_dict(
        {"tx_hash": "0x1", "chain": "base", "timestamp": 5, "type": "transfer_in",
         "token_symbol": "USDC", "token_address": "0xa", "quantity": "10", "price_usd": "1"}
    )
    second = transaction_from_dict(
        {"hash": "0x1", "chain": "base", "timestamp": 5, "kind": "transfer_in",
         "token_symbol": "USDC", "token_address": "0xa", "quantity": 10, "unit_price_usd": 1}
    )
    assert first == second
    assert first.kind is TransactionKind.TRANSFER_IN
    assert first.total_value_usd == Decimal("10")


def test_transaction_from_dict_reports_missing_field():
    with pytest.raises(TransactionSourceError, match="quantity"):
        transaction_from_dict({"hash": "0x1", "chain": "base", "timestamp": 5, "type": "buy", "token_symbol": "X"})


def test_load_transactions_accepts_plain_list(tmp_path):
    path = tmp_path / "txs.json"
    path.write_text(json.dumps([
        {"hash": "0x1", "chain": "base", "timestamp": 5, "type": "buy", "token_symbol": "X", "quantity": 1}
    ]))
    [tx] = load_transactions(path)
    assert tx.unit_price_usd == Decimal("0")
    assert tx.token_address == ""


def test_load_transactions_rejects_non_list(tmp_path):
    path = tmp_path / "txs.json"
    path.write_text(json.dumps({"transactions": "nope"}))
    with pytest.raises(TransactionSourceError):
        load_transactions(path)


@pytest.mark.asyncio
async def test_json_file_source_filters_by_chain(tmp_path):
    path = tmp_path / "txs.json"
    path.write_text(json.dumps([
        {"hash": "0x1", "chain": "Base", "timestamp": 5, "type": "buy", "token_symbol": "X", "quantity": 1},
        {"hash": "0x2", "chain": "arbitrum", "timestamp": 6, "type": "buy", "token_symbol": "Y", "quantity": 1},
    ]))
    source = JsonFileTransactionSource(path)
    assert [tx.hash for tx in await source.fetch_transactions("0xw", "base")] == ["0x1"]


@pytest.mark.asyncio
async def test_caching_source_fetches_once_per_wallet_and_chain():
    class Counting(InMemoryTransactionSource):
        calls = 0

        async def fetch_transactions(self, wallet_address, chain):
            Counting.calls += 1
            return await super().fetch_transactions(wallet_address, chain)

    tx = transaction_from_dict(
        {"hash": "0x1", "chain": "base", "timestamp": 5, "type": "buy", "token_symbol": "X", "quantity": 1}
    )
    source = CachingTransactionSource(Counting([tx]))
    await source.fetch_transactions("0xW", "base")
    await source.fetch_transactions("0xw", "BASE")
    assert Counting.calls == 1
    assert source.stats()["hits"] == 1
