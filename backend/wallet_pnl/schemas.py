"""Pydantic schemas for serializing P&L results."""

from __future__ import annotations

from pydantic import BaseModel, Field

from wallet_pnl.models import PnLResult, TransactionKind


class TransactionSchema(BaseModel):
    tx_hash: str
    chain: str
    timestamp: int = Field(..., description="Milliseconds since epoch")
    type: TransactionKind
    token_symbol: str
    token_address: str
    quantity: float
    price_usd: float
    total_value_usd: float
    realized_pnl_usd: float | None = None


class TokenPnLSchema(BaseModel):
    token_symbol: str
    token_address: str
    chain: str
    quantity_held: float
    average_buy_price_usd: float
    current_price_usd: float
    realized_pnl_usd: float
    unrealized_pnl_usd: float
    total_pnl_usd: float
    pnl_percentage: float
    total_sale_proceeds_usd: float
    has_price: bool


class ChainPnLSchema(BaseModel):
    chain: str
    realized_pnl_usd: float
    unrealized_pnl_usd: float
    total_pnl_usd: float
    pnl_percentage: float


class PnLSummarySchema(BaseModel):
    total_realized_pnl_usd: float
    total_unrealized_pnl_usd: float
    total_pnl_usd: float
    total_pnl_percentage: float
    initial_investment_usd: float
    current_value_usd: float


class ResultMetadataSchema(BaseModel):
    last_updated: int
    chains_queried: list[str]
    data_sources: list[str]
    cost_basis_method: str
    tokens_missing_price: int = 0
    missing_price_symbols: list[str] = Field(default_factory=list)


class PnLResultSchema(BaseModel):
    summary: PnLSummarySchema
    by_chain: list[ChainPnLSchema]
    by_token: list[TokenPnLSchema]
    transactions: list[TransactionSchema]
    metadata: ResultMetadataSchema

    class Config:
        json_schema_extra = {
            "example": {
                "summary": {
                    "total_realized_pnl_usd": 400.0,
                    "total_unrealized_pnl_usd": 400.0,
                    "total_pnl_usd": 800.0,
                    "total_pnl_percentage": 14.29,
                    "initial_investment_usd": 5600.0,
                    "current_value_usd": 4200.0,
                },
                "by_chain": [],
                "by_token": [],
                "transactions": [],
                "metadata": {
                    "last_updated": 1735689600000,
                    "chains_queried": ["ethereum"],
                    "data_sources": ["etherscan", "defillama", "coingecko"],
                    "cost_basis_method": "fifo",
                    "tokens_missing_price": 0,
                    "missing_price_symbols": [],
                },
            }
        }

    @classmethod
    def from_result(cls, result: PnLResult) -> "PnLResultSchema":
        return cls(
            summary=PnLSummarySchema(
                total_realized_pnl_usd=float(result.summary.total_realized_pnl_usd),
                total_unrealized_pnl_usd=float(result.summary.total_unrealized_pnl_usd),
                total_pnl_usd=float(result.summary.total_pnl_usd),
                total_pnl_percentage=float(result.summary.total_pnl_percentage),
                initial_investment_usd=float(result.summary.initial_investment_usd),
                current_value_usd=float(result.summary.current_value_usd),
            ),
            by_chain=[
                ChainPnLSchema(
                    chain=chain.chain,
                    realized_pnl_usd=float(chain.realized_pnl_usd),
                    unrealized_pnl_usd=float(chain.unrealized_pnl_usd),
                    total_pnl_usd=float(chain.total_pnl_usd),
                    pnl_percentage=float(chain.pnl_percentage),
                )
                for chain in result.by_chain
            ],
            by_token=[
                TokenPnLSchema(
                    token_symbol=token.token_symbol,
                    token_address=token.token_address,
                    chain=token.chain,
                    quantity_held=float(token.quantity_held),
                    average_buy_price_usd=float(token.average_buy_price_usd),
                    current_price_usd=float(token.current_price_usd),
                    realized_pnl_usd=float(token.realized_pnl_usd),
                    unrealized_pnl_usd=float(token.unrealized_pnl_usd),
                    total_pnl_usd=float(token.total_pnl_usd),
                    pnl_percentage=float(token.pnl_percentage),
                    total_sale_proceeds_usd=float(token.total_sale_proceeds_usd),
                    has_price=token.has_price,
                )
                for token in result.by_token
            ],
            transactions=[
                TransactionSchema(
                    tx_hash=tx.hash,
                    chain=tx.chain,
                    timestamp=tx.timestamp,
                    type=tx.kind,
                    token_symbol=tx.token_symbol,
                    token_address=tx.token_address,
                    quantity=float(tx.quantity),
                    price_usd=float(tx.unit_price_usd),
                    total_value_usd=float(tx.total_value_usd),
                    realized_pnl_usd=float(tx.realized_pnl_usd) if tx.realized_pnl_usd is not None else None,
                )
                for tx in result.transactions
            ],
            metadata=ResultMetadataSchema(
                last_updated=result.metadata.last_updated,
                chains_queried=list(result.metadata.chains_queried),
                data_sources=list(result.metadata.data_sources),
                cost_basis_method=result.metadata.cost_basis_method.value,
                tokens_missing_price=result.metadata.tokens_missing_price,
                missing_price_symbols=list(result.metadata.missing_price_symbols),
            ),
        )


__all__ = [
    "TransactionSchema",
    "TokenPnLSchema",
    "ChainPnLSchema",
    "PnLSummarySchema",
    "ResultMetadataSchema",
    "PnLResultSchema",
]
