"""Database layer for Tradebook."""

from tradebook.db.repository import TradeRepository
from tradebook.db.schema import create_schema
from tradebook.db.seed import seed_trading_accounts

__all__ = ["TradeRepository", "create_schema", "seed_trading_accounts"]
