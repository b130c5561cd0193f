"""Shared test fixtures for Tradebook."""

from datetime import date
from decimal import Decimal

import pytest

from tradebook.db.migrations import migrate
from tradebook.db.repository import TradeRepository
from tradebook.db.schema import create_schema
from tradebook.db.seed import seed_trading_accounts
from tradebook.engines.ledger import LedgerService
from tradebook.engines.options import OptionsLifecycle
from tradebook.engines.stock_sales import StockLedgerEngine
from tradebook.engines.wash_sale import WashSaleDetector
from tradebook.models.lots import StockLot

USER = "user-1"


@pytest.fixture
def db_conn(tmp_path):
    """Create a temporary database with full schema."""
    conn = create_schema(tmp_path / "test.db")
    migrate(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(db_conn) -> TradeRepository:
    repo = TradeRepository(db_conn)
    seed_trading_accounts(repo)
    return repo


@pytest.fixture
def ledger(repo) -> LedgerService:
    return LedgerService(repo)


@pytest.fixture
def stocks(repo, ledger) -> StockLedgerEngine:
    return StockLedgerEngine(repo, ledger)


@pytest.fixture
def options(repo, ledger) -> OptionsLifecycle:
    return OptionsLifecycle(repo, ledger)


@pytest.fixture
def detector(repo) -> WashSaleDetector:
    return WashSaleDetector(repo)


def make_lot(
    lot_id: str,
    acquired: date,
    quantity: str,
    cost_per_share_cents: str,
    symbol: str = "ACME",
) -> StockLot:
    qty = Decimal(quantity)
    cps = Decimal(cost_per_share_cents)
    return StockLot(
        id=lot_id,
        user_id=USER,
        symbol=symbol,
        acquired_date=acquired,
        original_quantity=qty,
        remaining_quantity=qty,
        cost_per_share=cps,
        total_cost_basis=int(qty * cps),
    )


@pytest.fixture
def lot_factory():
    return make_lot


@pytest.fixture
def three_lots() -> list[StockLot]:
    """$10 long-term, $30 short-term, $20 short-term lots, oldest first."""
    return [
        make_lot("lot-1", date(2024, 1, 10), "100", "1000"),
        make_lot("lot-2", date(2024, 6, 10), "100", "3000"),
        make_lot("lot-3", date(2025, 1, 10), "100", "2000"),
    ]
