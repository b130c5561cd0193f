"""Accounting engines."""

from tradebook.engines.ledger import LedgerService
from tradebook.engines.lot_matcher import LotMatcher
from tradebook.engines.options import OptionsLifecycle
from tradebook.engines.processor import TransactionProcessor
from tradebook.engines.stock_sales import StockLedgerEngine
from tradebook.engines.wash_sale import WashSaleDetector

__all__ = [
    "LedgerService",
    "LotMatcher",
    "OptionsLifecycle",
    "StockLedgerEngine",
    "TransactionProcessor",
    "WashSaleDetector",
]
