"""Data models for Tradebook."""

from tradebook.models.enums import (
    AccountType,
    EntrySide,
    LegKind,
    LotStatus,
    MatchingMethod,
    OptionType,
    PositionStatus,
    PositionType,
    SecurityKind,
    SettlementKind,
    WashSaleDirection,
)
from tradebook.models.feed import FeedRecord, ProcessSummary, StockBuy, StockSell
from tradebook.models.ledger import (
    Account,
    AccountBalanceLine,
    IntegrityReport,
    JournalLine,
    JournalTransaction,
    LedgerEntry,
)
from tradebook.models.lots import (
    Disposition,
    LotSelection,
    LotSlice,
    SaleMatchResult,
    SalePlan,
    SalePreview,
    SaleScenario,
    StockLot,
)
from tradebook.models.options import (
    BuyToClose,
    BuyToOpen,
    CloseResult,
    OptionLeg,
    OptionPosition,
    OptionSettlement,
    SellToClose,
    SellToOpen,
    TradeCommitResult,
)
from tradebook.models.wash_sale import (
    ApplyResult,
    WashSaleReport,
    WashSaleSummary,
    WashSaleViolation,
)

__all__ = [
    "Account",
    "AccountBalanceLine",
    "AccountType",
    "ApplyResult",
    "BuyToClose",
    "BuyToOpen",
    "CloseResult",
    "Disposition",
    "EntrySide",
    "FeedRecord",
    "IntegrityReport",
    "JournalLine",
    "JournalTransaction",
    "LedgerEntry",
    "LegKind",
    "LotSelection",
    "LotSlice",
    "LotStatus",
    "MatchingMethod",
    "OptionLeg",
    "OptionPosition",
    "OptionSettlement",
    "OptionType",
    "PositionStatus",
    "PositionType",
    "ProcessSummary",
    "SaleMatchResult",
    "SalePlan",
    "SalePreview",
    "SaleScenario",
    "SecurityKind",
    "SellToClose",
    "SellToOpen",
    "SettlementKind",
    "StockBuy",
    "StockLot",
    "StockSell",
    "TradeCommitResult",
    "WashSaleDirection",
    "WashSaleReport",
    "WashSaleSummary",
    "WashSaleViolation",
]
