"""Enumerations for Tradebook."""

from enum import StrEnum


class AccountType(StrEnum):
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class EntrySide(StrEnum):
    DEBIT = "D"
    CREDIT = "C"


class LotStatus(StrEnum):
    OPEN = "OPEN"
    PARTIAL = "PARTIAL"
    CLOSED = "CLOSED"


class MatchingMethod(StrEnum):
    FIFO = "FIFO"
    LIFO = "LIFO"
    HIFO = "HIFO"
    LOFO = "LOFO"
    MIN_TAX = "MIN_TAX"
    SPECIFIC = "SPECIFIC"


class OptionType(StrEnum):
    CALL = "CALL"
    PUT = "PUT"


class PositionType(StrEnum):
    LONG = "LONG"
    SHORT = "SHORT"


class PositionStatus(StrEnum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class LegKind(StrEnum):
    BUY_TO_OPEN = "BUY_TO_OPEN"
    SELL_TO_OPEN = "SELL_TO_OPEN"
    BUY_TO_CLOSE = "BUY_TO_CLOSE"
    SELL_TO_CLOSE = "SELL_TO_CLOSE"


class SettlementKind(StrEnum):
    EXPIRATION = "EXPIRATION"
    EXERCISE = "EXERCISE"
    ASSIGNMENT = "ASSIGNMENT"


class SecurityKind(StrEnum):
    """Origin of a wash-sale trigger or replacement."""

    STOCK = "STOCK"
    OPTION = "OPTION"


class WashSaleDirection(StrEnum):
    STOCK_TO_STOCK = "STOCK_TO_STOCK"
    STOCK_TO_OPTION = "STOCK_TO_OPTION"
    OPTION_TO_STOCK = "OPTION_TO_STOCK"
    OPTION_TO_OPTION = "OPTION_TO_OPTION"
