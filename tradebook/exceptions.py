"""Custom exceptions for Tradebook."""

from decimal import Decimal


class TradebookError(Exception):
    """Base exception for ledger and lot accounting errors."""


class DataValidationError(TradebookError):
    """Raised when input data fails validation."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error on '{field}': {message}")


class UnbalancedEntryError(DataValidationError):
    """Raised when a journal transaction's debits and credits differ."""

    def __init__(self, debits: int, credits: int):
        self.debits = debits
        self.credits = credits
        super().__init__(
            "lines",
            f"Unbalanced entry: debits={debits} credits={credits}",
        )


class InvalidLegGroupingError(DataValidationError):
    """Raised when legs grouped under one trade span too many days."""

    def __init__(self, trade_num: str | None, span_days: int, max_days: int):
        self.trade_num = trade_num
        self.span_days = span_days
        self.max_days = max_days
        super().__init__(
            "legs",
            f"Legs of trade {trade_num or '<none>'} span {span_days} days "
            f"(max {max_days}); they must be from the same trade",
        )


class AccountNotFoundError(TradebookError):
    """Raised when journal lines reference unknown account codes."""

    def __init__(self, codes: list[str]):
        self.codes = codes
        super().__init__(f"Account codes not found: {', '.join(codes)}")


class LotNotFoundError(TradebookError):
    """Raised when a sale references a lot that isn't an open candidate."""

    def __init__(self, lot_id: str):
        self.lot_id = lot_id
        super().__init__(f"Lot not found: {lot_id}")


class NoMatchingPositionError(TradebookError):
    """Raised when a closing leg has no open position to close."""

    def __init__(self, leg: str, candidates: list[str]):
        self.leg = leg
        self.candidates = candidates
        available = ", ".join(candidates) if candidates else "none"
        super().__init__(
            f"No matching open position for closing {leg}. Available opens: {available}"
        )


class PositionNotFoundError(TradebookError):
    """Raised when a settlement event references an unknown position."""

    def __init__(self, description: str):
        self.description = description
        super().__init__(f"No open position found for {description}")


class InsufficientLotsError(TradebookError):
    """Raised when a sale needs more shares than the open lots hold."""

    def __init__(self, symbol: str, requested: Decimal, available: Decimal):
        self.symbol = symbol
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient shares of {symbol}: "
            f"requested={requested}, available={available}"
        )


class StaleAccountError(TradebookError):
    """Raised when an account changed between read and balance update."""

    def __init__(self, code: str, expected_version: int):
        self.code = code
        self.expected_version = expected_version
        super().__init__(
            f"Account {code} was modified concurrently "
            f"(expected version {expected_version}); retry the posting"
        )
