"""Option legs, settlement events, and option positions.

Legs arrive from the upstream feed already normalized. Each action is its
own variant, discriminated by ``kind``, so an unknown or malformed action is
rejected when the record is validated rather than inside an engine.
"""

import re
from datetime import date
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, model_validator

from tradebook.models.enums import (
    LegKind,
    OptionType,
    PositionStatus,
    PositionType,
)
from tradebook.money import round_cents

CONTRACT_MULTIPLIER = 100

_TICKER_RE = re.compile(r"^([A-Z]{1,5})")


def extract_underlying(option_symbol: str) -> str:
    """Return the underlying ticker of an option symbol.

    Handles OCC-style ``"AAPL  250117C00150000"`` and descriptive
    ``"AAPL Jan 17 2025 $150 Call"`` forms.
    """
    if not option_symbol:
        return ""
    first = option_symbol.strip().split()[0]
    match = _TICKER_RE.match(first)
    return match.group(1) if match else first.upper()


class _OptionContract(BaseModel):
    id: str
    trade_date: date
    symbol: str
    underlying: str | None = None
    option_type: OptionType
    strike: Decimal
    expiration: date | None = None

    @model_validator(mode="after")
    def _fill_underlying(self):
        self.underlying = (self.underlying or extract_underlying(self.symbol)).upper()
        return self

    def contract_key(self) -> tuple[str, Decimal, OptionType]:
        return (self.underlying or "", self.strike, self.option_type)

    def describe(self) -> str:
        expiry = f" {self.expiration.isoformat()}" if self.expiration else ""
        return f"{self.underlying} {self.strike} {self.option_type.value}{expiry}"


class _OptionLeg(_OptionContract):
    quantity: Decimal = Field(gt=0)
    price: Decimal = Field(ge=0)
    fees: Decimal = Field(default=Decimal("0"), ge=0)
    amount: Decimal | None = None
    strategy: str | None = None
    trade_num: str | None = None

    @model_validator(mode="after")
    def _fill_amount(self):
        if self.amount is None:
            self.amount = self.price * self.quantity * CONTRACT_MULTIPLIER
        return self

    @property
    def is_opening(self) -> bool:
        return self.kind in (LegKind.BUY_TO_OPEN, LegKind.SELL_TO_OPEN)


class BuyToOpen(_OptionLeg):
    kind: Literal["BUY_TO_OPEN"] = "BUY_TO_OPEN"


class SellToOpen(_OptionLeg):
    kind: Literal["SELL_TO_OPEN"] = "SELL_TO_OPEN"


class BuyToClose(_OptionLeg):
    kind: Literal["BUY_TO_CLOSE"] = "BUY_TO_CLOSE"


class SellToClose(_OptionLeg):
    kind: Literal["SELL_TO_CLOSE"] = "SELL_TO_CLOSE"


OpeningLeg = BuyToOpen | SellToOpen
ClosingLeg = BuyToClose | SellToClose
OptionLeg = Annotated[
    Union[BuyToOpen, SellToOpen, BuyToClose, SellToClose],
    Field(discriminator="kind"),
]


class OptionSettlement(_OptionContract):
    """Expiration, exercise, or assignment of an open position.

    ``quantity`` of ``None`` settles every remaining contract.
    """

    kind: Literal["EXPIRATION", "EXERCISE", "ASSIGNMENT"]
    quantity: Decimal | None = Field(default=None, gt=0)


class OptionPosition(BaseModel):
    id: str
    user_id: str
    symbol: str
    underlying: str
    option_type: OptionType | None = None
    strike: Decimal | None = None
    expiration: date | None = None
    position_type: PositionType
    quantity: Decimal
    remaining_quantity: Decimal
    cost_basis: int  # cents
    open_price: Decimal
    open_fees: Decimal = Decimal("0")
    open_date: date
    status: PositionStatus = PositionStatus.OPEN
    close_price: Decimal | None = None
    close_fees: Decimal | None = None
    close_date: date | None = None
    proceeds: int | None = None
    realized_pl: int | None = None
    strategy: str | None = None
    trade_num: str | None = None
    open_txn_id: str | None = None
    close_txn_id: str | None = None

    @property
    def share_equivalents(self) -> Decimal:
        return self.quantity * CONTRACT_MULTIPLIER

    def contract_key(self) -> tuple[str, Decimal | None, OptionType | None]:
        return (self.underlying, self.strike, self.option_type)

    def matches(self, contract: _OptionContract) -> bool:
        """Same series as ``contract``. Expirations are compared when both are known."""
        if self.contract_key() != contract.contract_key():
            return False
        return (
            self.expiration is None
            or contract.expiration is None
            or self.expiration == contract.expiration
        )

    def describe(self) -> str:
        opt = self.option_type.value if self.option_type else "STOCK"
        return (
            f"{self.position_type.value} {self.underlying} {self.strike} {opt} "
            f"x{self.remaining_quantity}"
        )

    def cost_consumed_through(self, remaining_after: Decimal) -> int:
        """Cost basis consumed once only ``remaining_after`` contracts remain.

        Rounded per call; the final close (``remaining_after == 0``) returns
        the whole cost basis so partial closes never drift.
        """
        if remaining_after <= 0:
            return self.cost_basis
        closed = self.quantity - remaining_after
        return round_cents(Decimal(self.cost_basis) * closed / self.quantity)


class CloseResult(BaseModel):
    position: OptionPosition
    journal_transaction_id: str | None = None
    proceeds: int
    original_cost: int
    realized_pl: int

    @property
    def is_gain(self) -> bool:
        return self.realized_pl > 0


class TradeCommitResult(BaseModel):
    trade_num: str | None = None
    strategy: str | None = None
    opened: list[OptionPosition] = Field(default_factory=list)
    closed: list[CloseResult] = Field(default_factory=list)
