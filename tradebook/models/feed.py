"""Normalized feed records and processing summaries."""

from datetime import date
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator

from tradebook.models.enums import MatchingMethod
from tradebook.models.lots import LotSelection
from tradebook.models.options import (
    BuyToClose,
    BuyToOpen,
    OptionSettlement,
    SellToClose,
    SellToOpen,
)


class _StockTrade(BaseModel):
    id: str
    trade_date: date
    symbol: str
    quantity: Decimal = Field(gt=0)
    price: Decimal = Field(ge=0)
    fees: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator("symbol")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()


class StockBuy(_StockTrade):
    kind: Literal["STOCK_BUY"] = "STOCK_BUY"


class StockSell(_StockTrade):
    kind: Literal["STOCK_SELL"] = "STOCK_SELL"
    method: MatchingMethod = MatchingMethod.FIFO
    selected_lots: list[LotSelection] | None = None


FeedRecord = Annotated[
    Union[StockBuy, StockSell, BuyToOpen, SellToOpen, BuyToClose, SellToClose, OptionSettlement],
    Field(discriminator="kind"),
]


class ProcessSummary(BaseModel):
    lots_created: int = 0
    dispositions: int = 0
    positions_opened: int = 0
    positions_closed: int = 0
    settlements: int = 0
    journal_transactions: int = 0
    realized_gain_loss: int = 0  # cents
