"""Stock lot, disposition, and sale-matching models."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from tradebook.models.enums import LotStatus, MatchingMethod


class StockLot(BaseModel):
    id: str
    user_id: str
    symbol: str
    acquired_date: date
    original_quantity: Decimal = Field(gt=0)
    remaining_quantity: Decimal = Field(ge=0)
    cost_per_share: Decimal  # cents
    total_cost_basis: int  # cents
    status: LotStatus = LotStatus.OPEN
    wash_sale_adjustment: int = 0
    wash_sale_disallowed: int = 0
    wash_sale_source_id: str | None = None
    source_txn_id: str | None = None


class Disposition(BaseModel):
    id: str
    user_id: str
    lot_id: str
    sale_txn_id: str
    disposed_date: date
    quantity_disposed: Decimal
    proceeds_per_share: Decimal  # cents
    total_proceeds: int
    fees_allocated: int
    cost_basis_disposed: int
    realized_gain_loss: int
    holding_period_days: int
    is_long_term: bool
    matching_method: MatchingMethod
    is_wash_sale: bool = False
    wash_sale_loss: int = 0


class LotSelection(BaseModel):
    """A caller-chosen lot for specific identification."""

    lot_id: str
    quantity: Decimal = Field(gt=0)


class LotSlice(BaseModel):
    """One planned consumption of a lot, before anything is written."""

    lot_id: str
    acquired_date: date
    quantity: Decimal
    cost_basis: int
    proceeds: int
    fees: int
    gain_loss: int
    holding_period_days: int
    is_long_term: bool


class SalePlan(BaseModel):
    method: MatchingMethod
    slices: list[LotSlice]
    unmatched_quantity: Decimal = Decimal("0")

    @property
    def total_cost_basis(self) -> int:
        return sum(s.cost_basis for s in self.slices)

    @property
    def short_term_gain(self) -> int:
        return sum(s.gain_loss for s in self.slices if not s.is_long_term)

    @property
    def long_term_gain(self) -> int:
        return sum(s.gain_loss for s in self.slices if s.is_long_term)


class SaleScenario(BaseModel):
    """A what-if result for one matching method."""

    method: MatchingMethod
    plan: SalePlan
    estimated_tax: int


class SalePreview(BaseModel):
    symbol: str
    sale_quantity: Decimal
    scenarios: list[SaleScenario]
    best_method: MatchingMethod


class SaleMatchResult(BaseModel):
    """Outcome of a committed sale."""

    sale_txn_id: str
    method: MatchingMethod
    dispositions: list[Disposition]
    total_proceeds: int
    total_cost_basis: int
    short_term_gain: int
    long_term_gain: int
    journal_transaction_id: str | None = None

    @property
    def total_gain_loss(self) -> int:
        return self.short_term_gain + self.long_term_gain
