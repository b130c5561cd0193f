"""Wash-sale violation and report models."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from tradebook.models.enums import SecurityKind, WashSaleDirection


class WashSaleViolation(BaseModel):
    """A realized loss matched to a replacement purchase inside the window.

    ``trigger_kind`` is carried explicitly from the record the loss came from
    (a stock disposition or a closed option position); it is never inferred
    from prices or quantities.
    """

    trigger_kind: SecurityKind
    trigger_id: str
    symbol: str
    sale_date: date
    quantity_sold: Decimal
    trigger_units: Decimal
    realized_loss: int  # cents, negative

    replacement_kind: SecurityKind
    replacement_id: str
    replacement_date: date
    replacement_quantity: Decimal
    replacement_units: Decimal

    shares_affected: Decimal
    disallowed_loss: int  # cents, positive
    original_cost_basis: int
    adjusted_cost_basis: int

    @property
    def direction(self) -> WashSaleDirection:
        return WashSaleDirection(
            f"{self.trigger_kind.value}_TO_{self.replacement_kind.value}"
        )

    @property
    def pair_key(self) -> tuple[str, str, str, str]:
        return (
            self.trigger_kind.value,
            self.trigger_id,
            self.replacement_kind.value,
            self.replacement_id,
        )


class WashSaleSummary(BaseModel):
    total_disallowed_losses: int = 0
    total_violations: int = 0
    symbols_affected: list[str] = Field(default_factory=list)
    stock_to_stock_count: int = 0
    stock_to_option_count: int = 0
    option_to_stock_count: int = 0
    option_to_option_count: int = 0


class WashSaleReport(BaseModel):
    violations: list[WashSaleViolation]
    summary: WashSaleSummary


class ApplyResult(BaseModel):
    updated: int
    skipped: int = 0
