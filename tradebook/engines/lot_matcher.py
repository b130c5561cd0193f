"""Lot matching engine: lot ordering and sale allocation.

Nothing here touches the database. ``StockLedgerEngine`` feeds candidate lots
in and persists the resulting plan.
"""

from datetime import date
from decimal import Decimal

from tradebook.exceptions import DataValidationError, InsufficientLotsError, LotNotFoundError
from tradebook.models.enums import MatchingMethod
from tradebook.models.lots import (
    LotSelection,
    LotSlice,
    SalePlan,
    SalePreview,
    SaleScenario,
    StockLot,
)
from tradebook.money import allocate_pro_rata, round_cents, to_cents

LONG_TERM_DAYS = 365
LOT_CLOSE_EPSILON = Decimal("0.0001")
INSUFFICIENT_TOLERANCE = Decimal("0.01")

DEFAULT_ST_RATE = Decimal("0.35")
DEFAULT_LT_RATE = Decimal("0.15")

PREVIEW_METHODS = [
    MatchingMethod.FIFO,
    MatchingMethod.LIFO,
    MatchingMethod.HIFO,
    MatchingMethod.LOFO,
    MatchingMethod.MIN_TAX,
]


def holding_period_days(acquired: date, disposed: date) -> int:
    return (disposed - acquired).days


def is_long_term(acquired: date, disposed: date) -> bool:
    return holding_period_days(acquired, disposed) >= LONG_TERM_DAYS


class LotMatcher:
    """Orders candidate lots for a matching method and plans a sale across them."""

    def order(
        self,
        lots: list[StockLot],
        method: MatchingMethod,
        sale_price: Decimal | None = None,
        sale_date: date | None = None,
    ) -> list[StockLot]:
        """Return ``lots`` in consumption order for ``method``.

        ``lots`` must already be in acquisition order (oldest first); every
        sort below is stable, so ties fall back to that order.
        """
        match method:
            case MatchingMethod.FIFO:
                return list(lots)
            case MatchingMethod.LIFO:
                return list(reversed(lots))
            case MatchingMethod.HIFO:
                return sorted(lots, key=lambda lot: lot.cost_per_share, reverse=True)
            case MatchingMethod.LOFO:
                return sorted(lots, key=lambda lot: lot.cost_per_share)
            case MatchingMethod.MIN_TAX:
                if sale_price is None or sale_date is None:
                    raise DataValidationError(
                        "method", "MIN_TAX ordering needs the sale price and date"
                    )
                return self._order_min_tax(lots, sale_price, sale_date)
            case _:
                raise DataValidationError(
                    "method", f"{method} has no automatic ordering; pass selected lots"
                )

    @staticmethod
    def _order_min_tax(
        lots: list[StockLot], sale_price: Decimal, sale_date: date
    ) -> list[StockLot]:
        """Losses first (largest first), then long-term gains, then short-term gains."""
        price_cents = sale_price * 100

        def rank(lot: StockLot) -> tuple[int, Decimal]:
            gain = price_cents - lot.cost_per_share
            if gain < 0:
                return (0, gain)
            if is_long_term(lot.acquired_date, sale_date):
                return (1, gain)
            return (2, gain)

        return sorted(lots, key=rank)

    def plan(
        self,
        lots: list[StockLot],
        quantity: Decimal,
        price: Decimal,
        sale_date: date,
        method: MatchingMethod = MatchingMethod.FIFO,
        fees: Decimal = Decimal("0"),
        selected_lots: list[LotSelection] | None = None,
    ) -> SalePlan:
        """Allocate a sale across lots without writing anything.

        Gross proceeds and fees are converted to cents once; the net proceeds
        and the fees are then split across the slices by quantity so the
        slices add up to the sale totals exactly.
        """
        if quantity <= 0:
            raise DataValidationError("quantity", "sale quantity must be positive")

        if method == MatchingMethod.SPECIFIC:
            allocations = self._allocate_specific(lots, quantity, selected_lots)
        else:
            allocations = self._allocate_ordered(
                self.order(lots, method, price, sale_date), quantity
            )

        matched = sum((qty for _, qty in allocations), Decimal("0"))
        fee_cents = to_cents(fees)
        net_proceeds = to_cents(quantity * price) - fee_cents
        weights = [qty for _, qty in allocations]
        proceeds_parts = allocate_pro_rata(net_proceeds, weights)
        fee_parts = allocate_pro_rata(fee_cents, weights)

        slices = []
        for (lot, qty), proceeds, fee in zip(allocations, proceeds_parts, fee_parts):
            cost = round_cents(qty * lot.cost_per_share)
            days = holding_period_days(lot.acquired_date, sale_date)
            slices.append(
                LotSlice(
                    lot_id=lot.id,
                    acquired_date=lot.acquired_date,
                    quantity=qty,
                    cost_basis=cost,
                    proceeds=proceeds,
                    fees=fee,
                    gain_loss=proceeds - cost,
                    holding_period_days=days,
                    is_long_term=days >= LONG_TERM_DAYS,
                )
            )
        return SalePlan(method=method, slices=slices, unmatched_quantity=quantity - matched)

    @staticmethod
    def _allocate_ordered(
        lots: list[StockLot], quantity: Decimal
    ) -> list[tuple[StockLot, Decimal]]:
        remaining = quantity
        allocations = []
        for lot in lots:
            if remaining <= 0:
                break
            take = min(remaining, lot.remaining_quantity)
            if take > 0:
                allocations.append((lot, take))
                remaining -= take
        return allocations

    @staticmethod
    def _allocate_specific(
        lots: list[StockLot],
        quantity: Decimal,
        selected_lots: list[LotSelection] | None,
    ) -> list[tuple[StockLot, Decimal]]:
        """Consume the caller's lots in the order given."""
        if not selected_lots:
            raise DataValidationError("selected_lots", "SPECIFIC matching needs selected lots")
        by_id = {lot.id: lot for lot in lots}
        taken: dict[str, Decimal] = {}
        remaining = quantity
        allocations = []
        for selection in selected_lots:
            lot = by_id.get(selection.lot_id)
            if lot is None:
                raise LotNotFoundError(selection.lot_id)
            if remaining <= 0:
                break
            available = lot.remaining_quantity - taken.get(lot.id, Decimal("0"))
            take = min(remaining, selection.quantity, available)
            if take > 0:
                allocations.append((lot, take))
                taken[lot.id] = taken.get(lot.id, Decimal("0")) + take
                remaining -= take
        return allocations

    @staticmethod
    def check_coverage(symbol: str, quantity: Decimal, plan: SalePlan) -> None:
        """Raise if the plan leaves more than a rounding sliver unmatched."""
        if plan.unmatched_quantity > INSUFFICIENT_TOLERANCE:
            raise InsufficientLotsError(
                symbol, quantity, quantity - plan.unmatched_quantity
            )

    def preview(
        self,
        symbol: str,
        lots: list[StockLot],
        quantity: Decimal,
        price: Decimal,
        sale_date: date,
        fees: Decimal = Decimal("0"),
        st_rate: Decimal = DEFAULT_ST_RATE,
        lt_rate: Decimal = DEFAULT_LT_RATE,
    ) -> SalePreview:
        """Compare every automatic method and pick the lowest estimated tax.

        Ties go to the method listed first (FIFO before LIFO, and so on).
        """
        scenarios = []
        for method in PREVIEW_METHODS:
            plan = self.plan(lots, quantity, price, sale_date, method, fees)
            self.check_coverage(symbol, quantity, plan)
            tax = round_cents(plan.short_term_gain * st_rate + plan.long_term_gain * lt_rate)
            scenarios.append(SaleScenario(method=method, plan=plan, estimated_tax=tax))

        best = min(scenarios, key=lambda s: s.estimated_tax)
        return SalePreview(
            symbol=symbol,
            sale_quantity=quantity,
            scenarios=scenarios,
            best_method=best.method,
        )
