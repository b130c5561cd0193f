"""Wash-sale detection and basis adjustment.

A loss is a wash sale when substantially identical securities are bought
within 30 days before or after the sale. The loss is disallowed in
proportion to the replacement size and added to the replacement's basis.

Triggers are stock dispositions at a loss and closed option positions with
a realized loss. Replacements are the other stock lots and long option
positions on the same underlying. Option quantities are compared in share
equivalents (contracts x 100).
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from tradebook.db.repository import TradeRepository
from tradebook.exceptions import DataValidationError, LotNotFoundError
from tradebook.models.enums import (
    PositionStatus,
    PositionType,
    SecurityKind,
    WashSaleDirection,
)
from tradebook.models.lots import StockLot
from tradebook.models.options import OptionPosition
from tradebook.models.wash_sale import (
    ApplyResult,
    WashSaleReport,
    WashSaleSummary,
    WashSaleViolation,
)
from tradebook.money import format_cents, round_cents

logger = logging.getLogger(__name__)

WINDOW_DAYS = 30


@dataclass
class _Trigger:
    kind: SecurityKind
    id: str
    symbol: str
    sale_date: date
    quantity: Decimal
    units: Decimal
    loss: int
    excluded_id: str


@dataclass
class _Replacement:
    kind: SecurityKind
    id: str
    acquired: date
    quantity: Decimal
    units: Decimal
    cost_basis: int


def in_window(sale_date: date, acquired: date) -> bool:
    return abs((acquired - sale_date).days) <= WINDOW_DAYS


class WashSaleDetector:
    """Scans a user's realized losses for wash sales and applies adjustments."""

    def __init__(self, repo: TradeRepository):
        self.repo = repo

    def detect_wash_sales(self, user_id: str) -> WashSaleReport:
        """Find wash-sale violations for ``user_id`` without changing anything.

        Pairs already applied are left out of the report, and the loss they
        consumed is no longer available to other replacements of the same
        trigger, so a re-scan after applying reports nothing new.
        """
        lots = self.repo.get_lots(user_id)
        positions = self.repo.get_positions(user_id)
        applied_pairs = set()
        applied_by_trigger: dict[tuple[str, str], int] = {}
        for row in self.repo.get_wash_sale_adjustments(user_id):
            applied_pairs.add(
                (row["trigger_kind"], row["trigger_id"], row["replacement_kind"], row["replacement_id"])
            )
            trigger_key = (row["trigger_kind"], row["trigger_id"])
            applied_by_trigger[trigger_key] = (
                applied_by_trigger.get(trigger_key, 0) + row["disallowed_loss"]
            )

        violations = []
        for trigger in self._triggers(user_id, lots, positions):
            remaining = abs(trigger.loss) - applied_by_trigger.get(
                (trigger.kind.value, trigger.id), 0
            )
            for replacement in self._replacements(trigger, lots, positions):
                if remaining <= 0:
                    break
                pair = (trigger.kind.value, trigger.id, replacement.kind.value, replacement.id)
                if pair in applied_pairs:
                    continue
                affected = min(trigger.units, replacement.units)
                disallowed = min(
                    round_cents(Decimal(abs(trigger.loss)) / trigger.units * affected),
                    remaining,
                )
                if disallowed <= 0:
                    continue
                remaining -= disallowed
                violations.append(
                    WashSaleViolation(
                        trigger_kind=trigger.kind,
                        trigger_id=trigger.id,
                        symbol=trigger.symbol,
                        sale_date=trigger.sale_date,
                        quantity_sold=trigger.quantity,
                        trigger_units=trigger.units,
                        realized_loss=trigger.loss,
                        replacement_kind=replacement.kind,
                        replacement_id=replacement.id,
                        replacement_date=replacement.acquired,
                        replacement_quantity=replacement.quantity,
                        replacement_units=replacement.units,
                        shares_affected=affected,
                        disallowed_loss=disallowed,
                        original_cost_basis=replacement.cost_basis,
                        adjusted_cost_basis=replacement.cost_basis + disallowed,
                    )
                )

        summary = self._summarize(violations)
        if violations:
            logger.info(
                "Found %d wash sales for %s, %s disallowed",
                summary.total_violations,
                user_id,
                format_cents(summary.total_disallowed_losses),
            )
        return WashSaleReport(violations=violations, summary=summary)

    def _triggers(
        self, user_id: str, lots: list[StockLot], positions: list[OptionPosition]
    ) -> list[_Trigger]:
        symbol_of_lot = {lot.id: lot.symbol for lot in lots}
        triggers = [
            _Trigger(
                kind=SecurityKind.STOCK,
                id=disposition.id,
                symbol=symbol_of_lot[disposition.lot_id],
                sale_date=disposition.disposed_date,
                quantity=disposition.quantity_disposed,
                units=disposition.quantity_disposed,
                loss=disposition.realized_gain_loss,
                excluded_id=disposition.lot_id,
            )
            for disposition in self.repo.get_dispositions(user_id, losses_only=True)
        ]
        triggers += [
            _Trigger(
                kind=SecurityKind.OPTION,
                id=position.id,
                symbol=position.underlying,
                sale_date=position.close_date or position.open_date,
                quantity=position.quantity,
                units=position.share_equivalents,
                loss=position.realized_pl,
                excluded_id=position.id,
            )
            for position in positions
            if position.status == PositionStatus.CLOSED
            and position.realized_pl is not None
            and position.realized_pl < 0
        ]
        return triggers

    @staticmethod
    def _replacements(
        trigger: _Trigger, lots: list[StockLot], positions: list[OptionPosition]
    ) -> list[_Replacement]:
        candidates = [
            _Replacement(
                kind=SecurityKind.STOCK,
                id=lot.id,
                acquired=lot.acquired_date,
                quantity=lot.original_quantity,
                units=lot.original_quantity,
                cost_basis=lot.total_cost_basis,
            )
            for lot in lots
            if lot.symbol == trigger.symbol
            and lot.id != trigger.excluded_id
            and in_window(trigger.sale_date, lot.acquired_date)
        ]
        candidates += [
            _Replacement(
                kind=SecurityKind.OPTION,
                id=position.id,
                acquired=position.open_date,
                quantity=position.quantity,
                units=position.share_equivalents,
                cost_basis=position.cost_basis,
            )
            for position in positions
            if position.position_type == PositionType.LONG
            and position.underlying == trigger.symbol
            and position.id != trigger.excluded_id
            and in_window(trigger.sale_date, position.open_date)
        ]
        return sorted(candidates, key=lambda r: (r.acquired, r.id))

    @staticmethod
    def _summarize(violations: list[WashSaleViolation]) -> WashSaleSummary:
        counts = {direction: 0 for direction in WashSaleDirection}
        for violation in violations:
            counts[violation.direction] += 1
        return WashSaleSummary(
            total_disallowed_losses=sum(v.disallowed_loss for v in violations),
            total_violations=len(violations),
            symbols_affected=sorted({v.symbol for v in violations}),
            stock_to_stock_count=counts[WashSaleDirection.STOCK_TO_STOCK],
            stock_to_option_count=counts[WashSaleDirection.STOCK_TO_OPTION],
            option_to_stock_count=counts[WashSaleDirection.OPTION_TO_STOCK],
            option_to_option_count=counts[WashSaleDirection.OPTION_TO_OPTION],
        )

    def apply_wash_sale_adjustments(
        self, user_id: str, violations: list[WashSaleViolation]
    ) -> ApplyResult:
        """Write each violation's adjustments in its own transaction.

        A pair that was already applied is skipped. If a violation fails, the
        ones before it stay committed and the error propagates.
        """
        updated = 0
        skipped = 0
        for violation in violations:
            with self.repo.transaction():
                if not self.repo.save_wash_sale_adjustment(user_id, violation):
                    skipped += 1
                    continue
                if violation.trigger_kind == SecurityKind.STOCK:
                    self._flag_disposition(user_id, violation)
                if violation.replacement_kind == SecurityKind.STOCK:
                    self._adjust_lot(user_id, violation)
            updated += 1

        logger.info("Applied %d wash-sale adjustments (%d already applied)", updated, skipped)
        return ApplyResult(updated=updated, skipped=skipped)

    def _flag_disposition(self, user_id: str, violation: WashSaleViolation) -> None:
        disposition = self.repo.get_disposition(user_id, violation.trigger_id)
        if disposition is None:
            raise DataValidationError(
                "trigger_id", f"no disposition {violation.trigger_id} for this user"
            )
        self.repo.mark_disposition_wash_sale(
            user_id, disposition.id, disposition.wash_sale_loss + violation.disallowed_loss
        )

    def _adjust_lot(self, user_id: str, violation: WashSaleViolation) -> None:
        lot = self.repo.get_lot(user_id, violation.replacement_id)
        if lot is None:
            raise LotNotFoundError(violation.replacement_id)
        total = lot.total_cost_basis + violation.disallowed_loss
        # Shares already sold keep their basis; the rest carry the whole adjustment.
        if lot.remaining_quantity > 0:
            cost_per_share = (
                lot.cost_per_share + Decimal(violation.disallowed_loss) / lot.remaining_quantity
            )
        else:
            cost_per_share = lot.cost_per_share
            logger.warning(
                "Replacement lot %s is fully sold; %s of disallowed loss not carried",
                lot.id,
                format_cents(violation.disallowed_loss),
            )
        self.repo.update_lot_basis(
            user_id,
            lot.id,
            cost_per_share=cost_per_share,
            total_cost_basis=total,
            wash_sale_adjustment=lot.wash_sale_adjustment + violation.disallowed_loss,
            wash_sale_disallowed=lot.wash_sale_disallowed + violation.disallowed_loss,
            wash_sale_source_id=violation.trigger_id,
        )
