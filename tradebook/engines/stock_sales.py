"""Stock purchases and sales against tax lots.

A purchase creates a lot and moves cash into the stock position account. A
sale consumes lots in the order chosen by the matching method, records one
disposition per lot slice, and books the realized result split by holding
term.
"""

import logging
from datetime import date
from decimal import Decimal
from uuid import uuid4

from tradebook.db.repository import TradeRepository
from tradebook.db.seed import (
    STOCK_GAINS_LT,
    STOCK_GAINS_ST,
    STOCK_LONG,
    STOCK_LOSSES_LT,
    STOCK_LOSSES_ST,
    TRADING_CASH,
)
from tradebook.engines.ledger import LedgerService, credit, debit, signed_line
from tradebook.engines.lot_matcher import LOT_CLOSE_EPSILON, LotMatcher
from tradebook.exceptions import DataValidationError
from tradebook.models.enums import EntrySide, LotStatus, MatchingMethod
from tradebook.models.ledger import JournalLine
from tradebook.models.lots import (
    Disposition,
    LotSelection,
    SaleMatchResult,
    SalePlan,
    SalePreview,
    StockLot,
)
from tradebook.money import format_cents, to_cents

logger = logging.getLogger(__name__)


def _result_lines(gain: int, gain_code: str, loss_code: str) -> list[JournalLine]:
    if gain > 0:
        return [credit(gain_code, gain)]
    if gain < 0:
        return [debit(loss_code, -gain)]
    return []


class StockLedgerEngine:
    """Records stock lots and matches sales against them."""

    def __init__(self, repo: TradeRepository, ledger: LedgerService | None = None):
        self.repo = repo
        self.ledger = ledger or LedgerService(repo)
        self.matcher = LotMatcher()

    def record_purchase(
        self,
        user_id: str,
        symbol: str,
        quantity: Decimal,
        price: Decimal,
        acquired_date: date,
        fees: Decimal = Decimal("0"),
        source_txn_id: str | None = None,
    ) -> StockLot:
        """Create a lot for a purchase. Fees are capitalized into the basis."""
        if quantity <= 0:
            raise DataValidationError("quantity", "purchase quantity must be positive")
        if price < 0 or fees < 0:
            raise DataValidationError("price", "price and fees cannot be negative")

        symbol = symbol.upper()
        basis = to_cents(quantity * price + fees)
        with self.repo.transaction():
            txn_id = None
            if basis > 0:
                txn = self.ledger.post_transaction(
                    acquired_date,
                    f"Buy {quantity} {symbol} @ {price}",
                    [debit(STOCK_LONG, basis), credit(TRADING_CASH, basis)],
                    external_ref=source_txn_id,
                )
                txn_id = txn.id
            lot = StockLot(
                id=str(uuid4()),
                user_id=user_id,
                symbol=symbol,
                acquired_date=acquired_date,
                original_quantity=quantity,
                remaining_quantity=quantity,
                cost_per_share=Decimal(basis) / quantity,
                total_cost_basis=basis,
                source_txn_id=source_txn_id or txn_id,
            )
            self.repo.save_lot(lot)

        logger.info("Opened lot %s: %s %s, basis %s", lot.id, quantity, symbol, format_cents(basis))
        return lot

    def preview_sale(
        self,
        user_id: str,
        symbol: str,
        quantity: Decimal,
        price: Decimal,
        sale_date: date,
        fees: Decimal = Decimal("0"),
        **rates: Decimal,
    ) -> SalePreview:
        """What-if comparison of matching methods against the user's open lots."""
        symbol = symbol.upper()
        lots = self.repo.get_open_lots(user_id, symbol)
        return self.matcher.preview(symbol, lots, quantity, price, sale_date, fees, **rates)

    def match_sale(
        self,
        user_id: str,
        symbol: str,
        sale_quantity: Decimal,
        sale_price: Decimal,
        sale_date: date,
        fees: Decimal = Decimal("0"),
        method: MatchingMethod = MatchingMethod.FIFO,
        selected_lots: list[LotSelection] | None = None,
        sale_txn_id: str | None = None,
    ) -> SaleMatchResult:
        """Match a sale to open lots and book it.

        Dispositions, lot updates, and the journal posting commit together.
        Nothing is written when the open lots can't cover the sale.

        Raises:
            InsufficientLotsError: Open lots hold fewer shares than the sale.
            LotNotFoundError: A selected lot isn't an open lot of the user.
        """
        symbol = symbol.upper()
        sale_txn_id = sale_txn_id or str(uuid4())

        with self.repo.transaction():
            lots = self.repo.get_open_lots(user_id, symbol)
            plan = self.matcher.plan(
                lots, sale_quantity, sale_price, sale_date, method, fees, selected_lots
            )
            self.matcher.check_coverage(symbol, sale_quantity, plan)

            dispositions = self._consume_lots(user_id, lots, plan, sale_txn_id, sale_date)
            journal_id = self._post_sale(symbol, sale_quantity, sale_price, sale_date, plan, sale_txn_id)

        result = SaleMatchResult(
            sale_txn_id=sale_txn_id,
            method=method,
            dispositions=dispositions,
            total_proceeds=sum(d.total_proceeds for d in dispositions),
            total_cost_basis=plan.total_cost_basis,
            short_term_gain=plan.short_term_gain,
            long_term_gain=plan.long_term_gain,
            journal_transaction_id=journal_id,
        )
        logger.info(
            "Sold %s %s via %s across %d lots: gain/loss %s",
            sale_quantity,
            symbol,
            method.value,
            len(dispositions),
            format_cents(result.total_gain_loss),
        )
        return result

    def _consume_lots(
        self,
        user_id: str,
        lots: list[StockLot],
        plan: SalePlan,
        sale_txn_id: str,
        sale_date: date,
    ) -> list[Disposition]:
        remaining = {lot.id: lot.remaining_quantity for lot in lots}
        dispositions = []
        for piece in plan.slices:
            disposition = Disposition(
                id=str(uuid4()),
                user_id=user_id,
                lot_id=piece.lot_id,
                sale_txn_id=sale_txn_id,
                disposed_date=sale_date,
                quantity_disposed=piece.quantity,
                proceeds_per_share=Decimal(piece.proceeds) / piece.quantity,
                total_proceeds=piece.proceeds,
                fees_allocated=piece.fees,
                cost_basis_disposed=piece.cost_basis,
                realized_gain_loss=piece.gain_loss,
                holding_period_days=piece.holding_period_days,
                is_long_term=piece.is_long_term,
                matching_method=plan.method,
            )
            self.repo.save_disposition(disposition)
            dispositions.append(disposition)

            remaining[piece.lot_id] -= piece.quantity
            left = remaining[piece.lot_id]
            status = LotStatus.CLOSED if left <= LOT_CLOSE_EPSILON else LotStatus.PARTIAL
            self.repo.update_lot_remaining(user_id, piece.lot_id, left, status)
        return dispositions

    def _post_sale(
        self,
        symbol: str,
        quantity: Decimal,
        price: Decimal,
        sale_date: date,
        plan: SalePlan,
        sale_txn_id: str,
    ) -> str | None:
        net_proceeds = sum(piece.proceeds for piece in plan.slices)
        lines = (
            signed_line(TRADING_CASH, net_proceeds, EntrySide.DEBIT)
            + signed_line(STOCK_LONG, plan.total_cost_basis, EntrySide.CREDIT)
            + _result_lines(plan.short_term_gain, STOCK_GAINS_ST, STOCK_LOSSES_ST)
            + _result_lines(plan.long_term_gain, STOCK_GAINS_LT, STOCK_LOSSES_LT)
        )
        if not lines:
            return None
        txn = self.ledger.post_transaction(
            sale_date,
            f"Sell {quantity} {symbol} @ {price} ({plan.method.value})",
            lines,
            external_ref=sale_txn_id,
        )
        return txn.id
