"""Options position lifecycle: open, close, and settle.

Opening legs create positions. Closing legs and settlement events realize
P&L against an open position with the same underlying, strike, and option
type. Whether the result is a gain or a loss depends on the side of the
matched position, not on the closing action.
"""

import logging
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import uuid4

from tradebook.db.repository import TradeRepository
from tradebook.db.seed import (
    LONG_CALLS,
    LONG_PUTS,
    OPTIONS_GAINS,
    OPTIONS_LOSSES,
    SHORT_CALLS,
    SHORT_PUTS,
    TRADING_CASH,
)
from tradebook.engines.ledger import LedgerService, signed_line
from tradebook.exceptions import (
    DataValidationError,
    InvalidLegGroupingError,
    NoMatchingPositionError,
    PositionNotFoundError,
)
from tradebook.models.enums import (
    EntrySide,
    OptionType,
    PositionStatus,
    PositionType,
    SettlementKind,
)
from tradebook.models.options import (
    BuyToOpen,
    CloseResult,
    ClosingLeg,
    OpeningLeg,
    OptionLeg,
    OptionPosition,
    OptionSettlement,
    TradeCommitResult,
)
from tradebook.money import allocate_pro_rata, format_cents, to_cents

logger = logging.getLogger(__name__)

MAX_LEG_SPAN_DAYS = 7

_POSITION_ACCOUNTS = {
    (PositionType.LONG, OptionType.CALL): LONG_CALLS,
    (PositionType.LONG, OptionType.PUT): LONG_PUTS,
    (PositionType.SHORT, OptionType.CALL): SHORT_CALLS,
    (PositionType.SHORT, OptionType.PUT): SHORT_PUTS,
}


def position_account(position_type: PositionType, option_type: OptionType) -> str:
    return _POSITION_ACCOUNTS[(position_type, option_type)]


class OptionsLifecycle:
    """Tracks option positions from open to close and books each step."""

    def __init__(self, repo: TradeRepository, ledger: LedgerService | None = None):
        self.repo = repo
        self.ledger = ledger or LedgerService(repo)

    # --- Opening ---

    def open_leg(
        self,
        user_id: str,
        leg: OpeningLeg,
        strategy: str | None = None,
        trade_num: str | None = None,
    ) -> OptionPosition:
        """Create a position for a buy-to-open or sell-to-open leg.

        The cost basis is the absolute leg amount plus fees, converted to
        cents once.
        """
        position_type = PositionType.LONG if isinstance(leg, BuyToOpen) else PositionType.SHORT
        strategy = strategy or leg.strategy
        trade_num = trade_num or leg.trade_num
        cost = to_cents(abs(leg.amount) + leg.fees)
        account = position_account(position_type, leg.option_type)

        with self.repo.transaction():
            txn_id = None
            if cost > 0:
                if position_type == PositionType.LONG:
                    lines = signed_line(account, cost, EntrySide.DEBIT) + signed_line(
                        TRADING_CASH, cost, EntrySide.CREDIT
                    )
                else:
                    lines = signed_line(TRADING_CASH, cost, EntrySide.DEBIT) + signed_line(
                        account, cost, EntrySide.CREDIT
                    )
                txn = self.ledger.post_transaction(
                    leg.trade_date,
                    f"{leg.kind} {leg.quantity} {leg.describe()} @ {leg.price}",
                    lines,
                    external_ref=leg.id,
                    strategy=strategy,
                    trade_num=trade_num,
                )
                txn_id = txn.id

            position = OptionPosition(
                id=str(uuid4()),
                user_id=user_id,
                symbol=leg.symbol,
                underlying=leg.underlying,
                option_type=leg.option_type,
                strike=leg.strike,
                expiration=leg.expiration,
                position_type=position_type,
                quantity=leg.quantity,
                remaining_quantity=leg.quantity,
                cost_basis=cost,
                open_price=leg.price,
                open_fees=leg.fees,
                open_date=leg.trade_date,
                strategy=strategy,
                trade_num=trade_num,
                open_txn_id=txn_id,
            )
            self.repo.save_position(position)

        logger.info("Opened %s (cost %s)", position.describe(), format_cents(cost))
        return position

    # --- Closing ---

    def close_leg(
        self,
        user_id: str,
        leg: ClosingLeg,
        open_candidates: list[OptionPosition] | None = None,
        strategy: str | None = None,
        trade_num: str | None = None,
    ) -> list[CloseResult]:
        """Close contracts from matching open positions, earliest-opened first.

        A close larger than the earliest position spills into the next one;
        proceeds and fees are split by contracts taken, and every fill is
        booked in one transaction. ``open_candidates`` restricts the search to
        the given positions; touched entries are replaced in the list with
        their updated state.

        Raises:
            NoMatchingPositionError: Matching open positions hold fewer
                contracts than the leg closes.
        """
        candidates = (
            open_candidates
            if open_candidates is not None
            else self.repo.get_positions(
                user_id, status=PositionStatus.OPEN, underlying=leg.underlying
            )
        )
        fills = self._allocate_close(candidates, leg)
        if fills is None:
            raise NoMatchingPositionError(
                f"{leg.kind} {leg.quantity} {leg.describe()}",
                [p.describe() for p in candidates if p.status == PositionStatus.OPEN],
            )

        takes = [take for _, take in fills]
        proceeds = allocate_pro_rata(to_cents(abs(leg.amount) - leg.fees), takes)
        results = []
        with self.repo.transaction():
            for (index, take), share in zip(fills, proceeds):
                result = self._realize(
                    candidates[index],
                    quantity=take,
                    proceeds=share,
                    price=leg.price,
                    fees=leg.fees * take / leg.quantity,
                    on_date=leg.trade_date,
                    description=f"{leg.kind} {take} {leg.describe()} @ {leg.price}",
                    external_ref=leg.id,
                    strategy=strategy or leg.strategy,
                    trade_num=trade_num or leg.trade_num,
                )
                candidates[index] = result.position
                results.append(result)
        return results

    def commit_trade(
        self,
        user_id: str,
        legs: Sequence[OptionLeg],
        strategy: str | None = None,
        trade_num: str | None = None,
    ) -> TradeCommitResult:
        """Book every leg of one trade atomically, opening legs first."""
        if not legs:
            raise DataValidationError("legs", "a trade needs at least one leg")
        dates = [leg.trade_date for leg in legs]
        span = (max(dates) - min(dates)).days
        if span > MAX_LEG_SPAN_DAYS:
            raise InvalidLegGroupingError(trade_num, span, MAX_LEG_SPAN_DAYS)

        opening = [leg for leg in legs if leg.is_opening]
        closing = [leg for leg in legs if not leg.is_opening]
        with self.repo.transaction():
            opened = [self.open_leg(user_id, leg, strategy, trade_num) for leg in opening]
            closed = []
            for leg in closing:
                closed.extend(
                    self.close_leg(user_id, leg, strategy=strategy, trade_num=trade_num)
                )

        logger.info(
            "Committed trade %s: %d opened, %d closed", trade_num or "-", len(opened), len(closed)
        )
        return TradeCommitResult(
            trade_num=trade_num, strategy=strategy, opened=opened, closed=closed
        )

    # --- Settlement ---

    def settle_position(self, user_id: str, event: OptionSettlement) -> CloseResult:
        """Settle an open position at expiration, exercise, or assignment.

        The remaining premium is realized with zero proceeds: a long position
        loses its cost, a short position keeps its premium.
        """
        candidates = self.repo.get_positions(
            user_id, status=PositionStatus.OPEN, underlying=event.underlying
        )
        index = self._find_open(candidates, event, event.quantity or Decimal("0"))
        if index is None:
            raise PositionNotFoundError(event.describe())
        position = candidates[index]

        kind = SettlementKind(event.kind)
        if kind == SettlementKind.EXERCISE and position.position_type != PositionType.LONG:
            raise DataValidationError("kind", "only long positions can be exercised")
        if kind == SettlementKind.ASSIGNMENT and position.position_type != PositionType.SHORT:
            raise DataValidationError("kind", "only short positions can be assigned")

        quantity = event.quantity or position.remaining_quantity
        return self._realize(
            position,
            quantity=quantity,
            proceeds=0,
            price=Decimal("0"),
            fees=Decimal("0"),
            on_date=event.trade_date,
            description=f"{kind.value} {quantity} {event.describe()}",
            external_ref=event.id,
            strategy=position.strategy,
            trade_num=position.trade_num,
        )

    # --- Internals ---

    @staticmethod
    def _matching_open(candidates: list[OptionPosition], contract) -> list[int]:
        """Indexes of open positions in ``contract``'s series, earliest-opened first."""
        matches = [
            (position.open_date, i)
            for i, position in enumerate(candidates)
            if position.status == PositionStatus.OPEN and position.matches(contract)
        ]
        return [i for _, i in sorted(matches)]

    @classmethod
    def _find_open(
        cls, candidates: list[OptionPosition], contract, quantity: Decimal
    ) -> int | None:
        """Index of the earliest matching position holding at least ``quantity``."""
        for i in cls._matching_open(candidates, contract):
            if candidates[i].remaining_quantity >= quantity:
                return i
        return None

    @classmethod
    def _allocate_close(
        cls, candidates: list[OptionPosition], leg: ClosingLeg
    ) -> list[tuple[int, Decimal]] | None:
        """(index, contracts) fills covering ``leg``, or None if too few are open."""
        fills = []
        needed = leg.quantity
        for i in cls._matching_open(candidates, leg):
            if needed <= 0:
                break
            take = min(needed, candidates[i].remaining_quantity)
            fills.append((i, take))
            needed -= take
        if needed > 0:
            return None
        return fills

    def _realize(
        self,
        position: OptionPosition,
        quantity: Decimal,
        proceeds: int,
        price: Decimal,
        fees: Decimal,
        on_date: date,
        description: str,
        external_ref: str,
        strategy: str | None,
        trade_num: str | None,
    ) -> CloseResult:
        remaining_after = position.remaining_quantity - quantity
        original_cost = position.cost_consumed_through(
            remaining_after
        ) - position.cost_consumed_through(position.remaining_quantity)

        if position.position_type == PositionType.LONG:
            realized = proceeds - original_cost
            cash_side, position_side = EntrySide.DEBIT, EntrySide.CREDIT
        else:
            realized = original_cost - proceeds
            cash_side, position_side = EntrySide.CREDIT, EntrySide.DEBIT

        account = position_account(position.position_type, position.option_type)
        lines = signed_line(TRADING_CASH, proceeds, cash_side) + signed_line(
            account, original_cost, position_side
        )
        if realized > 0:
            lines += signed_line(OPTIONS_GAINS, realized, EntrySide.CREDIT)
        elif realized < 0:
            lines += signed_line(OPTIONS_LOSSES, -realized, EntrySide.DEBIT)

        with self.repo.transaction():
            txn_id = None
            if lines:
                txn = self.ledger.post_transaction(
                    on_date,
                    description,
                    lines,
                    external_ref=external_ref,
                    strategy=strategy,
                    trade_num=trade_num,
                )
                txn_id = txn.id

            closed = remaining_after <= 0
            updated = position.model_copy(
                update={
                    "remaining_quantity": max(remaining_after, Decimal("0")),
                    "status": PositionStatus.CLOSED if closed else PositionStatus.OPEN,
                    "close_price": price,
                    "close_fees": (position.close_fees or Decimal("0")) + fees,
                    "close_date": on_date,
                    "proceeds": (position.proceeds or 0) + proceeds,
                    "realized_pl": (position.realized_pl or 0) + realized,
                    "close_txn_id": txn_id or position.close_txn_id,
                }
            )
            self.repo.update_position_close(updated)

        logger.info(
            "Closed %s contracts of %s: %s %s",
            quantity,
            position.describe(),
            "gain" if realized > 0 else "loss" if realized < 0 else "flat",
            format_cents(realized),
        )
        return CloseResult(
            position=updated,
            journal_transaction_id=txn_id,
            proceeds=proceeds,
            original_cost=original_cost,
            realized_pl=realized,
        )
