"""Routes a normalized feed of trade records to the engines."""

import logging
from collections.abc import Sequence

from tradebook.db.repository import TradeRepository
from tradebook.engines.ledger import LedgerService
from tradebook.engines.options import OptionsLifecycle
from tradebook.engines.stock_sales import StockLedgerEngine
from tradebook.models.feed import ProcessSummary, StockBuy, StockSell
from tradebook.models.options import (
    BuyToClose,
    BuyToOpen,
    OptionSettlement,
    SellToClose,
    SellToOpen,
)
from tradebook.money import format_cents

logger = logging.getLogger(__name__)

OPTION_LEG_TYPES = (BuyToOpen, SellToOpen, BuyToClose, SellToClose)


class TransactionProcessor:
    """Books feed records in order, grouping option legs into trades."""

    def __init__(self, repo: TradeRepository, ledger: LedgerService | None = None):
        self.repo = repo
        self.ledger = ledger or LedgerService(repo)
        self.stocks = StockLedgerEngine(repo, self.ledger)
        self.options = OptionsLifecycle(repo, self.ledger)

    def process(self, user_id: str, records: Sequence) -> ProcessSummary:
        """Book every record for ``user_id`` in one transaction.

        Option legs sharing a ``trade_num`` are committed together at the
        position of the group's first leg; a leg without a trade number is
        its own trade. Any failure rolls back the whole batch.
        """
        summary = ProcessSummary()
        with self.repo.transaction():
            for step in self._group(records):
                self._run(user_id, step, summary)

        logger.info(
            "Processed %d records for %s: %d lots, %d dispositions, %d opened, "
            "%d closed, %d settled, realized %s",
            len(records),
            user_id,
            summary.lots_created,
            summary.dispositions,
            summary.positions_opened,
            summary.positions_closed,
            summary.settlements,
            format_cents(summary.realized_gain_loss),
        )
        return summary

    @staticmethod
    def _group(records: Sequence) -> list:
        steps: list = []
        trades: dict[str, list] = {}
        for record in records:
            if not isinstance(record, OPTION_LEG_TYPES):
                steps.append(record)
            elif record.trade_num is None:
                steps.append([record])
            elif record.trade_num in trades:
                trades[record.trade_num].append(record)
            else:
                trades[record.trade_num] = [record]
                steps.append(trades[record.trade_num])
        return steps

    def _run(self, user_id: str, step, summary: ProcessSummary) -> None:
        match step:
            case list():
                result = self.options.commit_trade(
                    user_id, step, strategy=step[0].strategy, trade_num=step[0].trade_num
                )
                summary.positions_opened += len(result.opened)
                summary.positions_closed += len(result.closed)
                summary.journal_transactions += sum(
                    1 for p in result.opened if p.open_txn_id
                ) + sum(1 for c in result.closed if c.journal_transaction_id)
                summary.realized_gain_loss += sum(c.realized_pl for c in result.closed)
            case StockBuy():
                lot = self.stocks.record_purchase(
                    user_id,
                    step.symbol,
                    step.quantity,
                    step.price,
                    step.trade_date,
                    step.fees,
                    source_txn_id=step.id,
                )
                summary.lots_created += 1
                summary.journal_transactions += 1 if lot.total_cost_basis > 0 else 0
            case StockSell():
                sale = self.stocks.match_sale(
                    user_id,
                    step.symbol,
                    step.quantity,
                    step.price,
                    step.trade_date,
                    step.fees,
                    method=step.method,
                    selected_lots=step.selected_lots,
                    sale_txn_id=step.id,
                )
                summary.dispositions += len(sale.dispositions)
                summary.journal_transactions += 1 if sale.journal_transaction_id else 0
                summary.realized_gain_loss += sale.total_gain_loss
            case OptionSettlement():
                settled = self.options.settle_position(user_id, step)
                summary.settlements += 1
                summary.journal_transactions += 1 if settled.journal_transaction_id else 0
                summary.realized_gain_loss += settled.realized_pl
            case _:
                raise TypeError(f"Unsupported feed record: {type(step).__name__}")
