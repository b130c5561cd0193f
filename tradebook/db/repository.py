"""Data access layer for Tradebook."""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal

from tradebook.exceptions import StaleAccountError
from tradebook.models.enums import (
    AccountType,
    EntrySide,
    LotStatus,
    MatchingMethod,
    OptionType,
    PositionStatus,
    PositionType,
)
from tradebook.models.ledger import Account, JournalTransaction, LedgerEntry
from tradebook.models.lots import Disposition, StockLot
from tradebook.models.options import OptionPosition
from tradebook.models.wash_sale import WashSaleViolation

logger = logging.getLogger(__name__)


def _rows(cursor: sqlite3.Cursor) -> list[dict]:
    columns = [desc[0] for desc in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


def _opt_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def _opt_decimal(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def _opt_str(value) -> str | None:
    return str(value) if value is not None else None


class TradeRepository:
    """CRUD operations for ledger, lot, and position entities.

    Lots, dispositions, positions, and wash-sale markers belong to a single
    user; every read and write of those takes ``user_id`` and filters by it.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._depth = 0

    # --- Units of work ---

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group writes into one atomic unit.

        The outermost scope takes SQLite's write lock (``BEGIN IMMEDIATE``);
        nested scopes become savepoints so an inner failure that the caller
        handles doesn't discard the outer work.
        """
        depth = self._depth
        if depth == 0:
            self.conn.execute("BEGIN IMMEDIATE")
        else:
            self.conn.execute(f"SAVEPOINT sp_{depth}")
        self._depth += 1
        try:
            yield
        except BaseException:
            self._depth = depth
            if depth == 0:
                self.conn.execute("ROLLBACK")
            else:
                self.conn.execute(f"ROLLBACK TO SAVEPOINT sp_{depth}")
                self.conn.execute(f"RELEASE SAVEPOINT sp_{depth}")
            raise
        self._depth = depth
        if depth == 0:
            self.conn.execute("COMMIT")
        else:
            self.conn.execute(f"RELEASE SAVEPOINT sp_{depth}")

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    # --- Accounts ---

    def upsert_account(
        self,
        account_id: str,
        code: str,
        name: str,
        account_type: AccountType,
        balance_side: EntrySide,
    ) -> bool:
        """Insert an account unless its code exists. Returns True if inserted."""
        cursor = self.conn.execute(
            """INSERT OR IGNORE INTO accounts
               (id, code, name, account_type, balance_side)
               VALUES (?, ?, ?, ?, ?)""",
            (account_id, code, name, account_type.value, balance_side.value),
        )
        return cursor.rowcount > 0

    def get_accounts_by_codes(self, codes: list[str]) -> dict[str, Account]:
        """Return the accounts for ``codes`` keyed by code; unknown codes are absent."""
        unique = sorted(set(codes))
        if not unique:
            return {}
        placeholders = ", ".join("?" for _ in unique)
        cursor = self.conn.execute(
            f"SELECT * FROM accounts WHERE code IN ({placeholders})", unique
        )
        return {row["code"]: self._account_from_row(row) for row in _rows(cursor)}

    def get_account(self, code: str) -> Account | None:
        return self.get_accounts_by_codes([code]).get(code)

    def list_accounts(self) -> list[Account]:
        cursor = self.conn.execute("SELECT * FROM accounts ORDER BY code")
        return [self._account_from_row(row) for row in _rows(cursor)]

    @staticmethod
    def _account_from_row(row: dict) -> Account:
        return Account(
            id=row["id"],
            code=row["code"],
            name=row["name"],
            account_type=AccountType(row["account_type"]),
            balance_side=EntrySide(row["balance_side"]),
            settled_balance=row["settled_balance"],
            version=row["version"],
        )

    # --- Journal ---

    def record_posting(
        self,
        txn: JournalTransaction,
        entries: list[LedgerEntry],
        balance_deltas: dict[str, int],
        accounts: dict[str, Account],
    ) -> None:
        """Write a journal transaction, its entries, and the balance changes.

        This is the only statement path that touches ``settled_balance``.
        ``balance_deltas`` is keyed by account code; each update is guarded
        by the version in ``accounts`` and raises StaleAccountError when
        another posting got there first. Call inside ``transaction()``.
        """
        self.conn.execute(
            """INSERT INTO journal_transactions
               (id, transaction_date, description, external_ref, strategy,
                trade_num, amount, posted_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                txn.id,
                txn.transaction_date.isoformat(),
                txn.description,
                txn.external_ref,
                txn.strategy,
                txn.trade_num,
                txn.amount,
                txn.posted_at.isoformat(),
            ),
        )
        self.conn.executemany(
            """INSERT INTO ledger_entries (id, transaction_id, account_id, amount, side)
               VALUES (?, ?, ?, ?, ?)""",
            [(e.id, e.transaction_id, e.account_id, e.amount, e.side.value) for e in entries],
        )
        for code, delta in balance_deltas.items():
            account = accounts[code]
            cursor = self.conn.execute(
                """UPDATE accounts
                   SET settled_balance = settled_balance + ?, version = version + 1
                   WHERE id = ? AND version = ?""",
                (delta, account.id, account.version),
            )
            if cursor.rowcount != 1:
                raise StaleAccountError(code, account.version)

    def get_journal_transaction(self, txn_id: str) -> JournalTransaction | None:
        cursor = self.conn.execute(
            "SELECT * FROM journal_transactions WHERE id = ?", (txn_id,)
        )
        rows = _rows(cursor)
        return self._journal_from_row(rows[0]) if rows else None

    def list_journal_transactions(self, trade_num: str | None = None) -> list[JournalTransaction]:
        query = "SELECT * FROM journal_transactions"
        params: list[str] = []
        if trade_num:
            query += " WHERE trade_num = ?"
            params.append(trade_num)
        query += " ORDER BY transaction_date, posted_at"
        cursor = self.conn.execute(query, params)
        return [self._journal_from_row(row) for row in _rows(cursor)]

    def get_ledger_entries(
        self, transaction_id: str | None = None, account_code: str | None = None
    ) -> list[LedgerEntry]:
        query = (
            "SELECT e.*, a.code AS account_code FROM ledger_entries e "
            "JOIN accounts a ON a.id = e.account_id"
        )
        conditions = []
        params: list[str] = []
        if transaction_id:
            conditions.append("e.transaction_id = ?")
            params.append(transaction_id)
        if account_code:
            conditions.append("a.code = ?")
            params.append(account_code)
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY e.rowid"
        cursor = self.conn.execute(query, params)
        return [
            LedgerEntry(
                id=row["id"],
                transaction_id=row["transaction_id"],
                account_id=row["account_id"],
                account_code=row["account_code"],
                amount=row["amount"],
                side=EntrySide(row["side"]),
            )
            for row in _rows(cursor)
        ]

    def entry_totals_by_account(self) -> dict[str, dict[str, int]]:
        """Sum of entry amounts per account code and side."""
        cursor = self.conn.execute(
            """SELECT a.code AS code, e.side AS side, SUM(e.amount) AS total
               FROM ledger_entries e JOIN accounts a ON a.id = e.account_id
               GROUP BY a.code, e.side"""
        )
        totals: dict[str, dict[str, int]] = {}
        for row in _rows(cursor):
            totals.setdefault(row["code"], {"D": 0, "C": 0})[row["side"]] = row["total"]
        return totals

    def entry_totals_by_transaction(self) -> dict[str, dict[str, int]]:
        """Sum of entry amounts per journal transaction and side."""
        cursor = self.conn.execute(
            """SELECT t.id AS txn_id, e.side AS side, COALESCE(SUM(e.amount), 0) AS total
               FROM journal_transactions t
               LEFT JOIN ledger_entries e ON e.transaction_id = t.id
               GROUP BY t.id, e.side"""
        )
        totals: dict[str, dict[str, int]] = {}
        for row in _rows(cursor):
            bucket = totals.setdefault(row["txn_id"], {"D": 0, "C": 0})
            if row["side"]:
                bucket[row["side"]] = row["total"]
        return totals

    @staticmethod
    def _journal_from_row(row: dict) -> JournalTransaction:
        return JournalTransaction(
            id=row["id"],
            transaction_date=date.fromisoformat(row["transaction_date"]),
            description=row["description"],
            external_ref=row["external_ref"],
            strategy=row["strategy"],
            trade_num=row["trade_num"],
            amount=row["amount"],
            posted_at=datetime.fromisoformat(row["posted_at"]),
        )

    # --- Stock lots ---

    def save_lot(self, lot: StockLot) -> None:
        """Insert a new lot."""
        self.conn.execute(
            """INSERT INTO stock_lots
               (id, seq, user_id, symbol, acquired_date, original_quantity,
                remaining_quantity, cost_per_share, total_cost_basis, status,
                wash_sale_adjustment, wash_sale_disallowed, wash_sale_source_id,
                source_txn_id)
               VALUES (?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM stock_lots),
                       ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                lot.id,
                lot.user_id,
                lot.symbol,
                lot.acquired_date.isoformat(),
                str(lot.original_quantity),
                str(lot.remaining_quantity),
                str(lot.cost_per_share),
                lot.total_cost_basis,
                lot.status.value,
                lot.wash_sale_adjustment,
                lot.wash_sale_disallowed,
                lot.wash_sale_source_id,
                lot.source_txn_id,
            ),
        )

    def get_lot(self, user_id: str, lot_id: str) -> StockLot | None:
        cursor = self.conn.execute(
            "SELECT * FROM stock_lots WHERE user_id = ? AND id = ?", (user_id, lot_id)
        )
        rows = _rows(cursor)
        return self._lot_from_row(rows[0]) if rows else None

    def get_lots(
        self,
        user_id: str,
        symbol: str | None = None,
        statuses: list[LotStatus] | None = None,
    ) -> list[StockLot]:
        """Retrieve a user's lots in acquisition order (oldest first)."""
        query = "SELECT * FROM stock_lots WHERE user_id = ?"
        params: list[str] = [user_id]
        if symbol:
            query += " AND symbol = ?"
            params.append(symbol.upper())
        if statuses:
            query += f" AND status IN ({', '.join('?' for _ in statuses)})"
            params.extend(s.value for s in statuses)
        query += " ORDER BY acquired_date, seq"
        cursor = self.conn.execute(query, params)
        return [self._lot_from_row(row) for row in _rows(cursor)]

    def get_open_lots(self, user_id: str, symbol: str) -> list[StockLot]:
        """Open or partially consumed lots with shares left, oldest first."""
        lots = self.get_lots(user_id, symbol, [LotStatus.OPEN, LotStatus.PARTIAL])
        return [lot for lot in lots if lot.remaining_quantity > 0]

    def update_lot_remaining(
        self, user_id: str, lot_id: str, remaining: Decimal, status: LotStatus
    ) -> None:
        self.conn.execute(
            "UPDATE stock_lots SET remaining_quantity = ?, status = ? WHERE user_id = ? AND id = ?",
            (str(remaining), status.value, user_id, lot_id),
        )

    def update_lot_basis(
        self,
        user_id: str,
        lot_id: str,
        cost_per_share: Decimal,
        total_cost_basis: int,
        wash_sale_adjustment: int,
        wash_sale_disallowed: int,
        wash_sale_source_id: str,
    ) -> None:
        """Write a wash-sale basis adjustment onto a replacement lot."""
        self.conn.execute(
            """UPDATE stock_lots
               SET cost_per_share = ?, total_cost_basis = ?, wash_sale_adjustment = ?,
                   wash_sale_disallowed = ?, wash_sale_source_id = ?
               WHERE user_id = ? AND id = ?""",
            (
                str(cost_per_share),
                total_cost_basis,
                wash_sale_adjustment,
                wash_sale_disallowed,
                wash_sale_source_id,
                user_id,
                lot_id,
            ),
        )

    @staticmethod
    def _lot_from_row(row: dict) -> StockLot:
        return StockLot(
            id=row["id"],
            user_id=row["user_id"],
            symbol=row["symbol"],
            acquired_date=date.fromisoformat(row["acquired_date"]),
            original_quantity=Decimal(row["original_quantity"]),
            remaining_quantity=Decimal(row["remaining_quantity"]),
            cost_per_share=Decimal(row["cost_per_share"]),
            total_cost_basis=row["total_cost_basis"],
            status=LotStatus(row["status"]),
            wash_sale_adjustment=row["wash_sale_adjustment"],
            wash_sale_disallowed=row["wash_sale_disallowed"],
            wash_sale_source_id=row["wash_sale_source_id"],
            source_txn_id=row["source_txn_id"],
        )

    # --- Dispositions ---

    def save_disposition(self, disposition: Disposition) -> None:
        self.conn.execute(
            """INSERT INTO lot_dispositions
               (id, user_id, lot_id, sale_txn_id, disposed_date, quantity_disposed,
                proceeds_per_share, total_proceeds, fees_allocated,
                cost_basis_disposed, realized_gain_loss, holding_period_days,
                is_long_term, matching_method, is_wash_sale, wash_sale_loss)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                disposition.id,
                disposition.user_id,
                disposition.lot_id,
                disposition.sale_txn_id,
                disposition.disposed_date.isoformat(),
                str(disposition.quantity_disposed),
                str(disposition.proceeds_per_share),
                disposition.total_proceeds,
                disposition.fees_allocated,
                disposition.cost_basis_disposed,
                disposition.realized_gain_loss,
                disposition.holding_period_days,
                int(disposition.is_long_term),
                disposition.matching_method.value,
                int(disposition.is_wash_sale),
                disposition.wash_sale_loss,
            ),
        )

    def get_disposition(self, user_id: str, disposition_id: str) -> Disposition | None:
        cursor = self.conn.execute(
            "SELECT * FROM lot_dispositions WHERE user_id = ? AND id = ?",
            (user_id, disposition_id),
        )
        rows = _rows(cursor)
        return self._disposition_from_row(rows[0]) if rows else None

    def get_dispositions(
        self,
        user_id: str,
        lot_id: str | None = None,
        losses_only: bool = False,
    ) -> list[Disposition]:
        query = "SELECT * FROM lot_dispositions WHERE user_id = ?"
        params: list[str] = [user_id]
        if lot_id:
            query += " AND lot_id = ?"
            params.append(lot_id)
        if losses_only:
            query += " AND realized_gain_loss < 0"
        query += " ORDER BY disposed_date, rowid"
        cursor = self.conn.execute(query, params)
        return [self._disposition_from_row(row) for row in _rows(cursor)]

    def mark_disposition_wash_sale(
        self, user_id: str, disposition_id: str, wash_sale_loss: int
    ) -> None:
        self.conn.execute(
            """UPDATE lot_dispositions SET is_wash_sale = 1, wash_sale_loss = ?
               WHERE user_id = ? AND id = ?""",
            (wash_sale_loss, user_id, disposition_id),
        )

    @staticmethod
    def _disposition_from_row(row: dict) -> Disposition:
        return Disposition(
            id=row["id"],
            user_id=row["user_id"],
            lot_id=row["lot_id"],
            sale_txn_id=row["sale_txn_id"],
            disposed_date=date.fromisoformat(row["disposed_date"]),
            quantity_disposed=Decimal(row["quantity_disposed"]),
            proceeds_per_share=Decimal(row["proceeds_per_share"]),
            total_proceeds=row["total_proceeds"],
            fees_allocated=row["fees_allocated"],
            cost_basis_disposed=row["cost_basis_disposed"],
            realized_gain_loss=row["realized_gain_loss"],
            holding_period_days=row["holding_period_days"],
            is_long_term=bool(row["is_long_term"]),
            matching_method=MatchingMethod(row["matching_method"]),
            is_wash_sale=bool(row["is_wash_sale"]),
            wash_sale_loss=row["wash_sale_loss"],
        )

    # --- Option positions ---

    def save_position(self, position: OptionPosition) -> None:
        self.conn.execute(
            """INSERT INTO trading_positions
               (id, user_id, symbol, underlying, option_type, strike, expiration,
                position_type, quantity, remaining_quantity, cost_basis,
                open_price, open_fees, open_date, status, strategy, trade_num,
                open_txn_id)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                position.id,
                position.user_id,
                position.symbol,
                position.underlying,
                position.option_type.value if position.option_type else None,
                _opt_str(position.strike),
                position.expiration.isoformat() if position.expiration else None,
                position.position_type.value,
                str(position.quantity),
                str(position.remaining_quantity),
                position.cost_basis,
                str(position.open_price),
                str(position.open_fees),
                position.open_date.isoformat(),
                position.status.value,
                position.strategy,
                position.trade_num,
                position.open_txn_id,
            ),
        )

    def update_position_close(self, position: OptionPosition) -> None:
        """Persist the closing fields of a (partially) closed position."""
        self.conn.execute(
            """UPDATE trading_positions
               SET remaining_quantity = ?, status = ?, close_price = ?, close_fees = ?,
                   close_date = ?, proceeds = ?, realized_pl = ?, close_txn_id = ?
               WHERE user_id = ? AND id = ?""",
            (
                str(position.remaining_quantity),
                position.status.value,
                _opt_str(position.close_price),
                _opt_str(position.close_fees),
                position.close_date.isoformat() if position.close_date else None,
                position.proceeds,
                position.realized_pl,
                position.close_txn_id,
                position.user_id,
                position.id,
            ),
        )

    def get_position(self, user_id: str, position_id: str) -> OptionPosition | None:
        cursor = self.conn.execute(
            "SELECT * FROM trading_positions WHERE user_id = ? AND id = ?",
            (user_id, position_id),
        )
        rows = _rows(cursor)
        return self._position_from_row(rows[0]) if rows else None

    def get_positions(
        self,
        user_id: str,
        status: PositionStatus | None = None,
        position_type: PositionType | None = None,
        underlying: str | None = None,
    ) -> list[OptionPosition]:
        """Retrieve a user's positions in open order (oldest first)."""
        query = "SELECT * FROM trading_positions WHERE user_id = ?"
        params: list[str] = [user_id]
        if status:
            query += " AND status = ?"
            params.append(status.value)
        if position_type:
            query += " AND position_type = ?"
            params.append(position_type.value)
        if underlying:
            query += " AND underlying = ?"
            params.append(underlying.upper())
        query += " ORDER BY open_date, rowid"
        cursor = self.conn.execute(query, params)
        return [self._position_from_row(row) for row in _rows(cursor)]

    @staticmethod
    def _position_from_row(row: dict) -> OptionPosition:
        return OptionPosition(
            id=row["id"],
            user_id=row["user_id"],
            symbol=row["symbol"],
            underlying=row["underlying"],
            option_type=OptionType(row["option_type"]) if row["option_type"] else None,
            strike=_opt_decimal(row["strike"]),
            expiration=_opt_date(row["expiration"]),
            position_type=PositionType(row["position_type"]),
            quantity=Decimal(row["quantity"]),
            remaining_quantity=Decimal(row["remaining_quantity"]),
            cost_basis=row["cost_basis"],
            open_price=Decimal(row["open_price"]),
            open_fees=Decimal(row["open_fees"]),
            open_date=date.fromisoformat(row["open_date"]),
            status=PositionStatus(row["status"]),
            close_price=_opt_decimal(row["close_price"]),
            close_fees=_opt_decimal(row["close_fees"]),
            close_date=_opt_date(row["close_date"]),
            proceeds=row["proceeds"],
            realized_pl=row["realized_pl"],
            strategy=row["strategy"],
            trade_num=row["trade_num"],
            open_txn_id=row["open_txn_id"],
            close_txn_id=row["close_txn_id"],
        )

    # --- Wash-sale adjustment markers ---

    def save_wash_sale_adjustment(self, user_id: str, violation: WashSaleViolation) -> bool:
        """Record an applied (trigger, replacement) pair. False if already recorded."""
        cursor = self.conn.execute(
            """INSERT OR IGNORE INTO wash_sale_adjustments
               (user_id, trigger_kind, trigger_id, replacement_kind, replacement_id,
                disallowed_loss)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (user_id, *violation.pair_key, violation.disallowed_loss),
        )
        return cursor.rowcount > 0

    def get_wash_sale_adjustments(self, user_id: str) -> list[dict]:
        cursor = self.conn.execute(
            "SELECT * FROM wash_sale_adjustments WHERE user_id = ? ORDER BY id",
            (user_id,),
        )
        return _rows(cursor)
