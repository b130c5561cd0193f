"""Typer CLI interface for Tradebook."""

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from tradebook.db.migrations import migrate
from tradebook.db.repository import TradeRepository
from tradebook.db.schema import create_schema
from tradebook.db.seed import seed_trading_accounts
from tradebook.exceptions import TradebookError
from tradebook.models.enums import LotStatus, MatchingMethod
from tradebook.models.lots import LotSelection
from tradebook.money import format_cents

DEFAULT_DB = Path.home() / ".tradebook" / "tradebook.db"

app = typer.Typer(
    name="tradebook",
    help="Tradebook: double-entry trade ledger with tax-lot and wash-sale tracking.",
    no_args_is_help=True,
)

DbOption = typer.Option(
    DEFAULT_DB,
    "--db",
    envvar="TRADEBOOK_DB",
    help="Path to the SQLite database file",
)
UserOption = typer.Option("default", "--user", "-u", envvar="TRADEBOOK_USER", help="Account owner")
DateOption = typer.Option(None, "--date", "-d", formats=["%Y-%m-%d"], help="Trade date (default: today)")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Tradebook: double-entry trade ledger with tax-lot and wash-sale tracking."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _open_repo(db: Path) -> TradeRepository:
    """Open (creating if needed) the database and make sure accounts exist."""
    db.parent.mkdir(parents=True, exist_ok=True)
    conn = create_schema(db)
    migrate(conn)
    repo = TradeRepository(conn)
    seed_trading_accounts(repo)
    return repo


def _decimal(value: str, name: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise typer.BadParameter(f"{name} must be a number, got '{value}'")


def _trade_date(value: datetime | None) -> date:
    return value.date() if value else date.today()


def _fail(exc: Exception) -> NoReturn:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(1)


@app.command()
def init(db: Path = DbOption) -> None:
    """Create the database and install the trading chart of accounts."""
    repo = _open_repo(db)
    count = len(repo.list_accounts())
    repo.conn.close()
    typer.echo(f"Database ready at {db} ({count} accounts)")


@app.command(name="import")
def import_cmd(
    file_path: Path = typer.Argument(..., help="JSON feed of normalized trade records"),
    user: str = UserOption,
    db: Path = DbOption,
) -> None:
    """Import a normalized trade feed and book every record."""
    from tradebook.engines.processor import TransactionProcessor
    from tradebook.ingestion.feed import JsonFeedAdapter

    adapter = JsonFeedAdapter()
    try:
        result = adapter.parse(file_path)
    except (FileNotFoundError, TradebookError) as exc:
        _fail(exc)

    problems = adapter.validate(result)
    if problems:
        for problem in problems:
            typer.echo(f"  - {problem}", err=True)
        typer.echo(f"Error: {file_path.name} failed validation", err=True)
        raise typer.Exit(1)

    repo = _open_repo(db)
    try:
        summary = TransactionProcessor(repo).process(user, result.records)
    except TradebookError as exc:
        _fail(exc)
    finally:
        repo.conn.close()

    typer.echo(f"Imported {len(result.records)} records from {result.source}:")
    typer.echo(f"  Lots created:      {summary.lots_created}")
    typer.echo(f"  Dispositions:      {summary.dispositions}")
    typer.echo(f"  Positions opened:  {summary.positions_opened}")
    typer.echo(f"  Positions closed:  {summary.positions_closed}")
    typer.echo(f"  Settlements:       {summary.settlements}")
    typer.echo(f"  Journal entries:   {summary.journal_transactions}")
    typer.echo(f"  Realized P&L:      {format_cents(summary.realized_gain_loss)}")


@app.command()
def buy(
    symbol: str = typer.Argument(..., help="Ticker symbol"),
    quantity: str = typer.Argument(..., help="Number of shares"),
    price: str = typer.Argument(..., help="Price per share"),
    fees: str = typer.Option("0", "--fees", help="Commissions and fees"),
    trade_date: datetime | None = DateOption,
    user: str = UserOption,
    db: Path = DbOption,
) -> None:
    """Record a stock purchase as a new tax lot."""
    from tradebook.engines.stock_sales import StockLedgerEngine

    repo = _open_repo(db)
    try:
        lot = StockLedgerEngine(repo).record_purchase(
            user,
            symbol,
            _decimal(quantity, "quantity"),
            _decimal(price, "price"),
            _trade_date(trade_date),
            _decimal(fees, "fees"),
        )
    except TradebookError as exc:
        _fail(exc)
    finally:
        repo.conn.close()

    typer.echo(
        f"Lot {lot.id}: {lot.original_quantity} {lot.symbol} on {lot.acquired_date}, "
        f"basis {format_cents(lot.total_cost_basis)}"
    )


def _parse_selection(value: str) -> LotSelection:
    lot_id, sep, qty = value.partition(":")
    if not sep:
        raise typer.BadParameter(f"--lot must look like LOT_ID:QUANTITY, got '{value}'")
    return LotSelection(lot_id=lot_id, quantity=_decimal(qty, "lot quantity"))


@app.command()
def sell(
    symbol: str = typer.Argument(..., help="Ticker symbol"),
    quantity: str = typer.Argument(..., help="Number of shares"),
    price: str = typer.Argument(..., help="Price per share"),
    method: MatchingMethod = typer.Option(MatchingMethod.FIFO, "--method", "-m", help="Lot matching method"),
    lots: list[str] | None = typer.Option(None, "--lot", help="LOT_ID:QUANTITY for SPECIFIC matching (repeatable)"),
    fees: str = typer.Option("0", "--fees", help="Commissions and fees"),
    trade_date: datetime | None = DateOption,
    user: str = UserOption,
    db: Path = DbOption,
) -> None:
    """Sell shares, matching them to open lots."""
    from tradebook.engines.stock_sales import StockLedgerEngine

    selections = [_parse_selection(v) for v in lots] if lots else None
    repo = _open_repo(db)
    try:
        result = StockLedgerEngine(repo).match_sale(
            user,
            symbol,
            _decimal(quantity, "quantity"),
            _decimal(price, "price"),
            _trade_date(trade_date),
            _decimal(fees, "fees"),
            method=method,
            selected_lots=selections,
        )
    except TradebookError as exc:
        _fail(exc)
    finally:
        repo.conn.close()

    typer.echo(f"Sold {quantity} {symbol.upper()} via {result.method.value} ({len(result.dispositions)} lots)")
    typer.echo(f"  Proceeds:    {format_cents(result.total_proceeds)}")
    typer.echo(f"  Cost basis:  {format_cents(result.total_cost_basis)}")
    typer.echo(f"  Short-term:  {format_cents(result.short_term_gain)}")
    typer.echo(f"  Long-term:   {format_cents(result.long_term_gain)}")


@app.command()
def preview(
    symbol: str = typer.Argument(..., help="Ticker symbol"),
    quantity: str = typer.Argument(..., help="Number of shares"),
    price: str = typer.Argument(..., help="Price per share"),
    fees: str = typer.Option("0", "--fees", help="Commissions and fees"),
    st_rate: str = typer.Option("0.35", "--st-rate", help="Short-term tax rate"),
    lt_rate: str = typer.Option("0.15", "--lt-rate", help="Long-term tax rate"),
    trade_date: datetime | None = DateOption,
    user: str = UserOption,
    db: Path = DbOption,
) -> None:
    """Compare matching methods for a hypothetical sale."""
    from tradebook.engines.stock_sales import StockLedgerEngine

    repo = _open_repo(db)
    try:
        result = StockLedgerEngine(repo).preview_sale(
            user,
            symbol,
            _decimal(quantity, "quantity"),
            _decimal(price, "price"),
            _trade_date(trade_date),
            _decimal(fees, "fees"),
            st_rate=_decimal(st_rate, "st-rate"),
            lt_rate=_decimal(lt_rate, "lt-rate"),
        )
    except TradebookError as exc:
        _fail(exc)
    finally:
        repo.conn.close()

    table = Table(title=f"Sale preview: {quantity} {result.symbol} @ {price}")
    table.add_column("Method")
    table.add_column("Cost basis", justify="right")
    table.add_column("Short-term", justify="right")
    table.add_column("Long-term", justify="right")
    table.add_column("Est. tax", justify="right")
    for scenario in result.scenarios:
        table.add_row(
            scenario.method.value,
            format_cents(scenario.plan.total_cost_basis),
            format_cents(scenario.plan.short_term_gain),
            format_cents(scenario.plan.long_term_gain),
            format_cents(scenario.estimated_tax),
        )
    Console().print(table)
    typer.echo(f"Lowest estimated tax: {result.best_method.value}")


@app.command(name="lots")
def lots_cmd(
    symbol: str | None = typer.Argument(None, help="Only show this symbol"),
    show_all: bool = typer.Option(False, "--all", "-a", help="Include closed lots"),
    user: str = UserOption,
    db: Path = DbOption,
) -> None:
    """List tax lots."""
    repo = _open_repo(db)
    statuses = None if show_all else [LotStatus.OPEN, LotStatus.PARTIAL]
    rows = repo.get_lots(user, symbol, statuses)
    repo.conn.close()

    if not rows:
        typer.echo("No lots found.")
        return

    table = Table(title="Tax lots")
    table.add_column("Lot")
    table.add_column("Symbol")
    table.add_column("Acquired")
    table.add_column("Remaining", justify="right")
    table.add_column("Basis", justify="right")
    table.add_column("Wash adj.", justify="right")
    table.add_column("Status")
    for lot in rows:
        table.add_row(
            lot.id[:8],
            lot.symbol,
            lot.acquired_date.isoformat(),
            f"{lot.remaining_quantity}/{lot.original_quantity}",
            format_cents(lot.total_cost_basis),
            format_cents(lot.wash_sale_adjustment),
            lot.status.value,
        )
    Console().print(table)


@app.command(name="wash-sales")
def wash_sales(
    apply: bool = typer.Option(False, "--apply", help="Write basis adjustments for the violations found"),
    user: str = UserOption,
    db: Path = DbOption,
) -> None:
    """Detect wash sales across stock and option trades."""
    from tradebook.engines.wash_sale import WashSaleDetector

    repo = _open_repo(db)
    detector = WashSaleDetector(repo)
    try:
        report = detector.detect_wash_sales(user)
        if not report.violations:
            typer.echo("No wash sales found.")
            return

        table = Table(title="Wash sales")
        table.add_column("Symbol")
        table.add_column("Sold")
        table.add_column("Loss", justify="right")
        table.add_column("Replacement")
        table.add_column("Bought")
        table.add_column("Units", justify="right")
        table.add_column("Disallowed", justify="right")
        for v in report.violations:
            table.add_row(
                v.symbol,
                v.sale_date.isoformat(),
                format_cents(v.realized_loss),
                v.replacement_kind.value,
                v.replacement_date.isoformat(),
                str(v.shares_affected),
                format_cents(v.disallowed_loss),
            )
        Console().print(table)

        summary = report.summary
        typer.echo(f"Violations: {summary.total_violations}")
        typer.echo(f"Total disallowed: {format_cents(summary.total_disallowed_losses)}")
        typer.echo(f"Symbols affected: {', '.join(summary.symbols_affected)}")

        if apply:
            result = detector.apply_wash_sale_adjustments(user, report.violations)
            typer.echo(f"Applied {result.updated} adjustments")
    except TradebookError as exc:
        _fail(exc)
    finally:
        repo.conn.close()


@app.command()
def balances(
    show_zero: bool = typer.Option(False, "--show-zero", help="Include accounts with no activity"),
    db: Path = DbOption,
) -> None:
    """Show the trial balance and check ledger integrity."""
    from tradebook.engines.ledger import LedgerService

    repo = _open_repo(db)
    ledger = LedgerService(repo)
    lines = ledger.trial_balance()
    report = ledger.verify_integrity()
    repo.conn.close()

    table = Table(title="Trial balance")
    table.add_column("Code")
    table.add_column("Account")
    table.add_column("Side")
    table.add_column("Balance", justify="right")
    for line in lines:
        if not show_zero and line.settled_balance == 0 and line.computed_balance == 0:
            continue
        table.add_row(line.code, line.name, line.balance_side.value, format_cents(line.settled_balance))
    Console().print(table)

    if report.ok:
        typer.echo("Ledger OK")
        return
    for txn_id in report.unbalanced_transactions:
        typer.echo(f"Unbalanced transaction: {txn_id}", err=True)
    for code in report.mismatched_accounts:
        typer.echo(f"Balance mismatch: {code}", err=True)
    raise typer.Exit(1)
