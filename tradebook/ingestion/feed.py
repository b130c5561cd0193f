"""JSON feed adapter.

Reads a file of already-normalized trade records, either a bare list or an
object with a ``records`` list. Each record carries a ``kind`` tag
(``STOCK_BUY``, ``STOCK_SELL``, an option leg action, or a settlement event)
that selects its model.
"""

import json
from decimal import Decimal
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from tradebook.engines.options import MAX_LEG_SPAN_DAYS
from tradebook.exceptions import DataValidationError
from tradebook.ingestion.base import BaseAdapter, ImportResult
from tradebook.models.feed import FeedRecord
from tradebook.models.options import BuyToClose, BuyToOpen, SellToClose, SellToOpen

_FEED = TypeAdapter(list[FeedRecord])


class JsonFeedAdapter(BaseAdapter):
    """Imports normalized JSON trade feeds."""

    def parse(self, file_path: Path) -> ImportResult:
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        raw = json.loads(file_path.read_text(), parse_float=Decimal)
        if isinstance(raw, dict):
            raw = raw.get("records", [])
        if not isinstance(raw, list):
            raise DataValidationError("records", "expected a list of trade records")

        try:
            records = _FEED.validate_python(raw)
        except ValidationError as exc:
            raise DataValidationError("records", str(exc)) from exc
        return ImportResult(source=file_path.name, records=records)

    def validate(self, data: ImportResult) -> list[str]:
        """Check for duplicate record ids and option trades spread over too many days."""
        errors = []
        seen: set[str] = set()
        for record in data.records:
            if record.id in seen:
                errors.append(f"Duplicate record id: {record.id}")
            seen.add(record.id)

        trades: dict[str, list] = {}
        for record in data.records:
            if isinstance(record, (BuyToOpen, SellToOpen, BuyToClose, SellToClose)) and record.trade_num:
                trades.setdefault(record.trade_num, []).append(record.trade_date)
        for trade_num, dates in trades.items():
            span = (max(dates) - min(dates)).days
            if span > MAX_LEG_SPAN_DAYS:
                errors.append(
                    f"Trade {trade_num}: legs span {span} days (max {MAX_LEG_SPAN_DAYS})"
                )
        return errors
