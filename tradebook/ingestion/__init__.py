"""Ingestion adapters for importing normalized trade feeds."""

from tradebook.ingestion.base import BaseAdapter, ImportResult
from tradebook.ingestion.feed import JsonFeedAdapter

__all__ = ["BaseAdapter", "ImportResult", "JsonFeedAdapter"]
