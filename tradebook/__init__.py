"""Tradebook: double-entry ledger, tax-lot matching, and wash-sale detection."""

__version__ = "0.1.0"
