"""Inbox ingestion pipeline: run tracking, incident ledger and supervisor sweep."""

__version__ = "0.1.0"
