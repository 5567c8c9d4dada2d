"""Reference adapters for the delivery and ledger store ports."""

from __future__ import annotations

from .delivery import HttpConnectionDelivery
from .memory import InMemoryLedgerStore

__all__ = [
    "HttpConnectionDelivery",
    "InMemoryLedgerStore",
]
