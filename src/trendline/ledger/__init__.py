"""Ledger / settlement layer: gateway client, account decoding, domain events."""

from trendline.ledger.accounts import MarketAccount, decode_market_account
from trendline.ledger.client import LedgerClient
from trendline.ledger.events import LedgerEventHandler, decode_ledger_event

__all__ = [
    "LedgerClient",
    "LedgerEventHandler",
    "MarketAccount",
    "decode_ledger_event",
    "decode_market_account",
]
