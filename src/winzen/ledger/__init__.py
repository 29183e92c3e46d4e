"""Position ledger: market creation, trades, valuation, and cash-out."""

from winzen.ledger.locks import MarketLocks, market_locks
from winzen.ledger.markets import create_market
from winzen.ledger.positions import cash_out, open_position, portfolio, position_value, unrealized_pnl

__all__ = [
    "MarketLocks",
    "market_locks",
    "create_market",
    "open_position",
    "cash_out",
    "portfolio",
    "position_value",
    "unrealized_pnl",
]
