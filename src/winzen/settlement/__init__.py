"""Market resolution: payouts, skill ratings, near-miss consolation, creator settlement."""

from winzen.settlement.engine import SettlementReport, resolve

__all__ = ["SettlementReport", "resolve"]
