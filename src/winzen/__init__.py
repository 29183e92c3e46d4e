"""Winzen - prediction market AMM, position ledger, settlement, and bot simulation."""

__version__ = "0.1.0"
