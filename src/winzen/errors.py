"""Error taxonomy shared by the ledger, settlement, CLI, and API.

Every error carries a machine-readable ``code`` that the API maps to the
``{detail, code}`` error body.
"""

from __future__ import annotations


class WinzenError(Exception):
    """Base for all core errors."""

    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(WinzenError):
    """Bad input: amount, outcome, side switch, insufficient balance."""

    code = "invalid"


class StateConflictError(WinzenError):
    """Operation not allowed in the current state (resolved, closed, cashed out)."""

    code = "conflict"


class NotFoundError(WinzenError):
    """Referenced user, market, outcome, or position does not exist."""

    code = "not_found"
