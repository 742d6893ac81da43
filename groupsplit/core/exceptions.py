"""
Errors raised by the settlement engine.

Request-level failures (missing rows, permissions) are raised as
``HTTPException`` by the services; these cover the engine itself.
"""


class SettlementError(Exception):
    """Base class for settlement engine errors."""


class ValidationError(SettlementError):
    """An identifier handed to the engine is missing or malformed."""


class StorageError(SettlementError):
    """The transactional replace of pending settlements could not complete."""

    def __init__(self, message: str, group_id: int | None = None):
        super().__init__(message)
        self.group_id = group_id


class ArithmeticInvariantViolation(SettlementError):
    """Total debt and total credit differ after accumulation."""

    def __init__(self, total_debt, total_credit):
        super().__init__(
            f"Ledger is not zero-sum: debt {total_debt} != credit {total_credit}"
        )
        self.total_debt = total_debt
        self.total_credit = total_credit
