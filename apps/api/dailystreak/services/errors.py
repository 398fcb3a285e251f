from __future__ import annotations


class InvalidInputError(ValueError):
    """Rejected before any computation: blank user id, bad date label, unknown time zone."""


class StatsInvariantError(RuntimeError):
    """Freshly computed stats broke one of their own invariants."""


class StoreUnavailableError(Exception):
    def __init__(self, operation: str, *, attempts: int) -> None:
        super().__init__(f"Store unavailable: {operation} failed after {attempts} attempt(s)")
        self.operation = operation
        self.attempts = attempts
