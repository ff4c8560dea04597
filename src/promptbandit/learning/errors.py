"""Learning-layer exceptions.

Only persistence can fail. Selection never raises to the agent turn.
"""

from __future__ import annotations


class StoreError(Exception):
    """A posterior or trace read/write failed."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class StoreTimeoutError(StoreError):
    """A store write did not finish within its timeout."""

    def __init__(self, operation: str, timeout_s: float) -> None:
        super().__init__(operation, f"timed out after {timeout_s:.1f}s")
        self.timeout_s = timeout_s
