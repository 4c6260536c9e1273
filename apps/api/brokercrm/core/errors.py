from __future__ import annotations


class DataAccessError(Exception):
    """Raised when a read against the lead or user tables fails."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"{operation} failed: {message}")
