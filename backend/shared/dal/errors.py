"""Typed errors raised by record store implementations."""


class StoreError(Exception):
    """Base class for record store failures."""


class ConditionalCheckFailedError(StoreError):
    """The precondition of a put/update/delete did not hold; nothing was written."""

    def __init__(self, table: str, key: str) -> None:
        super().__init__(f"Conditional check failed for {table}/{key}")
        self.table = table
        self.key = key


class InvalidUpdateError(StoreError):
    """An update expression cannot be applied to the stored item (bad path or type)."""
