"""Data access layer: record store interface, expressions, models, and errors."""

from shared.dal.errors import ConditionalCheckFailedError, InvalidUpdateError, StoreError
from shared.dal.expressions import Update, attr, attribute_exists, attribute_not_exists
from shared.dal.models import RecordModel
from shared.dal.store import TABLE_KEYS, Item, RecordStore, Table

__all__ = [
    "TABLE_KEYS",
    "ConditionalCheckFailedError",
    "InvalidUpdateError",
    "Item",
    "RecordModel",
    "RecordStore",
    "StoreError",
    "Table",
    "Update",
    "attr",
    "attribute_exists",
    "attribute_not_exists",
]
