"""Base model for records persisted in the record store."""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class RecordModel(BaseModel):
    """Frozen record with snake_case storage fields and camelCase wire aliases.

    ``to_item()`` is the stored form; ``to_wire()`` is what clients see.
    Validation accepts either spelling.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_item(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
