"""Validation helpers for server settings."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic_settings import EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo


def parse_string_list(value: str | list[str], *, allow_empty: bool = False) -> list[str]:
    """Parse a list of strings given either as a list, a JSON array, or CSV.

    ``'["a","b"]'`` and ``'a, b'`` both yield ``["a", "b"]``. Blank input,
    malformed JSON, and (unless ``allow_empty``) empty lists raise ValueError.
    """
    if isinstance(value, list):
        items = value
    else:
        stripped = value.strip()
        if not stripped:
            raise ValueError("String list value must not be empty")
        if stripped.startswith("["):
            try:
                items = json.loads(stripped)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON array: {e}") from e
            if not isinstance(items, list) or not all(isinstance(item, str) for item in items):
                raise ValueError("JSON value must be an array of strings")
        else:
            items = [part.strip() for part in stripped.split(",") if part.strip()]

    if not allow_empty and not items:
        raise ValueError("String list value must not be empty")
    return items


STRING_LIST_FIELDS = frozenset({"cors_origins"})


class StringListEnvSettingsSource(EnvSettingsSource):
    """Env source that hands string-list fields to validators unparsed.

    pydantic-settings JSON-decodes list fields read from the environment before
    validators run, which rejects the CSV form. Raw strings for the fields in
    STRING_LIST_FIELDS go straight to parse_string_list instead.
    """

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in STRING_LIST_FIELDS and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
