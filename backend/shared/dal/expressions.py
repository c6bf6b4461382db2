"""Attribute-path update and condition expressions for the record store.

Paths are dotted attribute names with optional list indexes, for example
``hands[2].played_tiles``. Conditions are evaluated against the stored item
(``None`` when the record does not exist) and updates produce a new item
without mutating their input, so a store can evaluate, apply, and write in one
step and reject the whole operation when the condition does not hold.

A ``null`` attribute is treated the same as an absent one: records are dumped
from pydantic models, where an unset optional field serializes as ``None``.
"""

from __future__ import annotations

import copy
import operator
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from shared.dal.errors import InvalidUpdateError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

PathPart = str | int
Comparator = Literal["=", "<>", "<", "<=", ">", ">="]

_SEGMENT_PATTERN = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)((?:\[\d+\])*)$")
_INDEX_PATTERN = re.compile(r"\[(\d+)\]")

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "=": operator.eq,
    "<>": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class _Missing:
    def __repr__(self) -> str:
        return "<missing>"


MISSING: Any = _Missing()


def parse_path(path: str) -> tuple[PathPart, ...]:
    """Split ``a.b[1].c`` into ``("a", "b", 1, "c")``."""
    parts: list[PathPart] = []
    for segment in path.split("."):
        match = _SEGMENT_PATTERN.match(segment)
        if match is None:
            raise InvalidUpdateError(f"Invalid attribute path: {path!r}")
        parts.append(match.group(1))
        parts.extend(int(index) for index in _INDEX_PATTERN.findall(match.group(2)))
    return tuple(parts)


def resolve(item: Any, parts: Sequence[PathPart]) -> Any:  # noqa: ANN401
    """Return the value at ``parts`` inside ``item``, or MISSING."""
    current = item
    for part in parts:
        if isinstance(part, int):
            if not isinstance(current, list) or part >= len(current):
                return MISSING
        elif not isinstance(current, dict) or part not in current:
            return MISSING
        current = current[part]
        if current is None:
            return MISSING
    return current


# ============================================================================
# Conditions
# ============================================================================


class Condition(ABC):
    """A precondition checked against the current item before a write."""

    @abstractmethod
    def evaluate(self, item: Mapping[str, Any] | None) -> bool: ...

    def __and__(self, other: Condition) -> Condition:
        return And((self, other))

    def __invert__(self) -> Condition:
        return Not(self)


@dataclass(frozen=True)
class AttributeExists(Condition):
    path: str

    def evaluate(self, item: Mapping[str, Any] | None) -> bool:
        return item is not None and resolve(item, parse_path(self.path)) is not MISSING


@dataclass(frozen=True)
class AttributeNotExists(Condition):
    path: str

    def evaluate(self, item: Mapping[str, Any] | None) -> bool:
        return item is None or resolve(item, parse_path(self.path)) is MISSING


@dataclass(frozen=True)
class Compare(Condition):
    """Compare an operand against a literal. A missing operand never matches."""

    operand: Attr | Size
    op: Comparator
    value: Any

    def evaluate(self, item: Mapping[str, Any] | None) -> bool:
        if item is None:
            return False
        actual = self.operand.value_of(item)
        if actual is MISSING:
            return False
        try:
            return bool(_OPERATORS[self.op](actual, self.value))
        except TypeError:
            return False


@dataclass(frozen=True)
class Contains(Condition):
    """True when the list (or string) at ``path`` contains ``value``."""

    path: str
    value: Any

    def evaluate(self, item: Mapping[str, Any] | None) -> bool:
        if item is None:
            return False
        container = resolve(item, parse_path(self.path))
        return isinstance(container, (list, str)) and self.value in container


@dataclass(frozen=True)
class Not(Condition):
    condition: Condition

    def evaluate(self, item: Mapping[str, Any] | None) -> bool:
        return not self.condition.evaluate(item)


@dataclass(frozen=True)
class And(Condition):
    conditions: tuple[Condition, ...]

    def evaluate(self, item: Mapping[str, Any] | None) -> bool:
        return all(condition.evaluate(item) for condition in self.conditions)

    def __and__(self, other: Condition) -> Condition:
        return And((*self.conditions, other))


class _Comparable:
    def eq(self, value: Any) -> Compare:  # noqa: ANN401
        return Compare(self, "=", value)  # type: ignore[arg-type]

    def ne(self, value: Any) -> Compare:  # noqa: ANN401
        return Compare(self, "<>", value)  # type: ignore[arg-type]

    def lt(self, value: Any) -> Compare:  # noqa: ANN401
        return Compare(self, "<", value)  # type: ignore[arg-type]

    def lte(self, value: Any) -> Compare:  # noqa: ANN401
        return Compare(self, "<=", value)  # type: ignore[arg-type]

    def gt(self, value: Any) -> Compare:  # noqa: ANN401
        return Compare(self, ">", value)  # type: ignore[arg-type]

    def gte(self, value: Any) -> Compare:  # noqa: ANN401
        return Compare(self, ">=", value)  # type: ignore[arg-type]


@dataclass(frozen=True)
class Attr(_Comparable):
    path: str

    def value_of(self, item: Mapping[str, Any]) -> Any:  # noqa: ANN401
        return resolve(item, parse_path(self.path))

    def exists(self) -> AttributeExists:
        return AttributeExists(self.path)

    def not_exists(self) -> AttributeNotExists:
        return AttributeNotExists(self.path)

    def size(self) -> Size:
        return Size(self)

    def contains(self, value: Any) -> Contains:  # noqa: ANN401
        return Contains(self.path, value)


@dataclass(frozen=True)
class Size(_Comparable):
    attr: Attr

    def value_of(self, item: Mapping[str, Any]) -> Any:  # noqa: ANN401
        value = self.attr.value_of(item)
        if isinstance(value, (list, dict, str)):
            return len(value)
        return MISSING


def attr(path: str) -> Attr:
    return Attr(path)


def attribute_exists(path: str) -> AttributeExists:
    return AttributeExists(path)


def attribute_not_exists(path: str) -> AttributeNotExists:
    return AttributeNotExists(path)


# ============================================================================
# Updates
# ============================================================================


class Update:
    """An ordered list of SET / ADD / APPEND / REMOVE actions on attribute paths.

    - SET replaces the value (a list index equal to the list length appends).
    - ADD increments a number; a missing attribute counts as 0.
    - APPEND concatenates to a list; a missing attribute counts as [].
    - REMOVE deletes a map key or a list element.

    Intermediate path segments must already exist.
    """

    def __init__(self) -> None:
        self._actions: list[tuple[str, str, Any]] = []

    def set(self, path: str, value: Any) -> Update:  # noqa: ANN401
        self._actions.append(("SET", path, value))
        return self

    def add(self, path: str, amount: int) -> Update:
        self._actions.append(("ADD", path, amount))
        return self

    def append(self, path: str, values: Sequence[Any]) -> Update:
        self._actions.append(("APPEND", path, list(values)))
        return self

    def remove(self, path: str) -> Update:
        self._actions.append(("REMOVE", path, None))
        return self

    def __bool__(self) -> bool:
        return bool(self._actions)

    def __repr__(self) -> str:
        return "Update(" + ", ".join(f"{action} {path}" for action, path, _ in self._actions) + ")"

    def apply(self, item: Mapping[str, Any]) -> dict[str, Any]:
        """Return a copy of ``item`` with every action applied in order."""
        result = copy.deepcopy(dict(item))
        for action, path, value in self._actions:
            parts = parse_path(path)
            container = _container_for(result, parts, path)
            last = parts[-1]
            if action == "REMOVE":
                _remove(container, last)
                continue
            current = resolve(container, (last,))
            if action == "SET":
                new_value = copy.deepcopy(value)
            elif action == "ADD":
                base = 0 if current is MISSING else current
                if isinstance(base, bool) or not isinstance(base, (int, float)):
                    raise InvalidUpdateError(f"ADD target {path!r} is not a number")
                new_value = base + value
            else:
                base = [] if current is MISSING else current
                if not isinstance(base, list):
                    raise InvalidUpdateError(f"APPEND target {path!r} is not a list")
                new_value = base + copy.deepcopy(value)
            _assign(container, last, new_value, path)
        return result


def _container_for(item: dict[str, Any], parts: tuple[PathPart, ...], path: str) -> Any:  # noqa: ANN401
    container: Any = item
    for part in parts[:-1]:
        container = resolve(container, (part,))
        if container is MISSING:
            raise InvalidUpdateError(f"Path {path!r} does not exist")
    return container


def _assign(container: Any, key: PathPart, value: Any, path: str) -> None:  # noqa: ANN401
    if isinstance(key, int):
        if not isinstance(container, list) or key > len(container):
            raise InvalidUpdateError(f"List index out of range in {path!r}")
        if key == len(container):
            container.append(value)
        else:
            container[key] = value
        return
    if not isinstance(container, dict):
        raise InvalidUpdateError(f"Path {path!r} does not address a map attribute")
    container[key] = value


def _remove(container: Any, key: PathPart) -> None:  # noqa: ANN401
    if isinstance(key, int):
        if isinstance(container, list) and key < len(container):
            del container[key]
    elif isinstance(container, dict):
        container.pop(key, None)
