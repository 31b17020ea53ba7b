"""Canonical metadata filter AST shared by every vector backend.

A ``MetadataFilter`` is an AND of ``FilterCondition(field, op, value)``
triples. Shared code only ever builds this AST; each backend translates it to
its own query language (the in-memory store evaluates it directly via
``matches``, pgvector renders SQL over JSONB, OpenSearch renders bool-filter
clauses).

Supported operators
- ``eq``: scalar equality
- ``gte`` / ``lte`` / ``gt`` / ``lt``: numeric range
- ``in``: value is one of a set
- ``contains``: metadata value is a list that contains the given element
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Tuple, Union

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class FilterOp(Enum):
    """Filter operators understood by all backends."""
    EQ = "eq"
    GTE = "gte"
    LTE = "lte"
    GT = "gt"
    LT = "lt"
    IN = "in"
    CONTAINS = "contains"


RANGE_OPS = frozenset({FilterOp.GTE, FilterOp.LTE, FilterOp.GT, FilterOp.LT})


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class FilterCondition:
    """A single ``field <op> value`` predicate over entry metadata."""
    field: str
    op: FilterOp
    value: Any

    def __post_init__(self):
        if not _FIELD_RE.match(self.field):
            raise ValueError(f"Invalid metadata field name: {self.field!r}")
        if not isinstance(self.op, FilterOp):
            object.__setattr__(self, "op", FilterOp(self.op))
        if self.op in RANGE_OPS and not _is_number(self.value):
            raise ValueError(f"Range operator {self.op.value} requires a number, got {self.value!r}")
        if self.op is FilterOp.IN:
            if isinstance(self.value, (str, bytes)) or not hasattr(self.value, "__iter__"):
                raise ValueError("'in' operator requires a collection of values")
            object.__setattr__(self, "value", tuple(self.value))

    def matches(self, metadata: Mapping[str, Any]) -> bool:
        """Evaluate this condition against a metadata mapping."""
        if self.field not in metadata:
            return False
        actual = metadata[self.field]

        if self.op is FilterOp.EQ:
            return actual == self.value
        if self.op is FilterOp.IN:
            return actual in self.value
        if self.op is FilterOp.CONTAINS:
            return isinstance(actual, (list, tuple)) and self.value in actual

        if not _is_number(actual):
            return False
        if self.op is FilterOp.GTE:
            return actual >= self.value
        if self.op is FilterOp.LTE:
            return actual <= self.value
        if self.op is FilterOp.GT:
            return actual > self.value
        return actual < self.value


@dataclass(frozen=True)
class MetadataFilter:
    """Conjunction of filter conditions.

    Instances are immutable; ``where`` returns a new filter with one more
    condition so filters can be built fluently::

        MetadataFilter().where("folder", "eq", "inbox").where("date", "gte", 0)
    """
    conditions: Tuple[FilterCondition, ...] = ()

    def where(self, field: str, op: Union[FilterOp, str], value: Any) -> "MetadataFilter":
        return MetadataFilter(self.conditions + (FilterCondition(field, FilterOp(op), value),))

    def matches(self, metadata: Mapping[str, Any]) -> bool:
        return all(condition.matches(metadata) for condition in self.conditions)

    def is_empty(self) -> bool:
        return not self.conditions

    def __iter__(self) -> Iterator[FilterCondition]:
        return iter(self.conditions)

    def __len__(self) -> int:
        return len(self.conditions)

    def to_dict(self) -> Dict[str, Any]:
        """Loggable representation (``{"folder__eq": "inbox", ...}``)."""
        return {f"{c.field}__{c.op.value}": c.value for c in self.conditions}
