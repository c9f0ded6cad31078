"""
Engine-agnostic filter and sort criteria.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Literal, get_args


ValueType = Literal["text", "number", "datetime", "boolean"]
Operator = Literal[
    "EQUAL",
    "NOT_EQUAL",
    "CONTAINS",
    "NOT_CONTAINS",
    "STARTS_WITH",
    "ENDS_WITH",
    "GREATER_THAN",
    "GREATER_THAN_EQUAL",
    "LESS_THAN",
    "LESS_THAN_EQUAL",
    "BETWEEN",
    "NOT_BETWEEN",
    "BETWEEN_INCLUSIVE",
    "IN",
    "NOT_IN",
    "SORT",
]
Conjunction = Literal["AND", "OR"]

VALUE_TYPES: tuple[ValueType, ...] = get_args(ValueType)
OPERATORS: tuple[Operator, ...] = get_args(Operator)

# Control fields carry compiler directives instead of filter semantics.
CONTROL_FIELD_PREFIX = "solr__"
QUERY_FIELD = "solr__query"
URL_FIELD = "solr__url"
HANDLER_FIELD = "solr__handler"
PARAM_FIELD = "solr__param"
EXPAND_FIELD = "solr__expand"

MATCH_ALL_QUERY = "*:*"


@dataclass(frozen=True)
class Criterion:
    """A single filter or sort entry."""

    field: str
    value_type: ValueType
    operator: Operator
    values: tuple[Any, ...]
    conjunction: Conjunction = "AND"

    @property
    def value(self) -> Any:
        return self.values[0] if self.values else None

    @property
    def is_control(self) -> bool:
        return self.field.startswith(CONTROL_FIELD_PREFIX)


def infer_value_type(value: Any) -> ValueType:
    """Map a Python value onto a criterion value type."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float, Decimal)):
        return "number"
    if isinstance(value, date):
        return "datetime"
    return "text"


@dataclass
class Criteria:
    """Ordered criterion entries plus paging features."""

    name: str = "Search Criteria"
    entries: list[Criterion] = field(default_factory=list)
    offset: int | None = None
    limit: int | None = None

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def add(
        self,
        field_name: str,
        operator: Operator,
        *values: Any,
        value_type: ValueType | None = None,
        conjunction: Conjunction = "AND",
    ) -> "Criteria":
        if value_type is None:
            value_type = infer_value_type(values[0]) if values else "text"
        self.entries.append(
            Criterion(
                field=field_name,
                value_type=value_type,
                operator=operator,
                values=tuple(values),
                conjunction=conjunction,
            )
        )
        return self

    def add_sort(
        self,
        field_name: str,
        direction: str = "asc",
        *,
        value_type: ValueType = "text",
    ) -> "Criteria":
        return self.add(field_name, "SORT", direction, value_type=value_type)

    def add_query(self, query: str) -> "Criteria":
        return self.add(QUERY_FIELD, "EQUAL", query, value_type="text")

    def add_url(self, url: str) -> "Criteria":
        return self.add(URL_FIELD, "EQUAL", url, value_type="text")

    def add_handler(self, handler: str) -> "Criteria":
        return self.add(HANDLER_FIELD, "EQUAL", handler, value_type="text")

    def add_param(self, name: str, value: Any) -> "Criteria":
        return self.add(PARAM_FIELD, "EQUAL", name, str(value), value_type="text")

    def add_expansion(self, value: str) -> "Criteria":
        return self.add(EXPAND_FIELD, "EQUAL", value, value_type="text")

    def control_value(self, field_name: str) -> Any:
        """Return the first value of the last entry named *field_name*; later entries win."""
        value = None
        for entry in self.entries:
            if entry.field == field_name and entry.value is not None:
                value = entry.value
        return value
