"""
Filter string parsing helpers.
"""

from __future__ import annotations

import re
from typing import Any

from .criteria import Conjunction, Criteria, Operator, ValueType


class CriteriaParseError(ValueError):
    """Raised when filter syntax is invalid."""


_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?$")
_DATE_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?$"
)

_SORT_RE = re.compile(
    r"^\s*sort\s+([A-Za-z_][A-Za-z0-9_]*)(?:\s+(asc|desc|ascending|descending))?\s*$",
    flags=re.IGNORECASE,
)
_LIST_RE = re.compile(
    r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s+(not\s+in|in|not\s+between|between|within)\s+(.+)\s*$",
    flags=re.IGNORECASE,
)
_OP_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*(<=|>=|!=|!~|\^=|\$=|=|<|>|~|:)\s*(.+)\s*$")

_SYMBOL_OPERATORS: dict[str, Operator] = {
    "=": "EQUAL",
    ":": "EQUAL",
    "!=": "NOT_EQUAL",
    ">": "GREATER_THAN",
    ">=": "GREATER_THAN_EQUAL",
    "<": "LESS_THAN",
    "<=": "LESS_THAN_EQUAL",
    "~": "CONTAINS",
    "!~": "NOT_CONTAINS",
    "^=": "STARTS_WITH",
    "$=": "ENDS_WITH",
}
_LIST_OPERATORS: dict[str, Operator] = {
    "in": "IN",
    "not in": "NOT_IN",
    "between": "BETWEEN",
    "not between": "NOT_BETWEEN",
    "within": "BETWEEN_INCLUSIVE",
}
_TEXT_ONLY = {"CONTAINS", "NOT_CONTAINS", "STARTS_WITH", "ENDS_WITH"}
_ORDERED = {"GREATER_THAN", "GREATER_THAN_EQUAL", "LESS_THAN", "LESS_THAN_EQUAL"}


def supported_filter_syntax() -> str:
    """Return a short help text for filter syntax."""
    return (
        "Supported filter syntax: "
        "`field=value`, `field!=value`, `field>=value`, `field<=value`, "
        "`field>value`, `field<value`, `field~substring`, `field!~substring`, "
        "`field^=prefix`, `field$=suffix`, `field in (a, b)`, `field not in (a, b)`, "
        "`field between (a, b)`, `field not between (a, b)`, `field within (a, b)`, "
        "`sort field desc`; combine with comma, `and` or `or`."
    )


def parse_criteria(
    raw_filters: str | None,
    *,
    allowed_fields: set[str] | None = None,
    field_types: dict[str, ValueType] | None = None,
    criteria: Criteria | None = None,
) -> Criteria:
    """Parse a raw filter string into criteria entries."""
    target = criteria if criteria is not None else Criteria()
    if raw_filters is None or not raw_filters.strip():
        return target

    for conjunction, condition in _split_conditions(raw_filters):
        _parse_condition(
            target,
            condition,
            conjunction=conjunction,
            allowed_fields=allowed_fields,
            field_types=field_types or {},
        )
    return target


def _parse_condition(
    target: Criteria,
    condition: str,
    *,
    conjunction: Conjunction,
    allowed_fields: set[str] | None,
    field_types: dict[str, ValueType],
) -> None:
    text = condition.strip()
    if not text:
        raise CriteriaParseError("Empty filter condition.")

    sort_match = _SORT_RE.match(text)
    if sort_match:
        field = sort_match.group(1)
        _validate_field(field, allowed_fields=allowed_fields)
        target.add_sort(field, (sort_match.group(2) or "asc").lower())
        return

    list_match = _LIST_RE.match(text)
    if list_match:
        field = list_match.group(1)
        _validate_field(field, allowed_fields=allowed_fields)
        keyword = " ".join(list_match.group(2).lower().split())
        operator = _LIST_OPERATORS[keyword]
        items = _parse_list_value(list_match.group(3))
        if not items:
            raise CriteriaParseError(f"`{keyword}` filter has no values: {text!r}")
        if operator not in {"IN", "NOT_IN"} and len(items) != 2:
            raise CriteriaParseError(f"`{keyword}` filter needs exactly two values: {text!r}")
        value_type = field_types.get(field, items[0][1])
        values = [_coerce(item, value_type) for item in items]
        target.add(field, operator, *values, value_type=value_type, conjunction=conjunction)
        return

    op_match = _OP_RE.match(text)
    if not op_match:
        raise CriteriaParseError(f"Invalid filter syntax: {text!r}")

    field = op_match.group(1)
    symbol = op_match.group(2)
    _validate_field(field, allowed_fields=allowed_fields)
    item = _parse_scalar_value(op_match.group(3))
    operator = _SYMBOL_OPERATORS[symbol]

    if operator in _TEXT_ONLY:
        value_type: ValueType = "text"
    else:
        value_type = field_types.get(field, item[1])
    if operator in _ORDERED and value_type not in {"number", "datetime"}:
        raise CriteriaParseError(
            f"Operator `{symbol}` requires a numeric or date value: {text!r}"
        )

    target.add(
        field,
        operator,
        _coerce(item, value_type),
        value_type=value_type,
        conjunction=conjunction,
    )


def _validate_field(field: str, *, allowed_fields: set[str] | None) -> None:
    if not _FIELD_RE.match(field):
        raise CriteriaParseError(f"Invalid field name: {field!r}")
    if allowed_fields is not None and field not in allowed_fields:
        allowed = ", ".join(sorted(allowed_fields)) if allowed_fields else "<none>"
        raise CriteriaParseError(f"Unknown field {field!r}. Allowed fields: {allowed}")


def _connector_at(raw: str, i: int, word: str) -> bool:
    end = i + len(word)
    return (
        raw[i:end].lower() == word
        and (i == 0 or raw[i - 1].isspace())
        and (end == len(raw) or raw[end].isspace())
    )


def _split_conditions(raw: str) -> list[tuple[Conjunction, str]]:
    parts: list[tuple[Conjunction, str]] = []
    current: list[str] = []
    pending: Conjunction = "AND"
    quote: str | None = None
    depth = 0
    i = 0
    while i < len(raw):
        ch = raw[i]

        if quote is not None:
            current.append(ch)
            if ch == quote:
                quote = None
            i += 1
            continue

        if ch in {"'", '"'}:
            quote = ch
        elif ch in {"(", "["}:
            depth += 1
        elif ch in {")", "]"}:
            depth = max(depth - 1, 0)
        elif depth == 0:
            connector: Conjunction | None = None
            width = 0
            if ch == ",":
                connector, width = "AND", 1
            elif _connector_at(raw, i, "and"):
                connector, width = "AND", 3
            elif _connector_at(raw, i, "or"):
                connector, width = "OR", 2
            if connector is not None:
                pending = _flush_part(parts, current, pending, connector)
                i += width
                continue

        current.append(ch)
        i += 1

    _flush_part(parts, current, pending, "AND")
    return parts


def _flush_part(
    parts: list[tuple[Conjunction, str]],
    current: list[str],
    pending: Conjunction,
    following: Conjunction,
) -> Conjunction:
    """Store the buffered condition; return the conjunction for the next one."""
    text = "".join(current).strip()
    current.clear()
    if text:
        parts.append((pending, text))
        return following
    # A connector with nothing before it keeps the strongest pending join.
    return "OR" if "OR" in (pending, following) else "AND"


def _parse_list_value(raw_value: str) -> list[tuple[Any, ValueType, str]]:
    text = raw_value.strip()
    if text.startswith("(") and text.endswith(")"):
        text = text[1:-1]
    elif text.startswith("[") and text.endswith("]"):
        text = text[1:-1]

    if not text.strip():
        return []

    items = [item for _, item in _split_items(text)]
    return [_parse_scalar_value(item) for item in items]


def _split_items(text: str) -> list[tuple[Conjunction, str]]:
    # List items are comma separated only; words like "and" stay literal.
    parts: list[tuple[Conjunction, str]] = []
    current: list[str] = []
    quote: str | None = None
    for ch in text:
        if quote is not None:
            current.append(ch)
            if ch == quote:
                quote = None
            continue
        if ch in {"'", '"'}:
            quote = ch
        elif ch == ",":
            _flush_part(parts, current, "AND", "AND")
            continue
        current.append(ch)
    _flush_part(parts, current, "AND", "AND")
    return parts


def _parse_scalar_value(raw_value: str) -> tuple[Any, ValueType, str]:
    text = raw_value.strip()
    if not text:
        raise CriteriaParseError("Missing filter value.")

    if (text.startswith("'") and text.endswith("'") and len(text) >= 2) or (
        text.startswith('"') and text.endswith('"') and len(text) >= 2
    ):
        unquoted = text[1:-1]
        return unquoted, "text", unquoted

    lower = text.lower()
    if lower == "true":
        return True, "boolean", text
    if lower == "false":
        return False, "boolean", text
    if _NUMBER_RE.match(text):
        if "." in text:
            return float(text), "number", text
        return int(text), "number", text
    if _DATE_RE.match(text):
        return text, "datetime", text
    return text, "text", text


def _coerce(item: tuple[Any, ValueType, str], value_type: ValueType) -> Any:
    value, inferred, raw = item
    if value_type == inferred:
        return value
    # Declared field types keep the literal text; the compiler interprets it.
    return raw
