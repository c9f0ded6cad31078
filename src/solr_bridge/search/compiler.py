"""
Criteria to Solr query compilation.

Each (value type, operator) pair maps to one clause builder in
``_CLAUSE_BUILDERS``. Pairs missing from the table are unsupported and
compile to no clause at all.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Literal
from urllib.parse import parse_qsl, urlsplit

from ..config import SolrSettings
from ..errors import TranslationError
from .criteria import (
    EXPAND_FIELD,
    HANDLER_FIELD,
    MATCH_ALL_QUERY,
    PARAM_FIELD,
    QUERY_FIELD,
    URL_FIELD,
    Criteria,
    Criterion,
    Operator,
    ValueType,
)

logger = logging.getLogger(__name__)

SortDirection = Literal["asc", "desc"]
ClauseBuilder = Callable[[Criterion], "str | None"]

QUERY_OFFSET_DEFAULT = 0
QUERY_PAGESIZE_DEFAULT = 10

_QUOTE_TRIGGERS = (" ", ":", "-", "+", "/")
_DATETIME_EPSILON = timedelta(milliseconds=100)
_LEGACY_DATETIME_FORMAT = "%b-%d-%Y %H:%M:%S"


@dataclass(frozen=True)
class CompiledQuery:
    """Engine-native request produced from criteria."""

    query: str = MATCH_ALL_QUERY
    filters: tuple[str, ...] = ()
    sort: tuple[tuple[str, SortDirection], ...] = ()
    offset: int = QUERY_OFFSET_DEFAULT
    limit: int = QUERY_PAGESIZE_DEFAULT
    endpoint: str = "/select"
    params: dict[str, str] = field(default_factory=dict)
    expansion: str | None = None

    def with_window(self, offset: int, limit: int) -> "CompiledQuery":
        return replace(self, offset=offset, limit=limit)

    @property
    def sort_param(self) -> str | None:
        if not self.sort:
            return None
        return ",".join(f"{name} {direction}" for name, direction in self.sort)

    def to_params(self) -> list[tuple[str, str]]:
        """Render request parameters; ``fq`` repeats once per filter."""
        params: list[tuple[str, str]] = [("q", self.query)]
        params.extend(("fq", clause) for clause in self.filters)
        if self.sort_param is not None:
            params.append(("sort", self.sort_param))
        params.append(("start", str(self.offset)))
        params.append(("rows", str(self.limit)))
        params.extend(self.params.items())
        return params

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "filters": list(self.filters),
            "sort": [{"field": name, "direction": direction} for name, direction in self.sort],
            "offset": self.offset,
            "limit": self.limit,
            "endpoint": self.endpoint,
            "params": dict(self.params),
            "expansion": self.expansion,
        }


@dataclass
class _QueryDraft:
    endpoint: str
    query: str = MATCH_ALL_QUERY
    filters: list[str] = field(default_factory=list)
    sort: list[tuple[str, SortDirection]] = field(default_factory=list)
    offset: int = QUERY_OFFSET_DEFAULT
    limit: int = QUERY_PAGESIZE_DEFAULT
    params: dict[str, str] = field(default_factory=dict)
    expansion: str | None = None

    def freeze(self) -> CompiledQuery:
        return CompiledQuery(
            query=self.query,
            filters=tuple(self.filters),
            sort=tuple(self.sort),
            offset=self.offset,
            limit=self.limit,
            endpoint=self.endpoint,
            params=dict(self.params),
            expansion=self.expansion,
        )


# ---------------------------------------------------------------------------
# Value rendering
# ---------------------------------------------------------------------------


def escape_value(value: Any) -> str:
    """Backslash-escape ``\\`` and ``"``, then quote values with reserved characters."""
    text = str(value)
    if "\\" in text or '"' in text:
        text = text.replace("\\", "\\\\").replace('"', '\\"')
    if any(ch in text for ch in _QUOTE_TRIGGERS):
        return f'"{text}"'
    return text


def sort_direction(token: Any) -> SortDirection:
    if isinstance(token, str) and token.strip().lower() in {"desc", "descending"}:
        return "desc"
    return "asc"


def parse_number(value: Any) -> int | float | Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, Decimal)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    if not number.is_finite():
        return None
    return float(number)


def parse_datetime(value: Any) -> datetime | None:
    """Parse datetimes, dates, ISO-8601 strings and ``Mon-dd-yyyy HH:MM:SS``."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time())
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            try:
                parsed = datetime.strptime(value.strip(), _LEGACY_DATETIME_FORMAT)
            except ValueError:
                return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S") + f".{value.microsecond // 1000:03d}Z"


def _render_number(value: Any, shift: int = 0) -> str | None:
    number = parse_number(value)
    if number is None:
        return None
    return str(number + shift)


def _render_datetime(value: Any, shift: int = 0) -> str | None:
    parsed = parse_datetime(value)
    if parsed is None:
        return None
    return format_timestamp(parsed + shift * _DATETIME_EPSILON)


def _render_quoted_datetime(value: Any) -> str | None:
    rendered = _render_datetime(value)
    return None if rendered is None else escape_value(rendered)


def _render_boolean(value: Any) -> str | None:
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value).strip().lower()
    if text in {"true", "false"}:
        return text
    return None


# ---------------------------------------------------------------------------
# Clause builders
# ---------------------------------------------------------------------------


def _negated(builder: ClauseBuilder) -> ClauseBuilder:
    def build(criterion: Criterion) -> str | None:
        clause = builder(criterion)
        return None if clause is None else f"-{clause}"

    return build


def _pattern(template: str, render: Callable[[Any], "str | None"]) -> ClauseBuilder:
    def build(criterion: Criterion) -> str | None:
        if criterion.value is None:
            return None
        rendered = render(criterion.value)
        if rendered is None:
            return None
        return template.format(field=criterion.field, value=rendered)

    return build


def _any_of(render: Callable[[Any], "str | None"]) -> ClauseBuilder:
    def build(criterion: Criterion) -> str | None:
        if not criterion.values:
            return None
        rendered = [render(value) for value in criterion.values]
        if any(item is None for item in rendered):
            return None
        return f"{criterion.field}:({' OR '.join(rendered)})"

    return build


def _one_sided(
    render: Callable[[Any, int], "str | None"], *, lower: bool, shift: int
) -> ClauseBuilder:
    def build(criterion: Criterion) -> str | None:
        if criterion.value is None:
            return None
        bound = render(criterion.value, shift)
        if bound is None:
            return None
        if lower:
            return f"{criterion.field}:[{bound} TO *]"
        return f"{criterion.field}:[* TO {bound}]"

    return build


def _two_sided(
    render: Callable[[Any, int], "str | None"], *, low_shift: int, high_shift: int
) -> ClauseBuilder:
    def build(criterion: Criterion) -> str | None:
        if len(criterion.values) != 2:
            return None
        low = render(criterion.values[0], low_shift)
        high = render(criterion.values[1], high_shift)
        if low is None or high is None:
            return None
        return f"{criterion.field}:[{low} TO {high}]"

    return build


def _build_clause_table() -> dict[tuple[ValueType, Operator], ClauseBuilder]:
    table: dict[tuple[ValueType, Operator], ClauseBuilder] = {}

    text_exact = _pattern("{field}:{value}", escape_value)
    text_contains = _pattern("{field}:*{value}*", escape_value)
    text_any = _any_of(escape_value)
    table.update(
        {
            ("text", "EQUAL"): text_exact,
            ("text", "NOT_EQUAL"): _negated(text_exact),
            ("text", "CONTAINS"): text_contains,
            ("text", "NOT_CONTAINS"): _negated(text_contains),
            ("text", "STARTS_WITH"): _pattern("{field}:{value}*", escape_value),
            ("text", "ENDS_WITH"): _pattern("{field}:*{value}", escape_value),
            ("text", "IN"): text_any,
            ("text", "NOT_IN"): _negated(text_any),
        }
    )

    # Ranges are inclusive-only; exclusive bounds shift by one unit.
    number_exact = _pattern("{field}:{value}", _render_number)
    number_between = _two_sided(_render_number, low_shift=0, high_shift=0)
    number_any = _any_of(_render_number)
    table.update(
        {
            ("number", "EQUAL"): number_exact,
            ("number", "NOT_EQUAL"): _negated(number_exact),
            ("number", "GREATER_THAN"): _one_sided(_render_number, lower=True, shift=1),
            ("number", "GREATER_THAN_EQUAL"): _one_sided(_render_number, lower=True, shift=0),
            ("number", "LESS_THAN"): _one_sided(_render_number, lower=False, shift=-1),
            ("number", "LESS_THAN_EQUAL"): _one_sided(_render_number, lower=False, shift=0),
            ("number", "BETWEEN"): number_between,
            ("number", "NOT_BETWEEN"): _negated(number_between),
            ("number", "BETWEEN_INCLUSIVE"): _two_sided(
                _render_number, low_shift=-1, high_shift=1
            ),
            ("number", "IN"): number_any,
            ("number", "NOT_IN"): _negated(number_any),
        }
    )

    datetime_exact = _pattern("{field}:{value}", _render_quoted_datetime)
    datetime_between = _two_sided(_render_datetime, low_shift=0, high_shift=0)
    datetime_any = _any_of(_render_quoted_datetime)
    table.update(
        {
            ("datetime", "EQUAL"): datetime_exact,
            ("datetime", "NOT_EQUAL"): _negated(datetime_exact),
            ("datetime", "GREATER_THAN"): _one_sided(_render_datetime, lower=True, shift=0),
            ("datetime", "GREATER_THAN_EQUAL"): _one_sided(
                _render_datetime, lower=True, shift=-1
            ),
            ("datetime", "LESS_THAN"): _one_sided(_render_datetime, lower=False, shift=0),
            ("datetime", "LESS_THAN_EQUAL"): _one_sided(
                _render_datetime, lower=False, shift=1
            ),
            ("datetime", "BETWEEN"): datetime_between,
            ("datetime", "NOT_BETWEEN"): _negated(datetime_between),
            ("datetime", "BETWEEN_INCLUSIVE"): _two_sided(
                _render_datetime, low_shift=-1, high_shift=1
            ),
            ("datetime", "IN"): datetime_any,
            ("datetime", "NOT_IN"): _negated(datetime_any),
        }
    )

    boolean_exact = _pattern("{field}:{value}", _render_boolean)
    table.update(
        {
            ("boolean", "EQUAL"): boolean_exact,
            ("boolean", "NOT_EQUAL"): _negated(boolean_exact),
        }
    )
    return table


_CLAUSE_BUILDERS = _build_clause_table()


def supported_operators(value_type: ValueType) -> frozenset[Operator]:
    """Operators that produce a clause (or a sort) for *value_type*."""
    operators: set[Operator] = {"SORT"}
    operators.update(op for (kind, op) in _CLAUSE_BUILDERS if kind == value_type)
    return frozenset(operators)


def build_clause(criterion: Criterion) -> str | None:
    """Return the filter clause for one criterion, or None when unsupported."""
    builder = _CLAUSE_BUILDERS.get((criterion.value_type, criterion.operator))
    if builder is None:
        return None
    return builder(criterion)


def _parse_sort_param(value: str) -> list[tuple[str, SortDirection]]:
    entries: list[tuple[str, SortDirection]] = []
    for item in value.split(","):
        tokens = item.split()
        if not tokens:
            continue
        direction = tokens[1] if len(tokens) > 1 else "asc"
        entries.append((tokens[0], sort_direction(direction)))
    return entries


def _param_pair(criterion: Criterion) -> tuple[str, str] | None:
    if len(criterion.values) >= 2:
        return str(criterion.values[0]), str(criterion.values[1])
    if criterion.value is None:
        return None
    name, sep, value = str(criterion.value).partition("=")
    if not sep or not name.strip():
        return None
    return name.strip(), value


class QueryCompiler:
    """Translate criteria into compiled Solr queries without side effects."""

    def __init__(self, settings: SolrSettings | None = None) -> None:
        self.settings = settings or SolrSettings()

    def compile(self, criteria: Criteria) -> CompiledQuery:
        endpoint = self.request_handler_endpoint(criteria)
        draft = _QueryDraft(endpoint=endpoint)
        if criteria.offset is not None:
            draft.offset = criteria.offset
        if criteria.limit is not None:
            draft.limit = criteria.limit

        for entry in criteria:
            if entry.is_control:
                draft = self._apply_control(draft, entry)
            elif entry.operator == "SORT":
                draft.sort.append((entry.field, sort_direction(entry.value)))
            else:
                clause = build_clause(entry)
                if clause is None:
                    logger.debug(
                        "No clause for %s %s %s on field %r",
                        entry.value_type,
                        entry.operator,
                        entry.values,
                        entry.field,
                    )
                    continue
                draft.filters.append(clause)

        if self.settings.echo_params:
            draft.params["echoParams"] = self.settings.echo_params

        compiled = draft.freeze()
        logger.debug(
            "%s: %s q=%r fq=%r sort=%r start=%d rows=%d",
            criteria.name,
            compiled.endpoint,
            compiled.query,
            list(compiled.filters),
            compiled.sort_param,
            compiled.offset,
            compiled.limit,
        )
        return compiled

    def compile_as_string(self, criteria: Criteria) -> str:
        """Collapse criteria into one relevance query joined by each entry's conjunction."""
        parts: list[str] = []
        for entry in criteria:
            if entry.is_control:
                fragment = (
                    str(entry.value)
                    if entry.field == QUERY_FIELD and entry.value is not None
                    else None
                )
            elif entry.operator == "SORT":
                fragment = None
            else:
                fragment = build_clause(entry)
            if fragment is None:
                continue
            if parts:
                parts.append(entry.conjunction)
            parts.append(fragment)
        return " ".join(parts)

    def request_handler_endpoint(self, criteria: Criteria | None = None) -> str:
        handler = self.settings.request_handler
        if criteria is not None:
            for entry in criteria:
                if entry.field == HANDLER_FIELD:
                    handler = "" if entry.value is None else str(entry.value)
                    break
        if not handler:
            return "/select"
        return handler if handler.startswith("/") else f"/{handler}"

    def url_to_query(self, url: str, criteria: Criteria | None = None) -> CompiledQuery:
        """Build a compiled query from a fully formed Solr request URL."""
        endpoint = self.request_handler_endpoint(criteria)
        return self._draft_from_url(url, endpoint).freeze()

    def _apply_control(self, draft: _QueryDraft, entry: Criterion) -> _QueryDraft:
        if entry.field == QUERY_FIELD:
            if entry.value is not None:
                draft.query = str(entry.value)
        elif entry.field == URL_FIELD:
            expansion = draft.expansion
            draft = self._draft_from_url(str(entry.value or ""), draft.endpoint)
            # The expansion directive is not a request parameter; it survives the override.
            draft.expansion = expansion
        elif entry.field == PARAM_FIELD:
            pair = _param_pair(entry)
            if pair is not None:
                draft.params[pair[0]] = pair[1]
        elif entry.field == EXPAND_FIELD:
            if entry.value is not None:
                draft.expansion = str(entry.value)
        return draft

    @staticmethod
    def _draft_from_url(url: str, endpoint: str) -> _QueryDraft:
        try:
            parts = urlsplit(url)
            if not parts.scheme or not parts.netloc:
                raise ValueError("URL requires a scheme and a host")
            pairs = parse_qsl(parts.query, keep_blank_values=True)
        except ValueError as exc:
            raise TranslationError(f"Unable to parse request URL {url!r}: {exc}") from exc

        draft = _QueryDraft(endpoint=endpoint)
        for name, value in pairs:
            if name == "q":
                draft.query = value
            elif name == "fq":
                draft.filters.append(value)
            elif name == "sort":
                draft.sort.extend(_parse_sort_param(value))
            elif name in {"start", "rows"}:
                try:
                    number = int(value)
                except ValueError as exc:
                    raise TranslationError(
                        f"Request URL parameter {name!r} must be an integer: {value!r}"
                    ) from exc
                if name == "start":
                    draft.offset = number
                else:
                    draft.limit = number
            else:
                draft.params[name] = value
        return draft
