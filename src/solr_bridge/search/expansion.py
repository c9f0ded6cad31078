"""
Parent/child expansion of a result page.

A page may hold children whose parent was not matched, or parents whose
children were not matched. Expansion fetches the missing side with a
bounded number of supplemental queries and merges them into the page
without duplicating any (id, parent id) pair.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Literal

from ..errors import ExecutionError, SearchError
from ..executor.base import Column, ResultTable, SearchExecutor
from .compiler import CompiledQuery, QueryCompiler
from .criteria import Criteria

logger = logging.getLogger(__name__)

ExpansionMode = Literal["none", "parent", "child", "both"]

FETCH_OFFSET_DEFAULT = 0
FETCH_LIMIT_DEFAULT = 5

RowKey = tuple[str, str]


@dataclass(frozen=True)
class ExpansionSpec:
    """Requested expansion mode plus the child fetch window."""

    mode: ExpansionMode = "none"
    offset: int = FETCH_OFFSET_DEFAULT
    limit: int = FETCH_LIMIT_DEFAULT

    @property
    def includes_parents(self) -> bool:
        return self.mode in {"parent", "both"}

    @property
    def includes_children(self) -> bool:
        return self.mode in {"child", "both"}


def parse_expansion_spec(value: str | None) -> ExpansionSpec:
    """
    Parse ``Mode``, ``Mode(limit)`` or ``Mode(offset,limit)``.

    ``Both`` and ``Child`` match by case-insensitive prefix, ``Parent`` only
    by exact case-insensitive match. Anything else is mode ``none``.
    Non-numeric offset or limit tokens fall back to the defaults.
    """
    text = (value or "").strip()
    lowered = text.lower()
    mode: ExpansionMode
    if lowered.startswith("both"):
        mode = "both"
    elif lowered.startswith("child"):
        mode = "child"
    elif lowered == "parent":
        mode = "parent"
    else:
        mode = "none"

    offset = FETCH_OFFSET_DEFAULT
    limit = FETCH_LIMIT_DEFAULT
    start = text.rfind("(")
    end = text.rfind(")")
    if start != -1 and end != -1:
        inner = text[start + 1 : end]
        if "," in inner:
            tokens = [token.strip() for token in inner.split(",")]
            offset = _count(tokens[0], offset)
            if len(tokens) > 1:
                limit = _count(tokens[1], limit)
        else:
            limit = _count(inner.strip(), limit)
    return ExpansionSpec(mode=mode, offset=offset, limit=limit)


def _count(token: str, default: int) -> int:
    # str.isdigit() also accepts superscripts and other digits int() rejects.
    if token.isascii() and token.isdigit():
        return int(token)
    return default


@dataclass(frozen=True)
class HierarchyFields:
    """Column names that describe the two-level document hierarchy."""

    id: str = "id"
    parent_id: str = "parent_id"
    name: str = "name"
    is_parent: str = "is_parent"
    is_expanded: str = "is_expanded"


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _truthy(value: Any) -> bool:
    value = _first(value)
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "t", "yes", "y", "1"}
    if isinstance(value, (int, float)):
        return value != 0
    return False


class ExpansionEngine:
    """Fill missing parents and/or children into a result table."""

    def __init__(
        self,
        executor: SearchExecutor,
        compiler: QueryCompiler | None = None,
        *,
        fields: HierarchyFields | None = None,
        max_workers: int = 1,
    ) -> None:
        self.executor = executor
        self.compiler = compiler or QueryCompiler()
        self.fields = fields or HierarchyFields()
        self.max_workers = max(max_workers, 1)

    # -- row accessors -----------------------------------------------------

    def _id(self, row: dict[str, Any]) -> str:
        value = _first(row.get(self.fields.id))
        return "" if value is None else str(value)

    def _parent_id(self, row: dict[str, Any]) -> str:
        value = _first(row.get(self.fields.parent_id))
        return "" if value is None else str(value)

    def _is_parent(self, row: dict[str, Any]) -> bool:
        return _truthy(row.get(self.fields.is_parent))

    def _key(self, row: dict[str, Any]) -> RowKey:
        return self._id(row), self._parent_id(row)

    def _mark_expanded(self, row: dict[str, Any]) -> dict[str, Any]:
        expanded = dict(row)
        expanded[self.fields.is_expanded] = True
        return expanded

    # -- public API --------------------------------------------------------

    def expand(self, table: ResultTable, spec: ExpansionSpec) -> ResultTable:
        """
        Expand *table* in place according to *spec* and return it.

        Any supplemental fetch failure raises ``ExecutionError`` and leaves
        *table* untouched.
        """
        if spec.mode == "none" or not table.rows:
            return table
        if not table.has_column(self.fields.id):
            logger.debug("Expansion skipped for %s: no %r column", table.name, self.fields.id)
            return table

        count_before = len(table.rows)
        page_rows = self._reconcile(table.rows)
        page_by_id: dict[str, dict[str, Any]] = {}
        for row in page_rows:
            row_id = self._id(row)
            if row_id and row_id not in page_by_id:
                page_by_id[row_id] = row

        parent_rows: list[dict[str, Any]] = []
        if spec.includes_parents:
            parent_rows = self._discover_parents(page_rows, page_by_id)

        children_by_parent: dict[str, list[dict[str, Any]]] = {}
        if spec.includes_children:
            children_by_parent = self._discover_children(page_rows, parent_rows, spec)

        merged = self._merge(page_rows, page_by_id, parent_rows, children_by_parent, spec)

        table.rows[:] = merged
        table.add_column(Column(name=self.fields.is_expanded, type="boolean"))
        self._log_rows(table, count_before)
        return table

    # -- algorithm steps ---------------------------------------------------

    def _reconcile(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Move children whose parent is on the page directly under that parent."""
        on_page = {self._id(row) for row in rows if self._id(row)}
        children: dict[str, list[dict[str, Any]]] = {}
        for row in rows:
            parent_id = self._parent_id(row)
            if parent_id and parent_id in on_page and parent_id != self._id(row):
                children.setdefault(parent_id, []).append(row)

        reconciled: list[dict[str, Any]] = []
        seen: set[int] = set()

        def emit(row: dict[str, Any]) -> None:
            if id(row) in seen:
                return
            seen.add(id(row))
            reconciled.append(row)
            row_id = self._id(row)
            for child in children.get(row_id, []):
                emit(child)

        for row in rows:
            parent_id = self._parent_id(row)
            if parent_id and parent_id in on_page and parent_id != self._id(row):
                continue
            emit(row)
        # Rows only reachable through a parent cycle.
        for row in rows:
            emit(row)
        return reconciled

    def _discover_parents(
        self,
        rows: list[dict[str, Any]],
        page_by_id: dict[str, dict[str, Any]],
    ) -> list[dict[str, Any]]:
        missing: list[str] = []
        for row in rows:
            parent_id = self._parent_id(row)
            if parent_id and parent_id not in page_by_id and parent_id not in missing:
                missing.append(parent_id)
        if not missing:
            return []

        criteria = Criteria(name="Parent Criteria", limit=len(missing))
        criteria.add_query("*:*")
        criteria.add(self.fields.id, "IN", *missing, value_type="text")
        result = self._fetch(self.compiler.compile(criteria))
        logger.debug("Parent discovery for %d ids returned %d rows", len(missing), len(result.rows))
        return result.rows

    def _child_query(
        self,
        parent_id: str,
        known_rows: list[dict[str, Any]],
    ) -> CompiledQuery:
        criteria = Criteria(name="Child Criteria")
        criteria.add_query("*:*")
        criteria.add(self.fields.parent_id, "EQUAL", parent_id, value_type="text")
        known_ids: list[str] = []
        for row in known_rows:
            row_id = self._id(row)
            if self._parent_id(row) == parent_id and row_id and row_id not in known_ids:
                known_ids.append(row_id)
        if known_ids:
            criteria.add(self.fields.id, "NOT_IN", *known_ids, value_type="text")
        return self.compiler.compile(criteria)

    def _discover_children(
        self,
        page_rows: list[dict[str, Any]],
        parent_rows: list[dict[str, Any]],
        spec: ExpansionSpec,
    ) -> dict[str, list[dict[str, Any]]]:
        parent_ids: list[str] = []
        for row in [*page_rows, *parent_rows]:
            row_id = self._id(row)
            if self._is_parent(row) and row_id and row_id not in parent_ids:
                parent_ids.append(row_id)
        if not parent_ids:
            return {}

        known_rows = [*page_rows, *parent_rows]
        queries = [self._child_query(parent_id, known_rows) for parent_id in parent_ids]

        if self.max_workers > 1 and len(queries) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = [
                    pool.submit(self._fetch, query, spec.offset, spec.limit)
                    for query in queries
                ]
                results = [future.result() for future in futures]
        else:
            results = [self._fetch(query, spec.offset, spec.limit) for query in queries]

        children_by_parent: dict[str, list[dict[str, Any]]] = {}
        for parent_id, result in zip(parent_ids, results):
            seen: set[RowKey] = set()
            children: list[dict[str, Any]] = []
            for row in result.rows:
                key = self._key(row)
                if key in seen:
                    continue
                seen.add(key)
                children.append(row)
            children_by_parent[parent_id] = children
        return children_by_parent

    def _merge(
        self,
        page_rows: list[dict[str, Any]],
        page_by_id: dict[str, dict[str, Any]],
        parent_rows: list[dict[str, Any]],
        children_by_parent: dict[str, list[dict[str, Any]]],
        spec: ExpansionSpec,
    ) -> list[dict[str, Any]]:
        fetched_parents: dict[str, dict[str, Any]] = {}
        for row in parent_rows:
            row_id = self._id(row)
            if row_id and row_id not in fetched_parents:
                fetched_parents[row_id] = row

        merged: list[dict[str, Any]] = []
        emitted: set[RowKey] = set()

        def emit(row: dict[str, Any]) -> bool:
            key = self._key(row)
            if not key[0]:
                # Rows without an id take no part in the hierarchy.
                merged.append(row)
                return True
            if key in emitted:
                return False
            emitted.add(key)
            merged.append(row)
            return True

        def emit_children(parent: dict[str, Any]) -> None:
            parent_id = self._id(parent)
            for child in page_rows:
                child_id = self._id(child)
                if child_id and child_id != parent_id and self._parent_id(child) == parent_id:
                    emit(child)
            for child in children_by_parent.get(parent_id, []):
                if emit(self._mark_expanded(child)):
                    logger.debug("Child expanded (%s): [%s]", parent_id, self._id(child))

        def needs_children(row: dict[str, Any]) -> bool:
            return spec.includes_children and self._is_parent(row)

        for row in page_rows:
            parent_id = self._parent_id(row)
            if spec.includes_parents and parent_id:
                parent = page_by_id.get(parent_id)
                if parent is None and parent_id in fetched_parents:
                    parent = self._mark_expanded(fetched_parents[parent_id])
                if parent is not None and emit(parent):
                    logger.debug("Parent expanded (%s): [%s]", parent_id, self._id(parent))
                    if needs_children(parent):
                        emit_children(parent)
            emit(row)
            if needs_children(row):
                emit_children(row)
        return merged

    def _fetch(
        self,
        query: CompiledQuery,
        offset: int | None = None,
        limit: int | None = None,
    ) -> ResultTable:
        try:
            return self.executor.fetch(query, offset, limit)
        except SearchError:
            raise
        except Exception as exc:
            raise ExecutionError(f"Supplemental fetch failed: {exc}") from exc

    def _log_rows(self, table: ResultTable, count_before: int) -> None:
        if not logger.isEnabledFor(logging.DEBUG):
            return
        logger.debug("Row count before expansion: %d", count_before)
        for number, row in enumerate(table.rows):
            parent_id = self._parent_id(row)
            marker = "P" if not parent_id else " C"
            parent_text = f" ({parent_id})" if parent_id else ""
            origin = "E" if _truthy(row.get(self.fields.is_expanded)) else "H"
            logger.debug(
                "%02d: %s-[%s]%s: %s '%s'",
                number,
                marker,
                self._id(row),
                parent_text,
                origin,
                _first(row.get(self.fields.name)) or "",
            )
        logger.debug("Row count after expansion: %d", len(table.rows))
