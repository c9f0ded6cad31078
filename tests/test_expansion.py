"""Tests for parent/child expansion of result pages."""

from __future__ import annotations

import threading
from typing import Callable

import pytest

from solr_bridge.errors import ExecutionError
from solr_bridge.executor import ResultTable
from solr_bridge.search import (
    CompiledQuery,
    ExpansionEngine,
    ExpansionSpec,
    HierarchyFields,
    parse_expansion_spec,
)


class RecordingExecutor:
    """Executor double that answers each fetch through a callback."""

    def __init__(self, respond: Callable[[CompiledQuery], list[dict]] | None = None) -> None:
        self.respond = respond or (lambda query: [])
        self.calls: list[tuple[CompiledQuery, int | None, int | None]] = []
        self._lock = threading.Lock()

    def fetch(self, query: CompiledQuery, offset=None, limit=None) -> ResultTable:
        with self._lock:
            self.calls.append((query, offset, limit))
        return ResultTable.from_rows([dict(row) for row in self.respond(query)])


class FailingExecutor:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    def fetch(self, query, offset=None, limit=None) -> ResultTable:
        raise self.exc


def _doc(doc_id: str, parent_id: str | None = None, *, is_parent: bool = False) -> dict:
    row: dict = {"id": doc_id, "name": f"Document {doc_id}", "is_parent": is_parent}
    if parent_id is not None:
        row["parent_id"] = parent_id
    return row


def _ids(table: ResultTable) -> list[str]:
    return [row["id"] for row in table.rows]


def test_parent_mode_fetches_missing_parent_once() -> None:
    executor = RecordingExecutor(lambda query: [_doc("P", is_parent=True)])
    table = ResultTable.from_rows([_doc("C1", "P"), _doc("C2", "P"), _doc("C3", "P")])

    ExpansionEngine(executor).expand(table, ExpansionSpec(mode="parent"))

    assert len(executor.calls) == 1
    query, _, _ = executor.calls[0]
    assert query.query == "*:*"
    assert query.filters == ("id:(P)",)
    assert query.limit == 1
    assert _ids(table) == ["P", "C1", "C2", "C3"]
    assert table.rows[0]["is_expanded"] is True
    assert "is_expanded" not in table.rows[1]
    assert "is_expanded" in table.column_names


def test_both_mode_fetches_remaining_children_with_window() -> None:
    executor = RecordingExecutor(lambda query: [_doc("C3", "P")])
    table = ResultTable.from_rows(
        [_doc("P", is_parent=True), _doc("C1", "P"), _doc("C2", "P")]
    )

    ExpansionEngine(executor).expand(table, parse_expansion_spec("Both"))

    assert len(executor.calls) == 1
    query, offset, limit = executor.calls[0]
    assert query.filters == ("parent_id:P", "-id:(C1 OR C2)")
    assert (offset, limit) == (0, 5)
    assert _ids(table) == ["P", "C1", "C2", "C3"]
    assert table.rows[3]["is_expanded"] is True


def test_child_mode_passes_offset_and_limit() -> None:
    executor = RecordingExecutor()
    table = ResultTable.from_rows([_doc("P", is_parent=True)])

    ExpansionEngine(executor).expand(table, parse_expansion_spec("Child(2,7)"))

    _, offset, limit = executor.calls[0]
    assert (offset, limit) == (2, 7)
    assert _ids(table) == ["P"]


def test_children_are_placed_under_their_parent() -> None:
    def respond(query: CompiledQuery) -> list[dict]:
        if "parent_id:P1" in query.filters:
            return [_doc("P1-a", "P1")]
        return [_doc("P2-a", "P2"), _doc("P2-b", "P2")]

    executor = RecordingExecutor(respond)
    table = ResultTable.from_rows(
        [_doc("P1", is_parent=True), _doc("X"), _doc("P2", is_parent=True)]
    )

    ExpansionEngine(executor).expand(table, ExpansionSpec(mode="child"))

    assert _ids(table) == ["P1", "P1-a", "X", "P2", "P2-a", "P2-b"]


def test_none_mode_and_empty_table_make_no_fetch() -> None:
    executor = RecordingExecutor()
    engine = ExpansionEngine(executor)
    rows = [_doc("C1", "P")]
    table = ResultTable.from_rows(rows)

    assert engine.expand(table, parse_expansion_spec("none")) is table
    assert table.rows == rows
    assert engine.expand(ResultTable(), ExpansionSpec(mode="both")).rows == []
    assert executor.calls == []


def test_table_without_id_column_is_returned_unchanged() -> None:
    executor = RecordingExecutor()
    table = ResultTable.from_rows([{"name": "orphan"}])

    ExpansionEngine(executor).expand(table, ExpansionSpec(mode="both"))

    assert table.rows == [{"name": "orphan"}]
    assert executor.calls == []


def test_page_children_are_reconciled_under_page_parent() -> None:
    executor = RecordingExecutor()
    table = ResultTable.from_rows(
        [_doc("C1", "P"), _doc("Y"), _doc("P", is_parent=True), _doc("C2", "P")]
    )

    ExpansionEngine(executor).expand(table, ExpansionSpec(mode="parent"))

    assert executor.calls == []
    assert _ids(table) == ["Y", "P", "C1", "C2"]


def test_merge_never_duplicates_id_parent_pairs() -> None:
    def respond(query: CompiledQuery) -> list[dict]:
        if query.filters[0].startswith("id:"):
            return [_doc("P", is_parent=True), _doc("P", is_parent=True)]
        return [_doc("C1", "P"), _doc("C3", "P"), _doc("C3", "P")]

    executor = RecordingExecutor(respond)
    table = ResultTable.from_rows([_doc("C1", "P"), _doc("C2", "P")])

    ExpansionEngine(executor).expand(table, ExpansionSpec(mode="both"))

    keys = [(row["id"], row.get("parent_id")) for row in table.rows]
    assert len(keys) == len(set(keys))
    assert _ids(table) == ["P", "C1", "C2", "C3"]


def test_discovered_parents_are_expanded_for_children_in_both_mode() -> None:
    def respond(query: CompiledQuery) -> list[dict]:
        if query.filters == ("id:(P)",):
            return [_doc("P", is_parent=True)]
        return [_doc("C2", "P")]

    executor = RecordingExecutor(respond)
    table = ResultTable.from_rows([_doc("C1", "P")])

    ExpansionEngine(executor).expand(table, ExpansionSpec(mode="both"))

    assert len(executor.calls) == 2
    child_query, _, _ = executor.calls[1]
    assert child_query.filters == ("parent_id:P", "-id:(C1)")
    assert _ids(table) == ["P", "C1", "C2"]


def test_fetched_parent_gathers_its_page_children_in_both_mode() -> None:
    def respond(query: CompiledQuery) -> list[dict]:
        if query.filters == ("id:(P)",):
            return [_doc("P", is_parent=True)]
        return []

    executor = RecordingExecutor(respond)
    table = ResultTable.from_rows([_doc("C1", "P"), _doc("X"), _doc("C2", "P")])

    ExpansionEngine(executor).expand(table, ExpansionSpec(mode="both"))

    assert _ids(table) == ["P", "C1", "C2", "X"]


def test_supplemental_failure_leaves_table_untouched() -> None:
    rows = [_doc("C1", "P")]
    table = ResultTable.from_rows(list(rows))
    engine = ExpansionEngine(FailingExecutor(RuntimeError("connection reset")))

    with pytest.raises(ExecutionError, match="connection reset"):
        engine.expand(table, ExpansionSpec(mode="parent"))

    assert table.rows == rows
    assert "is_expanded" not in table.column_names


def test_execution_errors_propagate_unwrapped() -> None:
    original = ExecutionError("Solr is down")
    engine = ExpansionEngine(FailingExecutor(original))
    table = ResultTable.from_rows([_doc("P", is_parent=True)])

    with pytest.raises(ExecutionError) as exc_info:
        engine.expand(table, ExpansionSpec(mode="child"))

    assert exc_info.value is original


def test_parallel_child_fetches_keep_page_order() -> None:
    def respond(query: CompiledQuery) -> list[dict]:
        parent_id = query.filters[0].split(":", 1)[1]
        return [_doc(f"{parent_id}-child", parent_id)]

    executor = RecordingExecutor(respond)
    parents = [_doc(f"P{i}", is_parent=True) for i in range(4)]
    table = ResultTable.from_rows(parents)

    ExpansionEngine(executor, max_workers=4).expand(table, ExpansionSpec(mode="child"))

    assert len(executor.calls) == 4
    assert _ids(table) == [
        "P0", "P0-child", "P1", "P1-child", "P2", "P2-child", "P3", "P3-child",
    ]


def test_custom_hierarchy_fields() -> None:
    fields = HierarchyFields(id="doc_id", parent_id="owner", is_parent="has_kids", is_expanded="added")
    executor = RecordingExecutor(lambda query: [{"doc_id": "K2", "owner": "A"}])
    table = ResultTable.from_rows([{"doc_id": "A", "has_kids": "true"}, {"doc_id": "K1", "owner": "A"}])

    ExpansionEngine(executor, fields=fields).expand(table, ExpansionSpec(mode="child"))

    query, _, _ = executor.calls[0]
    assert query.filters == ("owner:A", "-doc_id:(K1)")
    assert [row["doc_id"] for row in table.rows] == ["A", "K1", "K2"]
    assert table.rows[2]["added"] is True


@pytest.mark.parametrize(
    ("value", "mode", "offset", "limit"),
    [
        ("Child(10)", "child", 0, 10),
        ("Both(2,7)", "both", 2, 7),
        ("children(1, 3)", "child", 1, 3),
        ("BOTH", "both", 0, 5),
        ("Parent", "parent", 0, 5),
        ("child(x)", "child", 0, 5),
        ("Child(²)", "child", 0, 5),
        ("Both(³,7)", "both", 0, 7),
        ("bogus", "none", 0, 5),
        ("", "none", 0, 5),
        (None, "none", 0, 5),
    ],
)
def test_parse_expansion_spec(value, mode, offset, limit) -> None:
    assert parse_expansion_spec(value) == ExpansionSpec(mode=mode, offset=offset, limit=limit)


def test_parent_mode_requires_exact_name() -> None:
    assert parse_expansion_spec("Parent(3)").mode == "none"
    assert parse_expansion_spec("parents").mode == "none"
