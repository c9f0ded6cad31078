"""Tests for the search engine entry point."""

from __future__ import annotations

import pytest

from solr_bridge.errors import ExecutionError
from solr_bridge.executor import ResultTable
from solr_bridge.search import Criteria, SearchEngine


class CannedExecutor:
    """Return queued result pages in order and record each fetch."""

    def __init__(self, *pages: list[dict], total_found: int = 0) -> None:
        self.pages = list(pages)
        self.total_found = total_found
        self.calls: list[tuple] = []

    def fetch(self, query, offset=None, limit=None) -> ResultTable:
        self.calls.append((query, offset, limit))
        rows = self.pages.pop(0) if self.pages else []
        return ResultTable.from_rows(rows, total_found=self.total_found or len(rows))


def test_search_without_expansion_runs_single_fetch() -> None:
    executor = CannedExecutor([{"id": "A"}, {"id": "B"}])
    criteria = Criteria().add("kind", "EQUAL", "report")

    table = SearchEngine(executor).search(criteria, limit=2)

    assert len(executor.calls) == 1
    query, offset, limit = executor.calls[0]
    assert query.filters == ("kind:report",)
    assert (offset, limit) == (None, 2)
    assert [row["id"] for row in table.rows] == ["A", "B"]


def test_search_with_expansion_adds_parent_rows() -> None:
    executor = CannedExecutor(
        [{"id": "C1", "parent_id": "P"}],
        [{"id": "P", "is_parent": True}],
    )
    criteria = Criteria().add("name", "CONTAINS", "minutes").add_expansion("Parent")

    table = SearchEngine(executor).search(criteria)

    assert len(executor.calls) == 2
    assert executor.calls[1][0].filters == ("id:(P)",)
    assert [row["id"] for row in table.rows] == ["P", "C1"]
    assert table.rows[0]["is_expanded"] is True


def test_search_expands_when_url_override_follows_expansion() -> None:
    executor = CannedExecutor(
        [{"id": "C1", "parent_id": "P"}],
        [{"id": "P", "is_parent": True}],
    )
    criteria = (
        Criteria()
        .add_expansion("Parent")
        .add_url("http://solr.test/solr/docs/select?q=title:minutes")
    )

    table = SearchEngine(executor).search(criteria)

    assert len(executor.calls) == 2
    assert executor.calls[0][0].query == "title:minutes"
    assert [row["id"] for row in table.rows] == ["P", "C1"]


def test_count_requests_an_empty_window() -> None:
    executor = CannedExecutor(total_found=17)

    assert SearchEngine(executor).count(Criteria().add("year", "GREATER_THAN", 2020)) == 17
    _, offset, limit = executor.calls[0]
    assert (offset, limit) == (0, 0)


def test_primary_fetch_failures_are_wrapped() -> None:
    class BrokenExecutor:
        def fetch(self, query, offset=None, limit=None):
            raise OSError("network unreachable")

    with pytest.raises(ExecutionError, match="network unreachable"):
        SearchEngine(BrokenExecutor()).search(Criteria())
