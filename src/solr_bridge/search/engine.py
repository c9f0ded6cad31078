"""
Search entry point: compile criteria, fetch a page, expand the hierarchy.
"""

from __future__ import annotations

from ..errors import ExecutionError, SearchError
from ..executor.base import ResultTable, SearchExecutor
from .compiler import CompiledQuery, QueryCompiler
from .criteria import EXPAND_FIELD, Criteria
from .expansion import ExpansionEngine, HierarchyFields, parse_expansion_spec


class SearchEngine:
    """Run criteria against a search executor."""

    def __init__(
        self,
        executor: SearchExecutor,
        *,
        compiler: QueryCompiler | None = None,
        hierarchy: HierarchyFields | None = None,
        max_workers: int = 1,
    ) -> None:
        self.executor = executor
        self.compiler = compiler or QueryCompiler()
        self.expansion = ExpansionEngine(
            executor,
            self.compiler,
            fields=hierarchy,
            max_workers=max_workers,
        )

    def compile(self, criteria: Criteria) -> CompiledQuery:
        return self.compiler.compile(criteria)

    def search(
        self,
        criteria: Criteria,
        *,
        offset: int | None = None,
        limit: int | None = None,
    ) -> ResultTable:
        compiled = self.compiler.compile(criteria)
        table = self._fetch(compiled, offset, limit)
        expansion = criteria.control_value(EXPAND_FIELD)
        if expansion is not None:
            spec = parse_expansion_spec(str(expansion))
            table = self.expansion.expand(table, spec)
        return table

    def count(self, criteria: Criteria) -> int:
        """Return the number of documents matching *criteria*."""
        compiled = self.compiler.compile(criteria)
        table = self._fetch(compiled, 0, 0)
        return table.total_found

    def _fetch(
        self,
        query: CompiledQuery,
        offset: int | None,
        limit: int | None,
    ) -> ResultTable:
        try:
            return self.executor.fetch(query, offset, limit)
        except SearchError:
            raise
        except Exception as exc:
            raise ExecutionError(f"Search request failed: {exc}") from exc
