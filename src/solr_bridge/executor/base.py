"""
Result table model and the executor protocol used by search and expansion.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any, Iterable, Protocol

if TYPE_CHECKING:
    from ..search.compiler import CompiledQuery


@dataclass(frozen=True)
class Column:
    """A typed result column."""

    name: str
    type: str = "text"


def _column_type(value: Any) -> str:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, date):
        return "datetime"
    return "text"


def infer_columns(rows: Iterable[dict[str, Any]]) -> list[Column]:
    """Derive columns from row keys in first-seen order."""
    columns: dict[str, Column] = {}
    for row in rows:
        for name, value in row.items():
            if name not in columns and value is not None:
                columns[name] = Column(name=name, type=_column_type(value))
    return list(columns.values())


@dataclass
class ResultTable:
    """Ordered rows of typed columns returned by an executor."""

    columns: list[Column] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    name: str = "Solr Document"
    total_found: int = 0
    offset: int = 0
    limit: int = 0

    @classmethod
    def from_rows(
        cls,
        rows: list[dict[str, Any]],
        *,
        total_found: int | None = None,
        offset: int = 0,
        limit: int = 0,
        name: str = "Solr Document",
    ) -> "ResultTable":
        return cls(
            columns=infer_columns(rows),
            rows=rows,
            name=name,
            total_found=len(rows) if total_found is None else total_found,
            offset=offset,
            limit=limit,
        )

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    def has_column(self, name: str) -> bool:
        if any(column.name == name for column in self.columns):
            return True
        return any(name in row for row in self.rows)

    def add_column(self, column: Column) -> None:
        if all(existing.name != column.name for existing in self.columns):
            self.columns.append(column)


class SearchExecutor(Protocol):
    """Network-facing collaborator that runs compiled queries."""

    def fetch(
        self,
        query: "CompiledQuery",
        offset: int | None = None,
        limit: int | None = None,
    ) -> ResultTable:
        """Execute *query*, optionally overriding its paging window."""
