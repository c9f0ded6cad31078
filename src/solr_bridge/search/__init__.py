"""Criteria compilation and result expansion."""

from .compiler import (
    CompiledQuery,
    QueryCompiler,
    build_clause,
    escape_value,
    format_timestamp,
    supported_operators,
)
from .criteria import Criteria, Criterion
from .engine import SearchEngine
from .expansion import (
    ExpansionEngine,
    ExpansionSpec,
    HierarchyFields,
    parse_expansion_spec,
)
from .filters import CriteriaParseError, parse_criteria, supported_filter_syntax

__all__ = [
    "CompiledQuery",
    "QueryCompiler",
    "build_clause",
    "escape_value",
    "format_timestamp",
    "supported_operators",
    "Criteria",
    "Criterion",
    "SearchEngine",
    "ExpansionEngine",
    "ExpansionSpec",
    "HierarchyFields",
    "parse_expansion_spec",
    "CriteriaParseError",
    "parse_criteria",
    "supported_filter_syntax",
]
