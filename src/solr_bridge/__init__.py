"""
SolrBridge - criteria-driven search over a Solr collection.

This package compiles engine-agnostic filter and sort criteria into Solr
requests and fills incomplete parent/child hierarchies into result pages.

Example usage:
    >>> from solr_bridge import Criteria, SearchEngine, SolrHttpExecutor
    >>> criteria = Criteria().add("title", "STARTS_WITH", "annual")
    >>> criteria.add_expansion("Both(0,5)")
    >>> table = SearchEngine(SolrHttpExecutor()).search(criteria)
"""

from .config import SolrSettings, resolve_settings
from .errors import ExecutionError, SearchError, TranslationError
from .executor import ResultTable, SearchExecutor, SolrHttpExecutor
from .search import (
    CompiledQuery,
    Criteria,
    Criterion,
    CriteriaParseError,
    ExpansionEngine,
    ExpansionSpec,
    HierarchyFields,
    QueryCompiler,
    SearchEngine,
    parse_criteria,
    parse_expansion_spec,
)

__all__ = [
    # Configuration
    "SolrSettings",
    "resolve_settings",
    # Errors
    "SearchError",
    "TranslationError",
    "ExecutionError",
    "CriteriaParseError",
    # Criteria and compilation
    "Criteria",
    "Criterion",
    "CompiledQuery",
    "QueryCompiler",
    "parse_criteria",
    # Execution and expansion
    "ResultTable",
    "SearchExecutor",
    "SolrHttpExecutor",
    "SearchEngine",
    "ExpansionEngine",
    "ExpansionSpec",
    "HierarchyFields",
    "parse_expansion_spec",
]
