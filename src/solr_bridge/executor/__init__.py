"""Executors that run compiled queries against a search service."""

from .base import Column, ResultTable, SearchExecutor, infer_columns
from .solr import SolrHttpExecutor, parse_response

__all__ = [
    "Column",
    "ResultTable",
    "SearchExecutor",
    "infer_columns",
    "SolrHttpExecutor",
    "parse_response",
]
