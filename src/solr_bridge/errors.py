"""
Exception types raised while compiling and executing search requests.
"""

from __future__ import annotations


class SearchError(Exception):
    """Base class for compile and execution failures."""


class TranslationError(SearchError):
    """Raised when criteria cannot be turned into a valid Solr request."""


class ExecutionError(SearchError):
    """Raised when a primary or supplemental fetch fails."""
