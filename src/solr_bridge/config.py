"""
Configuration helpers for the Solr connection.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


DEFAULT_SOLR_URL = "http://localhost:8983/solr"
DEFAULT_COLLECTION = "collection1"
DEFAULT_REQUEST_HANDLER = "/select"
DEFAULT_REQUEST_METHOD = "GET"
DEFAULT_TIMEOUT = 30.0

ENV_SOLR_URL = "SOLR_BRIDGE_URL"
ENV_COLLECTION = "SOLR_BRIDGE_COLLECTION"
ENV_REQUEST_HANDLER = "SOLR_BRIDGE_REQUEST_HANDLER"
ENV_REQUEST_METHOD = "SOLR_BRIDGE_REQUEST_METHOD"
ENV_ECHO_PARAMS = "SOLR_BRIDGE_ECHO_PARAMS"
ENV_TIMEOUT = "SOLR_BRIDGE_TIMEOUT"


@dataclass(frozen=True)
class SolrSettings:
    """Resolved connection and request defaults."""

    url: str = DEFAULT_SOLR_URL
    collection: str = DEFAULT_COLLECTION
    request_handler: str = DEFAULT_REQUEST_HANDLER
    request_method: str = DEFAULT_REQUEST_METHOD
    echo_params: str | None = None
    timeout: float = DEFAULT_TIMEOUT

    @property
    def collection_url(self) -> str:
        return f"{self.url.rstrip('/')}/{self.collection.strip('/')}"


def resolve_settings(
    *,
    url: str | None = None,
    collection: str | None = None,
    request_handler: str | None = None,
    request_method: str | None = None,
    echo_params: str | None = None,
    timeout: float | None = None,
) -> SolrSettings:
    """
    Resolve Solr settings from explicit overrides, env vars, or defaults.

    Precedence:
    1) explicit keyword argument
    2) SOLR_BRIDGE_* environment variable
    3) default value
    """
    raw_timeout = os.getenv(ENV_TIMEOUT)
    if timeout is None:
        try:
            timeout = float(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT
        except ValueError:
            raise ValueError(
                f"{ENV_TIMEOUT} must be a number of seconds, got {raw_timeout!r}."
            ) from None

    method = request_method or os.getenv(ENV_REQUEST_METHOD) or DEFAULT_REQUEST_METHOD
    return SolrSettings(
        url=url or os.getenv(ENV_SOLR_URL) or DEFAULT_SOLR_URL,
        collection=collection or os.getenv(ENV_COLLECTION) or DEFAULT_COLLECTION,
        request_handler=(
            request_handler
            or os.getenv(ENV_REQUEST_HANDLER)
            or DEFAULT_REQUEST_HANDLER
        ),
        request_method=method.upper(),
        echo_params=echo_params or os.getenv(ENV_ECHO_PARAMS) or None,
        timeout=timeout,
    )
