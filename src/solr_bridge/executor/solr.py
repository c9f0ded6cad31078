"""
HTTP executor that runs compiled queries against a Solr collection.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from ..config import SolrSettings, resolve_settings
from ..errors import ExecutionError
from .base import ResultTable

if TYPE_CHECKING:
    from ..search.compiler import CompiledQuery

logger = logging.getLogger(__name__)

RESPONSE_STATUS_SUCCESS = 0


class SolrHttpExecutor:
    """Synchronous Solr client built on ``httpx``."""

    def __init__(
        self,
        settings: SolrSettings | None = None,
        *,
        client: httpx.Client | None = None,
    ) -> None:
        self.settings = settings or resolve_settings()
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self.settings.timeout)

    def close(self) -> None:
        """Close the underlying HTTP client if this executor created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "SolrHttpExecutor":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def request_url(self, endpoint: str) -> str:
        return f"{self.settings.collection_url}{endpoint}"

    def fetch(
        self,
        query: "CompiledQuery",
        offset: int | None = None,
        limit: int | None = None,
    ) -> ResultTable:
        if offset is not None or limit is not None:
            query = query.with_window(
                query.offset if offset is None else offset,
                query.limit if limit is None else limit,
            )
        params = [(name, value) for name, value in query.to_params() if name != "wt"]
        params.append(("wt", "json"))
        url = self.request_url(query.endpoint)
        logger.debug("%s %s %s", self.settings.request_method, url, params)

        try:
            if self.settings.request_method == "POST":
                response = self._client.post(url, data=_form_body(params))
            else:
                response = self._client.get(url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            logger.error("Solr request failed: %s", exc)
            raise ExecutionError(f"Solr request failed: {exc}") from exc
        except ValueError as exc:
            raise ExecutionError(f"Solr returned a non-JSON response from {url}") from exc

        return parse_response(payload, offset=query.offset, limit=query.limit)


def _form_body(params: list[tuple[str, str]]) -> dict[str, list[str]]:
    body: dict[str, list[str]] = {}
    for name, value in params:
        body.setdefault(name, []).append(value)
    return body


def parse_response(payload: Any, *, offset: int = 0, limit: int = 0) -> ResultTable:
    """Convert a Solr JSON response into a result table."""
    if not isinstance(payload, dict):
        raise ExecutionError("Solr response is not a JSON object.")

    header = payload.get("responseHeader") or {}
    status = header.get("status", RESPONSE_STATUS_SUCCESS)
    if status != RESPONSE_STATUS_SUCCESS:
        raise ExecutionError(f"Solr query failed with a response code of {status}.")

    response = payload.get("response") or {}
    docs = response.get("docs") or []
    rows = [dict(doc) for doc in docs if isinstance(doc, dict)]
    return ResultTable.from_rows(
        rows,
        total_found=int(response.get("numFound", len(rows))),
        offset=int(response.get("start", offset)),
        limit=limit,
    )
