"""
Data Source Client

HTTP client for the external data source. Two operations are consumed:

- ``GET  {base}/describe/{table}`` returns a describe payload
  (fields, child relationships)
- ``POST {base}/query`` with ``{"query": ...}`` returns rows, or a
  structured ``{"error", "details"}`` payload on failure

Downstream error details are preserved on `QueryExecutionError` so callers
can refine their request.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

import httpx

from ..config import settings

logger = logging.getLogger("sqs.datasource")


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class DataSourceError(RuntimeError):
    """Raised when the data source cannot be reached or answers badly."""


class QueryExecutionError(DataSourceError):
    """
    Raised when the data source rejects a query.

    `error` and `details` carry the downstream payload unchanged.
    """

    def __init__(self, error: str, details: Any = None, status_code: Optional[int] = None) -> None:
        super().__init__(f"Query execution failed: {error} => {details}")
        self.error = error
        self.details = details
        self.status_code = status_code


# ---------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------

class SchemaSource(Protocol):
    async def describe(self, table: str) -> Dict[str, Any]: ...


class QueryExecutor(Protocol):
    async def execute_query(self, query: str) -> List[Dict[str, Any]]: ...


# ---------------------------------------------------------------------
# HTTP implementation
# ---------------------------------------------------------------------

def _extract_rows(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("records", "rows", "data"):
            if isinstance(data.get(key), list):
                return data[key]
    raise DataSourceError("Query response did not contain a row list.")


class DataSourceClient:
    """
    Describe + query client. Implements both `SchemaSource` and
    `QueryExecutor`.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.datasource_base_url).rstrip("/")
        self.api_key = api_key or settings.datasource_api_key.get_secret_value()
        self.timeout = timeout or settings.datasource_timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def describe(self, table: str) -> Dict[str, Any]:
        """
        Fetch the describe payload of one table.

        Raises
        ------
        DataSourceError
            On transport failure, non-2xx status or a non-object body.
        """
        url = f"{self.base_url}/describe/{quote(table, safe='')}"
        try:
            async with self._client() as client:
                resp = await client.get(url, headers=self._headers())
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            raise DataSourceError(
                f"Describe failed for {table}: {type(exc).__name__}"
            ) from exc
        except ValueError as exc:
            raise DataSourceError(f"Describe for {table} returned invalid JSON") from exc

        if not isinstance(data, dict):
            raise DataSourceError(f"Describe for {table} returned a non-object payload")
        return data

    async def execute_query(self, query: str) -> List[Dict[str, Any]]:
        """
        Execute a validated read-only query.

        Raises
        ------
        QueryExecutionError
            When the data source rejects the query or cannot be reached.
        """
        try:
            async with self._client() as client:
                resp = await client.post(
                    f"{self.base_url}/query",
                    json={"query": query},
                    headers=self._headers(),
                )
        except httpx.HTTPError as exc:
            logger.error("Query request failed (%s)", type(exc).__name__)
            raise QueryExecutionError(type(exc).__name__, str(exc)) from exc

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.is_error:
            if isinstance(data, dict) and "error" in data:
                raise QueryExecutionError(
                    str(data["error"]),
                    data.get("details"),
                    status_code=resp.status_code,
                )
            raise QueryExecutionError(
                f"HTTP {resp.status_code}",
                data if data is not None else resp.text,
                status_code=resp.status_code,
            )

        if isinstance(data, dict) and data.get("error"):
            raise QueryExecutionError(
                str(data["error"]),
                data.get("details"),
                status_code=resp.status_code,
            )

        try:
            return _extract_rows(data)
        except DataSourceError as exc:
            raise QueryExecutionError("Malformed response", str(exc), resp.status_code) from exc
