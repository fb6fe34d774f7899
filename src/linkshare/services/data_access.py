"""Client for the data-access service that fronts project collections.

Every project's documents live in an external collection reachable only
through this service. Calls are never retried here; failures surface as
UpstreamFailure carrying the service's own message.
"""

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from linkshare.errors import UpstreamFailure

CONNECTION_HEADER = "X-Connection-Uri"


def _segment(value: str) -> str:
    return quote(value, safe="")


class DataAccessClient:
    """Async wrapper around the data-access HTTP API.

    Accepts an httpx.AsyncClient via dependency injection; the factory
    builds one pointed at ``DATA_ACCESS_URL`` and tests pass one backed by
    httpx.MockTransport.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._client = client
        self._logger = logger or structlog.get_logger(__name__)

    async def insert_data(
        self,
        connection_uri: str,
        database_name: str,
        collection_name: str,
        data: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Insert one document; the response carries its ``document_id``."""
        result = await self._request(
            "POST",
            f"/entry/{_segment(database_name)}/{_segment(collection_name)}",
            operation="insert_data",
            connection_uri=connection_uri,
            json={"data": dict(data)},
        )
        return _expect_mapping(result, "insert_data")

    async def retrieve_data(
        self,
        connection_uri: str,
        database_name: str,
        collection_name: str,
    ) -> Any:
        """Read the whole collection. The response shape is passed through untouched."""
        return await self._request(
            "GET",
            f"/entries/{_segment(database_name)}/{_segment(collection_name)}",
            operation="retrieve_data",
            connection_uri=connection_uri,
        )

    async def delete_data(
        self,
        connection_uri: str,
        database_name: str,
        collection_name: str,
        document_id: str,
    ) -> Any:
        return await self._request(
            "DELETE",
            f"/entry/{_segment(database_name)}/{_segment(collection_name)}/{_segment(document_id)}",
            operation="delete_data",
            connection_uri=connection_uri,
        )

    async def add_schema_fields(
        self,
        database_name: str,
        collection_name: str,
        new_fields: Mapping[str, Any],
    ) -> dict[str, Any]:
        result = await self._request(
            "POST",
            f"/schema/{_segment(database_name)}/{_segment(collection_name)}/fields",
            operation="add_schema_fields",
            json={"fields": dict(new_fields)},
        )
        return _expect_mapping(result, "add_schema_fields")

    async def remove_schema_field(
        self,
        database_name: str,
        collection_name: str,
        field_name: str,
    ) -> dict[str, Any]:
        result = await self._request(
            "DELETE",
            f"/schema/{_segment(database_name)}/{_segment(collection_name)}/fields/{_segment(field_name)}",
            operation="remove_schema_field",
        )
        return _expect_mapping(result, "remove_schema_field")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        connection_uri: str | None = None,
        json: Any = None,
    ) -> Any:
        headers = {CONNECTION_HEADER: connection_uri} if connection_uri else None
        try:
            response = await self._client.request(method, path, headers=headers, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            upstream_message = _error_message(e.response)
            self._logger.warning(
                "data_access_rejected",
                operation=operation,
                status_code=e.response.status_code,
                upstream_message=upstream_message,
            )
            raise UpstreamFailure(
                f"{operation} failed: {upstream_message}",
                upstream_message=upstream_message,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            self._logger.error("data_access_unreachable", operation=operation, error=str(e))
            raise UpstreamFailure(
                f"{operation} failed: data-access service unreachable",
                upstream_message=str(e),
            ) from e

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamFailure(
                f"{operation} failed: invalid response from data-access service",
                upstream_message=response.text[:200],
                status_code=response.status_code,
            ) from e


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    if isinstance(body, Mapping):
        for key in ("message", "error", "detail"):
            if body.get(key):
                return str(body[key])
    return response.reason_phrase


def _expect_mapping(result: Any, operation: str) -> dict[str, Any]:
    if not isinstance(result, Mapping):
        raise UpstreamFailure(
            f"{operation} failed: unexpected response shape",
            upstream_message=type(result).__name__,
        )
    return dict(result)
