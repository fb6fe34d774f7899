"""Anonymous client access through shared link tokens.

Clients never authenticate: the token alone selects the link, the link's
permission bits gate each operation, and the link's project decides which
external collection the request is forwarded to.
"""

from collections.abc import Mapping
from typing import Any

import structlog

from linkshare.errors import ValidationFailed
from linkshare.models.enums import Permission
from linkshare.models.project import ProjectInfo
from linkshare.models.results import SchemaUpdate
from linkshare.services.access import LinkResolver
from linkshare.services.audit_log import ClientEntryRecorder
from linkshare.services.data_access import DataAccessClient
from linkshare.services.schema_sync import SchemaCoordinator


class ClientGateway:
    """Token-scoped operations exposed to anonymous clients.

    All dependencies are injected via constructor for testability.
    """

    def __init__(
        self,
        resolver: LinkResolver,
        data_access: DataAccessClient,
        recorder: ClientEntryRecorder,
        schema: SchemaCoordinator,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._resolver = resolver
        self._data_access = data_access
        self._recorder = recorder
        self._schema = schema
        self._logger = logger or structlog.get_logger(__name__)

    async def get_project_info(self, token: str) -> ProjectInfo:
        """Return the redacted project view for a live link."""
        resolved = await self._resolver.resolve(token)
        return ProjectInfo.for_link(resolved.project, resolved.link.permissions)

    async def insert_data(self, token: str, payload: Any) -> dict[str, Any]:
        """Insert a document into the project's collection.

        The audit entry is written in the background once the insert has
        succeeded; its outcome never changes the result returned here.

        Raises:
            ValidationFailed: If ``payload`` is not a JSON object.
            LinkUnavailable: If the link cannot insert.
            UpstreamFailure: If the data-access service failed.
        """
        if not isinstance(payload, Mapping):
            raise ValidationFailed("Data object is required")

        resolved = await self._resolver.resolve(token, Permission.INSERT)
        project = resolved.project

        result = await self._data_access.insert_data(
            project.connection_uri,
            project.database_name,
            project.collection_name,
            payload,
        )

        document_id = result.get("document_id")
        if document_id:
            self._recorder.record(project.project_id, resolved.link.link_id, str(document_id), payload)
        else:
            self._logger.warning(
                "insert_without_document_id",
                project_id=project.project_id,
                link_id=resolved.link.link_id,
            )

        self._logger.info(
            "client_data_inserted",
            project_id=project.project_id,
            link_id=resolved.link.link_id,
            document_id=document_id,
        )
        return result

    async def get_data(self, token: str) -> Any:
        resolved = await self._resolver.resolve(token, Permission.VIEW)
        project = resolved.project
        return await self._data_access.retrieve_data(
            project.connection_uri,
            project.database_name,
            project.collection_name,
        )

    async def delete_data(self, token: str, document_id: str) -> Any:
        if not document_id or not document_id.strip():
            raise ValidationFailed("Document ID is required")

        resolved = await self._resolver.resolve(token, Permission.DELETE)
        project = resolved.project
        result = await self._data_access.delete_data(
            project.connection_uri,
            project.database_name,
            project.collection_name,
            document_id,
        )
        self._logger.info(
            "client_data_deleted",
            project_id=project.project_id,
            link_id=resolved.link.link_id,
            document_id=document_id,
        )
        return result

    async def add_schema_fields(self, token: str, new_fields: Any) -> SchemaUpdate:
        return await self._schema.add_schema_fields(token, new_fields)

    async def remove_schema_field(self, token: str, field_name: str) -> SchemaUpdate:
        return await self._schema.remove_schema_field(token, field_name)
