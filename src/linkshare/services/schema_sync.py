"""Keeps a project's canonical schema snapshot in step with its live collection.

A schema change made through a shared link is applied to the external
collection first; only when that succeeds is the canonical snapshot on the
project replaced. The replace is a compare-and-swap on ``schema_revision``:
on conflict the project is re-read and the merge recomputed against the
fresh snapshot. Once the attempts run out the merge is applied under the
row's write lock instead, so it always lands. The stored result is returned
as the authoritative schema; only when storage itself fails, or the project
has vanished, is the locally merged snapshot returned instead.
"""

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

from linkshare.errors import ValidationFailed
from linkshare.models.enums import Permission
from linkshare.models.project import Project
from linkshare.models.results import SchemaUpdate
from linkshare.services.access import LinkResolver
from linkshare.services.data_access import DataAccessClient
from linkshare.services.project_store import ProjectStore

RESERVED_FIELD = "_id"

SchemaMerge = Callable[[Mapping[str, Any]], dict[str, Any]]


def _union(new_fields: Mapping[str, Any]) -> SchemaMerge:
    def merge(schema: Mapping[str, Any]) -> dict[str, Any]:
        return {**schema, **new_fields}

    return merge


def _without(field_name: str) -> SchemaMerge:
    def merge(schema: Mapping[str, Any]) -> dict[str, Any]:
        return {name: descriptor for name, descriptor in schema.items() if name != field_name}

    return merge


class SchemaCoordinator:
    """Adds and removes collection fields through shared links."""

    def __init__(
        self,
        resolver: LinkResolver,
        project_store: ProjectStore,
        data_access: DataAccessClient,
        settle_delay: float = 0.0,
        update_attempts: int = 3,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        if update_attempts < 1:
            raise ValueError("update_attempts must be at least 1")
        self._resolver = resolver
        self._project_store = project_store
        self._data_access = data_access
        self._settle_delay = settle_delay
        self._update_attempts = update_attempts
        self._logger = logger or structlog.get_logger(__name__)

    async def add_schema_fields(self, token: str, new_fields: Any) -> SchemaUpdate:
        """Add fields to the collection and to the canonical snapshot.

        Args:
            token: Shared link token; the link needs ``can_modify_schema``.
            new_fields: Mapping of field name to field descriptor.

        Raises:
            ValidationFailed: If ``new_fields`` is not a mapping of names.
            LinkUnavailable: If the link cannot modify the schema.
            UpstreamFailure: If the collection rejected the change.
        """
        if not isinstance(new_fields, Mapping):
            raise ValidationFailed("New fields object is required")
        if not all(isinstance(name, str) and name.strip() for name in new_fields):
            raise ValidationFailed("Field names must be non-empty strings")
        fields = dict(new_fields)

        resolved = await self._resolver.resolve(token, Permission.MODIFY_SCHEMA)
        project = resolved.project

        result = await self._data_access.add_schema_fields(
            project.database_name,
            project.collection_name,
            fields,
        )
        updated_schema = await self._store_schema(project, _union(fields))
        self._logger.info(
            "schema_fields_added",
            project_id=project.project_id,
            link_id=resolved.link.link_id,
            fields=sorted(fields),
        )
        return SchemaUpdate(result=result, updated_schema=updated_schema)

    async def remove_schema_field(self, token: str, field_name: str) -> SchemaUpdate:
        """Drop a field from the collection and from the canonical snapshot.

        Raises:
            ValidationFailed: If ``field_name`` is empty or the reserved ``_id``.
            LinkUnavailable: If the link cannot modify the schema.
            UpstreamFailure: If the collection rejected the change.
        """
        if not field_name or not field_name.strip():
            raise ValidationFailed("Field name is required")
        if field_name == RESERVED_FIELD:
            raise ValidationFailed(f"Cannot remove the {RESERVED_FIELD} field")

        resolved = await self._resolver.resolve(token, Permission.MODIFY_SCHEMA)
        project = resolved.project

        result = await self._data_access.remove_schema_field(
            project.database_name,
            project.collection_name,
            field_name,
        )
        updated_schema = await self._store_schema(project, _without(field_name))
        self._logger.info(
            "schema_field_removed",
            project_id=project.project_id,
            link_id=resolved.link.link_id,
            field=field_name,
        )
        return SchemaUpdate(result=result, updated_schema=updated_schema)

    async def _store_schema(self, project: Project, merge: SchemaMerge) -> dict[str, Any]:
        """Persist ``merge`` applied to the current snapshot and return the stored schema."""
        current: Project | None = project
        merged = merge(project.schema_data)

        try:
            for attempt in range(1, self._update_attempts + 1):
                merged = merge(current.schema_data)
                stored = await self._project_store.compare_and_set_schema(
                    current.project_id,
                    current.schema_revision,
                    merged,
                )
                if stored is not None:
                    return await self._settled(stored)

                current = await self._project_store.get_project_by_id(project.project_id)
                if current is None:
                    self._logger.warning("schema_project_vanished", project_id=project.project_id)
                    return merged
                self._logger.debug(
                    "schema_update_retry",
                    project_id=project.project_id,
                    attempt=attempt,
                    revision=current.schema_revision,
                )

            self._logger.warning(
                "schema_update_contended",
                project_id=project.project_id,
                attempts=self._update_attempts,
            )
            stored = await self._project_store.merge_schema_exclusively(project.project_id, merge)
        except SQLAlchemyError as e:
            self._logger.error(
                "schema_snapshot_unavailable",
                project_id=project.project_id,
                error=str(e),
            )
            return merged

        if stored is None:
            self._logger.warning("schema_project_vanished", project_id=project.project_id)
            return merged
        return await self._settled(stored)

    async def _settled(self, stored: Project) -> dict[str, Any]:
        if self._settle_delay <= 0:
            return dict(stored.schema_data)

        await asyncio.sleep(self._settle_delay)
        try:
            reread = await self._project_store.get_project_by_id(stored.project_id)
        except SQLAlchemyError as e:
            self._logger.warning("schema_reread_failed", project_id=stored.project_id, error=str(e))
            reread = None
        if reread is None:
            return dict(stored.schema_data)
        return dict(reread.schema_data)
