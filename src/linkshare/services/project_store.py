"""Project store persisting projects and their canonical schema snapshots."""

from collections.abc import Callable, Mapping
from datetime import timezone
from typing import Any
from uuid import uuid4

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from linkshare.models.base import utc_now
from linkshare.models.project import Project
from linkshare.models.tables import ProjectRecord
from linkshare.services.database import restore_utc

_UPDATABLE_FIELDS = frozenset({"name", "description", "connection_uri", "database_name", "collection_name"})


class ProjectStore:
    """Reads and writes Project records via SQLModel.

    The schema snapshot is only ever replaced whole, and every replace bumps
    ``schema_revision`` in the same transaction, so readers see either the
    previous or the next snapshot and never a partial merge.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._engine = engine
        self._logger = logger or structlog.get_logger(__name__)

    async def create_project(
        self,
        developer_id: str,
        name: str,
        connection_uri: str,
        database_name: str,
        collection_name: str,
        description: str | None = None,
        schema_data: Mapping[str, Any] | None = None,
    ) -> Project:
        """Register a project owned by ``developer_id``.

        Project creation belongs to the owner-facing dashboard; this entry
        point serves operator tooling and tests.
        """
        project = Project(
            project_id=str(uuid4()),
            developer_id=developer_id,
            name=name,
            description=description,
            connection_uri=connection_uri,
            database_name=database_name,
            collection_name=collection_name,
            schema_data=dict(schema_data or {}),
            created_at=utc_now(),
        )
        async with AsyncSession(self._engine) as session:
            session.add(self._project_to_record(project))
            await session.commit()
        self._logger.info(
            "project_created",
            project_id=project.project_id,
            developer_id=developer_id,
        )
        return project

    async def get_project_by_id(self, project_id: str) -> Project | None:
        """Retrieve a project by its ID.

        Args:
            project_id: The project ID to look up.

        Returns:
            The Project if found, None otherwise.
        """
        async with AsyncSession(self._engine) as session:
            record = await session.get(ProjectRecord, project_id)
            if record is None:
                return None
            return self._record_to_project(record)

    async def update_project(self, project_id: str, **fields: Any) -> Project | None:
        """Apply a partial update to descriptive project fields.

        Schema changes go through :meth:`compare_and_set_schema` instead.

        Returns:
            The updated Project, or None if it does not exist.

        Raises:
            ValueError: If a field is not updatable.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"fields cannot be updated: {', '.join(sorted(unknown))}")

        async with AsyncSession(self._engine) as session:
            record = await session.get(ProjectRecord, project_id)
            if record is None:
                return None
            for name, value in fields.items():
                setattr(record, name, value)
            session.add(record)
            await session.commit()
            await session.refresh(record)
            project = self._record_to_project(record)
        self._logger.debug("project_updated", project_id=project_id, fields=sorted(fields))
        return project

    async def compare_and_set_schema(
        self,
        project_id: str,
        expected_revision: int,
        schema_data: Mapping[str, Any],
    ) -> Project | None:
        """Replace the schema snapshot if nobody else changed it first.

        Args:
            project_id: Project whose snapshot is replaced.
            expected_revision: Revision the caller merged against.
            schema_data: Complete new snapshot.

        Returns:
            The project as stored after the update, or None when the revision
            moved on or the project no longer exists.
        """
        statement = (
            update(ProjectRecord)
            .where(ProjectRecord.project_id == project_id)
            .where(ProjectRecord.schema_revision == expected_revision)
            .values(schema_data=dict(schema_data), schema_revision=expected_revision + 1)
        )
        async with AsyncSession(self._engine) as session:
            result = await session.execute(statement)
            if result.rowcount != 1:
                await session.rollback()
                self._logger.debug(
                    "schema_revision_conflict",
                    project_id=project_id,
                    expected_revision=expected_revision,
                )
                return None
            record = await session.get(ProjectRecord, project_id, populate_existing=True)
            project = self._record_to_project(record)
            await session.commit()
        return project

    async def merge_schema_exclusively(
        self,
        project_id: str,
        merge: Callable[[Mapping[str, Any]], Mapping[str, Any]],
    ) -> Project | None:
        """Apply ``merge`` to the current snapshot while holding the row's write lock.

        The revision bump is the transaction's first statement, so concurrent
        writers queue behind it; the snapshot is then read and replaced before
        the lock is released. Slower than :meth:`compare_and_set_schema` but
        cannot lose a race.

        Returns:
            The project as stored after the update, or None if it no longer exists.
        """
        lock = (
            update(ProjectRecord)
            .where(ProjectRecord.project_id == project_id)
            .values(schema_revision=ProjectRecord.schema_revision + 1)
            .execution_options(synchronize_session=False)
        )
        async with AsyncSession(self._engine) as session:
            result = await session.execute(lock)
            if result.rowcount != 1:
                await session.rollback()
                return None
            record = await session.get(ProjectRecord, project_id, populate_existing=True)
            record.schema_data = dict(merge(dict(record.schema_data)))
            session.add(record)
            await session.commit()
            await session.refresh(record)
            project = self._record_to_project(record)
        self._logger.info(
            "schema_merged_exclusively",
            project_id=project_id,
            revision=project.schema_revision,
        )
        return project

    def _project_to_record(self, project: Project) -> ProjectRecord:
        data = project.model_dump()
        data["created_at"] = project.created_at.astimezone(timezone.utc)
        return ProjectRecord.model_validate(data)

    def _record_to_project(self, record: ProjectRecord) -> Project:
        data = record.model_dump()
        data["created_at"] = restore_utc(data["created_at"])
        return Project.model_validate(data)
