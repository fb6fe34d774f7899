"""Client entry audit trail.

``ClientEntryLog`` appends ClientEntry records to SQLite. ``ClientEntryRecorder``
writes them from background tasks so a failing audit write never delays or
fails the insert that produced it. Failed writes are retried with exponential
backoff and then logged and dropped.
"""

import asyncio
from collections.abc import Mapping
from datetime import timezone
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from linkshare.models.client_entry import ClientEntry
from linkshare.models.tables import ClientEntryRecord
from linkshare.services.database import restore_utc


class ClientEntryLog:
    """Append-only store for ClientEntry records."""

    def __init__(
        self,
        engine: AsyncEngine,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._engine = engine
        self._logger = logger or structlog.get_logger(__name__)

    async def track_client_entry(
        self,
        project_id: str,
        link_id: str,
        document_id: str,
        payload: Mapping[str, Any],
    ) -> ClientEntry:
        entry = ClientEntry(
            project_id=project_id,
            link_id=link_id,
            document_id=document_id,
            payload=dict(payload),
        )
        data = entry.model_dump()
        data["created_at"] = entry.created_at.astimezone(timezone.utc)
        async with AsyncSession(self._engine) as session:
            session.add(ClientEntryRecord.model_validate(data))
            await session.commit()
        self._logger.debug(
            "client_entry_tracked",
            entry_id=entry.entry_id,
            project_id=project_id,
            link_id=link_id,
            document_id=document_id,
        )
        return entry

    async def list_entries(self, project_id: str) -> list[ClientEntry]:
        """Return a project's entries, oldest first. Used by operators and tests."""
        async with AsyncSession(self._engine) as session:
            statement = (
                select(ClientEntryRecord)
                .where(ClientEntryRecord.project_id == project_id)
                .order_by(ClientEntryRecord.created_at)
            )
            result = await session.execute(statement)
            entries = []
            for record in result.scalars().all():
                data = record.model_dump()
                data["created_at"] = restore_utc(data["created_at"])
                entries.append(ClientEntry.model_validate(data))
            return entries


class ClientEntryRecorder:
    """Schedules audit writes as independent tasks."""

    def __init__(
        self,
        entry_log: ClientEntryLog,
        retry_attempts: int = 3,
        retry_backoff: float = 0.2,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        self._entry_log = entry_log
        self._retry_attempts = retry_attempts
        self._retry_backoff = retry_backoff
        self._logger = logger or structlog.get_logger(__name__)
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def record(
        self,
        project_id: str,
        link_id: str,
        document_id: str,
        payload: Mapping[str, Any],
    ) -> asyncio.Task[None]:
        """Start writing an entry in the background and return immediately."""
        task = asyncio.create_task(
            self._write(project_id, link_id, document_id, dict(payload)),
            name=f"client-entry-{document_id}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled write to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _write(
        self,
        project_id: str,
        link_id: str,
        document_id: str,
        payload: dict[str, Any],
    ) -> None:
        delay = self._retry_backoff
        for attempt in range(1, self._retry_attempts + 1):
            try:
                await self._entry_log.track_client_entry(project_id, link_id, document_id, payload)
                return
            except Exception as e:
                if attempt == self._retry_attempts:
                    self._logger.error(
                        "client_entry_failed",
                        project_id=project_id,
                        link_id=link_id,
                        document_id=document_id,
                        attempts=attempt,
                        error=str(e),
                    )
                    return
                self._logger.warning(
                    "client_entry_retry",
                    project_id=project_id,
                    document_id=document_id,
                    attempt=attempt,
                    error=str(e),
                )
                await asyncio.sleep(delay)
                delay *= 2
