"""Shared link store: minting tokens and persisting link records."""

import secrets
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from linkshare.models.base import utc_now
from linkshare.models.permissions import DEFAULT_LINK_PERMISSIONS, LinkPermissions
from linkshare.models.shared_link import SharedLink
from linkshare.models.tables import SharedLinkRecord
from linkshare.services.database import restore_utc

_PERMISSION_COLUMNS = ("can_insert", "can_view", "can_delete", "can_modify_schema")
_UPDATABLE_FIELDS = frozenset({"is_active", "expires_at", "permissions"})


def generate_token(num_bytes: int = 24) -> str:
    """Generate a cryptographically secure, URL-safe link token."""
    return secrets.token_urlsafe(num_bytes)


class SharedLinkStore:
    """Persists SharedLink records via SQLModel.

    Tokens are regenerated until unused, and the token column is unique, so a
    token never identifies more than one link.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        token_bytes: int = 24,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._engine = engine
        self._token_bytes = token_bytes
        self._logger = logger or structlog.get_logger(__name__)

    async def create_shared_link(
        self,
        project_id: str,
        permissions: LinkPermissions = DEFAULT_LINK_PERMISSIONS,
        expires_at: datetime | None = None,
    ) -> SharedLink:
        """Create a link for ``project_id`` with a freshly minted token."""
        async with AsyncSession(self._engine) as session:
            token = generate_token(self._token_bytes)
            while await self._token_exists(session, token):
                token = generate_token(self._token_bytes)

            link = SharedLink(
                link_id=str(uuid4()),
                token=token,
                project_id=project_id,
                permissions=permissions,
                expires_at=expires_at,
                created_at=utc_now(),
            )
            session.add(self._link_to_record(link))
            await session.commit()
        self._logger.debug("shared_link_saved", link_id=link.link_id, project_id=project_id)
        return link

    async def get_shared_links_by_project(self, project_id: str) -> list[SharedLink]:
        """Return every link of a project, oldest first."""
        async with AsyncSession(self._engine) as session:
            statement = (
                select(SharedLinkRecord)
                .where(SharedLinkRecord.project_id == project_id)
                .order_by(SharedLinkRecord.created_at)
            )
            result = await session.execute(statement)
            return [self._record_to_link(r) for r in result.scalars().all()]

    async def get_shared_link_by_token(self, token: str) -> SharedLink | None:
        async with AsyncSession(self._engine) as session:
            statement = select(SharedLinkRecord).where(SharedLinkRecord.token == token)
            result = await session.execute(statement)
            record = result.scalar_one_or_none()
            if record is None:
                return None
            return self._record_to_link(record)

    async def get_shared_link_by_id(self, link_id: str) -> SharedLink | None:
        async with AsyncSession(self._engine) as session:
            record = await session.get(SharedLinkRecord, link_id)
            if record is None:
                return None
            return self._record_to_link(record)

    async def update_shared_link(self, link_id: str, **fields: Any) -> SharedLink | None:
        """Apply a partial update to a link.

        Accepts ``is_active``, ``expires_at`` and ``permissions``.

        Returns:
            The updated SharedLink, or None if it does not exist.

        Raises:
            ValueError: If a field is not updatable.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"fields cannot be updated: {', '.join(sorted(unknown))}")

        async with AsyncSession(self._engine) as session:
            record = await session.get(SharedLinkRecord, link_id)
            if record is None:
                return None
            if "is_active" in fields:
                record.is_active = bool(fields["is_active"])
            if "expires_at" in fields:
                record.expires_at = _to_utc(fields["expires_at"])
            if "permissions" in fields:
                permissions: LinkPermissions = fields["permissions"]
                for column in _PERMISSION_COLUMNS:
                    setattr(record, column, getattr(permissions, column))
            session.add(record)
            await session.commit()
            await session.refresh(record)
            link = self._record_to_link(record)
        self._logger.debug("shared_link_updated", link_id=link_id, fields=sorted(fields))
        return link

    async def delete_shared_link(self, link_id: str) -> bool:
        """Delete a link.

        Returns:
            True if the link was deleted, False if not found.
        """
        async with AsyncSession(self._engine) as session:
            record = await session.get(SharedLinkRecord, link_id)
            if record is None:
                return False
            await session.delete(record)
            await session.commit()
        self._logger.debug("shared_link_deleted", link_id=link_id)
        return True

    async def _token_exists(self, session: AsyncSession, token: str) -> bool:
        statement = select(SharedLinkRecord.link_id).where(SharedLinkRecord.token == token)
        result = await session.execute(statement)
        return result.first() is not None

    def _link_to_record(self, link: SharedLink) -> SharedLinkRecord:
        """Flatten the permission group into one column per capability."""
        data = link.model_dump()
        data.update(data.pop("permissions"))
        data["created_at"] = link.created_at.astimezone(timezone.utc)
        data["expires_at"] = _to_utc(link.expires_at)
        return SharedLinkRecord.model_validate(data)

    def _record_to_link(self, record: SharedLinkRecord) -> SharedLink:
        data = record.model_dump()
        data["permissions"] = LinkPermissions(**{column: data.pop(column) for column in _PERMISSION_COLUMNS})
        data["created_at"] = restore_utc(data["created_at"])
        data["expires_at"] = restore_utc(data["expires_at"])
        return SharedLink.model_validate(data)


def _to_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        raise ValueError("expires_at must be timezone-aware")
    return value.astimezone(timezone.utc)
