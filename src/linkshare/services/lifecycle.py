"""Owner-facing shared link management.

Every operation takes the developer id resolved by the authentication layer
and checks it against the owner of the project the link belongs to.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

import structlog

from linkshare.errors import Forbidden, NotFound, Unauthenticated, ValidationFailed
from linkshare.models.permissions import DEFAULT_LINK_PERMISSIONS, LinkPermissions
from linkshare.models.project import Project
from linkshare.models.shared_link import SharedLink
from linkshare.services.link_store import SharedLinkStore
from linkshare.services.project_store import ProjectStore


class SharedLinkManager:
    """Creates, lists, updates and revokes shared links for project owners."""

    def __init__(
        self,
        project_store: ProjectStore,
        link_store: SharedLinkStore,
        default_permissions: LinkPermissions = DEFAULT_LINK_PERMISSIONS,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._project_store = project_store
        self._link_store = link_store
        self._default_permissions = default_permissions
        self._logger = logger or structlog.get_logger(__name__)

    async def create_link(
        self,
        project_id: str,
        developer_id: str | None,
        permission_overrides: Mapping[str, Any] | None = None,
        expires_at: datetime | None = None,
    ) -> SharedLink:
        """Mint a link for one of the developer's projects.

        Args:
            project_id: Project the link grants access to.
            developer_id: Resolved identity of the caller.
            permission_overrides: Capability flags replacing the defaults;
                None values keep the default.
            expires_at: Optional timezone-aware expiry instant.

        Raises:
            Unauthenticated: If no developer identity was resolved.
            NotFound: If the project does not exist.
            Forbidden: If the project belongs to another developer.
            ValidationFailed: If the overrides or expiry are malformed.
        """
        owner = self._require_developer(developer_id)
        await self._owned_project(project_id, owner, action="create shared links for")

        try:
            permissions = self._default_permissions.with_overrides(permission_overrides)
        except ValueError as e:
            raise ValidationFailed(f"Invalid permissions: {e}") from e
        if expires_at is not None and (expires_at.tzinfo is None or expires_at.tzinfo.utcoffset(expires_at) is None):
            raise ValidationFailed("expiresAt must include a timezone")

        link = await self._link_store.create_shared_link(project_id, permissions, expires_at)
        self._logger.info(
            "link_created",
            project_id=project_id,
            link_id=link.link_id,
            developer_id=owner,
            permissions=permissions.model_dump(),
            expires_at=expires_at.isoformat() if expires_at else None,
        )
        return link

    async def list_links(self, project_id: str, developer_id: str | None) -> list[SharedLink]:
        owner = self._require_developer(developer_id)
        await self._owned_project(project_id, owner, action="access shared links for")
        return await self._link_store.get_shared_links_by_project(project_id)

    async def delete_link(self, project_id: str, link_id: str, developer_id: str | None) -> None:
        """Revoke a link permanently.

        The link must belong to ``project_id``; a link id from another
        project is reported as not found.
        """
        owner = self._require_developer(developer_id)
        await self._owned_project(project_id, owner, action="delete shared links for")

        link = await self._link_store.get_shared_link_by_id(link_id)
        if link is None or link.project_id != project_id:
            raise NotFound("No shared link found with the specified ID for this project")

        await self._link_store.delete_shared_link(link_id)
        self._logger.info("link_deleted", project_id=project_id, link_id=link_id, developer_id=owner)

    async def update_link(
        self,
        token: str,
        developer_id: str | None,
        is_active: bool | None = None,
    ) -> SharedLink:
        """Enable or disable a link identified by its token.

        Only ``is_active`` changes; everything else is preserved.

        Raises:
            Unauthenticated: If no developer identity was resolved.
            NotFound: If no link carries ``token``.
            Forbidden: If the link's project is missing or not owned by the caller.
        """
        owner = self._require_developer(developer_id)

        link = await self._link_store.get_shared_link_by_token(token)
        if link is None:
            raise NotFound("No shared link found with the specified token")

        project = await self._project_store.get_project_by_id(link.project_id)
        if project is None or not project.is_owned_by(owner):
            self._logger.warning(
                "link_ownership_rejected",
                link_id=link.link_id,
                project_id=link.project_id,
                developer_id=owner,
                project_missing=project is None,
            )
            raise Forbidden("You can only update shared links for your own projects")

        if is_active is None:
            return link

        updated = await self._link_store.update_shared_link(link.link_id, is_active=is_active)
        if updated is None:
            raise NotFound("No shared link found with the specified token")
        self._logger.info(
            "link_updated",
            link_id=link.link_id,
            project_id=link.project_id,
            is_active=updated.is_active,
        )
        return updated

    def _require_developer(self, developer_id: str | None) -> str:
        if not developer_id:
            raise Unauthenticated("Developer authentication required")
        return developer_id

    async def _owned_project(self, project_id: str, developer_id: str, *, action: str) -> Project:
        project = await self._project_store.get_project_by_id(project_id)
        if project is None:
            raise NotFound("No project found with the specified ID")
        if not project.is_owned_by(developer_id):
            self._logger.warning(
                "link_ownership_rejected",
                project_id=project_id,
                developer_id=developer_id,
            )
            raise Forbidden(f"You can only {action} your own projects")
        return project
