"""Token resolution for anonymous, link-scoped operations.

``LinkResolver.resolve`` is the one place that turns a presented token into a
usable (link, project) pair. Every way that can fail raises the same
LinkUnavailable error; only the log event records which check failed.
"""

from datetime import datetime

import structlog
from pydantic import BaseModel, ConfigDict

from linkshare.errors import LinkDenial, LinkUnavailable
from linkshare.models.base import utc_now
from linkshare.models.enums import Permission
from linkshare.models.project import Project
from linkshare.models.shared_link import SharedLink
from linkshare.services.link_store import SharedLinkStore
from linkshare.services.project_store import ProjectStore


class ResolvedLink(BaseModel):
    """A live link together with the project it grants access to."""

    link: SharedLink
    project: Project

    model_config = ConfigDict(frozen=True)


def _token_hint(token: str) -> str:
    return token[:6] + "..." if len(token) > 6 else "***"


class LinkResolver:
    def __init__(
        self,
        link_store: SharedLinkStore,
        project_store: ProjectStore,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._link_store = link_store
        self._project_store = project_store
        self._logger = logger or structlog.get_logger(__name__)

    async def resolve(
        self,
        token: str,
        permission: Permission | None = None,
        at: datetime | None = None,
    ) -> ResolvedLink:
        """Resolve ``token`` to a live link and its project.

        Args:
            token: Token presented by the client.
            permission: Capability the operation needs, or None for read-only
                project info.
            at: Instant used for the expiry check (defaults to now).

        Raises:
            LinkUnavailable: If the token is unknown, inactive or expired, the
                link lacks ``permission``, or the project is gone.
        """
        now = at or utc_now()
        link = await self._link_store.get_shared_link_by_token(token) if token else None
        if link is None:
            raise self._deny(LinkDenial.UNKNOWN_TOKEN, token=token, permission=permission)
        if not link.is_live(now):
            reason = LinkDenial.EXPIRED if link.is_active else LinkDenial.INACTIVE
            raise self._deny(reason, token=token, permission=permission, link=link)
        if permission is not None and not link.authorizes(permission, now):
            raise self._deny(LinkDenial.PERMISSION_DENIED, token=token, permission=permission, link=link)

        project = await self._project_store.get_project_by_id(link.project_id)
        if project is None:
            raise self._deny(LinkDenial.PROJECT_MISSING, token=token, permission=permission, link=link)

        return ResolvedLink(link=link, project=project)

    def _deny(
        self,
        reason: LinkDenial,
        *,
        token: str,
        permission: Permission | None,
        link: SharedLink | None = None,
    ) -> LinkUnavailable:
        self._logger.info(
            "link_access_denied",
            reason=reason.value,
            token=_token_hint(token or ""),
            permission=permission.value if permission else None,
            link_id=link.link_id if link else None,
            project_id=link.project_id if link else None,
        )
        return LinkUnavailable(reason)
