"""Unit tests for LinkResolver token resolution."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from linkshare.errors import LinkDenial, LinkUnavailable, NotFound
from linkshare.models.enums import Permission
from linkshare.models.permissions import DEFAULT_LINK_PERMISSIONS
from linkshare.models.project import Project
from linkshare.models.tables import ProjectRecord
from linkshare.services.factory import SharingServices


async def _resolve_error(services: SharingServices, token: str, permission: Permission | None = None) -> LinkUnavailable:
    with pytest.raises(LinkUnavailable) as exc_info:
        await services.resolver.resolve(token, permission)
    return exc_info.value


class TestLinkResolver:
    async def test_resolves_live_link_and_project(self, services: SharingServices, project: Project) -> None:
        link = await services.link_store.create_shared_link(project.project_id)

        resolved = await services.resolver.resolve(link.token, Permission.INSERT)

        assert resolved.link.link_id == link.link_id
        assert resolved.project.project_id == project.project_id

    async def test_unknown_token(self, services: SharingServices) -> None:
        error = await _resolve_error(services, "no-such-token")

        assert error.reason is LinkDenial.UNKNOWN_TOKEN

    async def test_empty_token(self, services: SharingServices) -> None:
        error = await _resolve_error(services, "")

        assert error.reason is LinkDenial.UNKNOWN_TOKEN

    async def test_inactive_link(self, services: SharingServices, project: Project) -> None:
        link = await services.link_store.create_shared_link(project.project_id)
        await services.link_store.update_shared_link(link.link_id, is_active=False)

        error = await _resolve_error(services, link.token)

        assert error.reason is LinkDenial.INACTIVE

    async def test_expired_link(self, services: SharingServices, project: Project) -> None:
        past = datetime.now(timezone.utc) - timedelta(minutes=1)
        link = await services.link_store.create_shared_link(project.project_id, expires_at=past)

        error = await _resolve_error(services, link.token)

        assert error.reason is LinkDenial.EXPIRED

    async def test_expiry_evaluated_at_given_instant(self, services: SharingServices, project: Project) -> None:
        expires_at = datetime(2030, 1, 1, tzinfo=timezone.utc)
        link = await services.link_store.create_shared_link(project.project_id, expires_at=expires_at)

        resolved = await services.resolver.resolve(link.token, at=expires_at - timedelta(seconds=1))
        assert resolved.link.link_id == link.link_id

        with pytest.raises(LinkUnavailable):
            await services.resolver.resolve(link.token, at=expires_at)

    async def test_missing_permission_bit(self, services: SharingServices, project: Project) -> None:
        link = await services.link_store.create_shared_link(project.project_id, DEFAULT_LINK_PERMISSIONS)

        error = await _resolve_error(services, link.token, Permission.DELETE)

        assert error.reason is LinkDenial.PERMISSION_DENIED

    async def test_project_deleted_behind_link(self, services: SharingServices, project: Project) -> None:
        link = await services.link_store.create_shared_link(project.project_id)
        async with AsyncSession(services.engine) as session:
            await session.execute(delete(ProjectRecord).where(ProjectRecord.project_id == project.project_id))
            await session.commit()

        error = await _resolve_error(services, link.token)

        assert error.reason is LinkDenial.PROJECT_MISSING

    async def test_every_denial_looks_the_same(self, services: SharingServices, project: Project) -> None:
        no_delete = await services.link_store.create_shared_link(project.project_id)
        inactive = await services.link_store.create_shared_link(project.project_id)
        await services.link_store.update_shared_link(inactive.link_id, is_active=False)

        errors = [
            await _resolve_error(services, "unknown", Permission.DELETE),
            await _resolve_error(services, no_delete.token, Permission.DELETE),
            await _resolve_error(services, inactive.token, Permission.DELETE),
        ]

        assert {type(e) for e in errors} == {LinkUnavailable}
        assert {e.message for e in errors} == {LinkUnavailable.MESSAGE}
        assert all(isinstance(e, NotFound) for e in errors)
