"""HTTP surface for owners and anonymous link holders.

Owner routes live under ``/api`` and need the developer identity that the
upstream authentication proxy places in ``X-Developer-Id``. Client routes
live under ``/shared/{token}`` and need nothing but the token.

This module is the error boundary: every SharingError becomes a JSON
envelope with the status code of its kind, and anything unexpected becomes a
generic 500.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends, FastAPI, Header, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from linkshare.config import Settings, get_settings
from linkshare.errors import (
    Forbidden,
    NotFound,
    SharingError,
    Unauthenticated,
    UpstreamFailure,
    ValidationFailed,
)
from linkshare.models.shared_link import SharedLink
from linkshare.services.factory import SharingServices, create_sharing_services

logger = structlog.get_logger(__name__)

ERROR_STATUS: dict[type[SharingError], int] = {
    Unauthenticated: status.HTTP_401_UNAUTHORIZED,
    Forbidden: status.HTTP_403_FORBIDDEN,
    NotFound: status.HTTP_404_NOT_FOUND,
    ValidationFailed: status.HTTP_400_BAD_REQUEST,
    UpstreamFailure: status.HTTP_502_BAD_GATEWAY,
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class CreateLinkRequest(_CamelModel):
    expires_at: datetime | None = None
    can_insert: bool | None = None
    can_view: bool | None = None
    can_delete: bool | None = None
    can_modify_schema: bool | None = None


class UpdateLinkRequest(_CamelModel):
    is_active: bool | None = None


class InsertDataRequest(_CamelModel):
    data: Any = None


class SchemaFieldsRequest(_CamelModel):
    new_fields: Any = Field(default=None)


def link_view(link: SharedLink) -> dict[str, Any]:
    return {
        "id": link.link_id,
        "token": link.token,
        "projectId": link.project_id,
        "permissions": link.permissions.model_dump(by_alias=True),
        "isActive": link.is_active,
        "expiresAt": link.expires_at.isoformat() if link.expires_at else None,
        "createdAt": link.created_at.isoformat(),
    }


def _envelope(data: Any = None, message: str | None = None, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    body.update(extra)
    return body


def _status_for(error: SharingError) -> int:
    for error_type in type(error).__mro__:
        if error_type in ERROR_STATUS:
            return ERROR_STATUS[error_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def _sharing_error_handler(request: Request, exc: SharingError) -> JSONResponse:
    body: dict[str, Any] = {"success": False, "error": exc.title, "message": exc.message}
    if isinstance(exc, UpstreamFailure) and exc.upstream_message:
        body["upstream"] = exc.upstream_message
    return JSONResponse(status_code=_status_for(exc), content=body)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": ValidationFailed.title,
            "message": "; ".join(str(error.get("msg", "")) for error in exc.errors()) or "Malformed request",
        },
    )


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request_failed", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Operation failed", "message": "Unexpected server error"},
    )


def get_services(request: Request) -> SharingServices:
    return request.app.state.services


def developer_identity(x_developer_id: str | None = Header(default=None)) -> str | None:
    return x_developer_id.strip() if x_developer_id and x_developer_id.strip() else None


owner_router = APIRouter(prefix="/api", tags=["shared-links"])
client_router = APIRouter(prefix="/shared", tags=["client-access"])


@owner_router.post("/projects/{project_id}/share", status_code=status.HTTP_201_CREATED)
async def create_shared_link(
    project_id: str,
    body: CreateLinkRequest = CreateLinkRequest(),
    developer_id: str | None = Depends(developer_identity),
    services: SharingServices = Depends(get_services),
) -> dict[str, Any]:
    overrides = body.model_dump(exclude={"expires_at"}, exclude_none=True)
    link = await services.links.create_link(project_id, developer_id, overrides, body.expires_at)
    return _envelope(link_view(link), "Shared link created successfully")


@owner_router.get("/projects/{project_id}/links")
async def list_shared_links(
    project_id: str,
    developer_id: str | None = Depends(developer_identity),
    services: SharingServices = Depends(get_services),
) -> dict[str, Any]:
    links = await services.links.list_links(project_id, developer_id)
    return _envelope([link_view(link) for link in links], count=len(links))


@owner_router.delete("/projects/{project_id}/links/{link_id}")
async def delete_shared_link(
    project_id: str,
    link_id: str,
    developer_id: str | None = Depends(developer_identity),
    services: SharingServices = Depends(get_services),
) -> dict[str, Any]:
    await services.links.delete_link(project_id, link_id, developer_id)
    return _envelope(message="Shared link deleted successfully")


@owner_router.put("/shared-links/{token}")
async def update_shared_link(
    token: str,
    body: UpdateLinkRequest = UpdateLinkRequest(),
    developer_id: str | None = Depends(developer_identity),
    services: SharingServices = Depends(get_services),
) -> dict[str, Any]:
    link = await services.links.update_link(token, developer_id, is_active=body.is_active)
    return _envelope(link_view(link), "Shared link updated successfully")


@client_router.get("/{token}")
async def get_shared_project(
    token: str,
    services: SharingServices = Depends(get_services),
) -> dict[str, Any]:
    info = await services.gateway.get_project_info(token)
    return _envelope(info.model_dump(by_alias=True, mode="json"))


@client_router.post("/{token}/data", status_code=status.HTTP_201_CREATED)
async def insert_data(
    token: str,
    body: InsertDataRequest,
    services: SharingServices = Depends(get_services),
) -> dict[str, Any]:
    result = await services.gateway.insert_data(token, body.data)
    return _envelope(result, "Data inserted successfully")


@client_router.get("/{token}/data")
async def get_data(
    token: str,
    services: SharingServices = Depends(get_services),
) -> dict[str, Any]:
    result = await services.gateway.get_data(token)
    return _envelope(result)


@client_router.delete("/{token}/data/{document_id}")
async def delete_data(
    token: str,
    document_id: str,
    services: SharingServices = Depends(get_services),
) -> dict[str, Any]:
    result = await services.gateway.delete_data(token, document_id)
    return _envelope(result, "Data deleted successfully")


@client_router.put("/{token}/schema")
async def add_schema_fields(
    token: str,
    body: SchemaFieldsRequest,
    services: SharingServices = Depends(get_services),
) -> dict[str, Any]:
    update = await services.gateway.add_schema_fields(token, body.new_fields)
    return _envelope(update.to_response(), "Schema fields added successfully")


@client_router.delete("/{token}/schema/{field_name}")
async def remove_schema_field(
    token: str,
    field_name: str,
    services: SharingServices = Depends(get_services),
) -> dict[str, Any]:
    update = await services.gateway.remove_schema_field(token, field_name)
    return _envelope(update.to_response(), f"Field '{field_name}' removed successfully")


def create_app(
    services: SharingServices | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        services: Pre-built services, owned by the caller. When omitted,
            services are created from settings at startup and closed at
            shutdown.
        settings: Settings used when services are built here.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if services is not None:
            yield
            return
        owned = create_sharing_services(settings or get_settings())
        async with owned:
            app.state.services = owned
            logger.info("sharing_services_started")
            yield
        logger.info("sharing_services_stopped")

    app = FastAPI(title="linkshare", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    app.add_exception_handler(SharingError, _sharing_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)

    app.include_router(owner_router)
    app.include_router(client_router)
    return app
