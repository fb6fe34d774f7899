from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from linkshare.models.base import (
    VersionedRecord,
    coerce_aware_datetime,
    ensure_field_mapping,
    ensure_non_empty_text,
    ensure_uuid_str,
)
from linkshare.models.permissions import LinkPermissions


class Project(VersionedRecord):
    SCHEMA_VERSION: ClassVar[str] = "project.v1"

    schema_version: str = Field(default=SCHEMA_VERSION)
    project_id: str
    developer_id: str
    name: str
    description: str | None = None
    connection_uri: str
    database_name: str
    collection_name: str
    schema_data: dict[str, Any] = Field(default_factory=dict)
    schema_revision: int = Field(default=0, ge=0)
    created_at: datetime

    @field_validator("project_id", mode="before")
    @classmethod
    def _normalize_project_id(cls, value: Any) -> str:
        return ensure_uuid_str(value)

    @field_validator("developer_id", "name", "connection_uri", "database_name", "collection_name")
    @classmethod
    def _ensure_non_empty(cls, value: str, info: ValidationInfo) -> str:
        return ensure_non_empty_text(value, info.field_name or "value")

    @field_validator("schema_data", mode="before")
    @classmethod
    def _normalize_schema(cls, value: Any) -> dict[str, Any]:
        return ensure_field_mapping(value, "schema_data")

    @field_validator("created_at", mode="before")
    @classmethod
    def _validate_created_at(cls, value: Any) -> datetime:
        return coerce_aware_datetime(value, "created_at")

    def is_owned_by(self, developer_id: str) -> bool:
        return self.developer_id == developer_id


class ProjectInfo(BaseModel):
    """Client-safe view of a project reached through a shared link.

    Omits the connection URI and the owning developer.
    """

    project_name: str
    description: str | None = None
    database_name: str
    collection_name: str
    schema_: dict[str, Any] = Field(default_factory=dict, alias="schema")
    permissions: LinkPermissions

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @classmethod
    def for_link(cls, project: Project, permissions: LinkPermissions) -> "ProjectInfo":
        return cls(
            project_name=project.name,
            description=project.description,
            database_name=project.database_name,
            collection_name=project.collection_name,
            schema=dict(project.schema_data),
            permissions=permissions,
        )


__all__ = ["Project", "ProjectInfo"]
