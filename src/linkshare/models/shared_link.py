from datetime import datetime
from typing import Any, ClassVar

from pydantic import Field, field_validator

from linkshare.models.base import (
    VersionedRecord,
    coerce_aware_datetime,
    ensure_non_empty_text,
    ensure_uuid_str,
    utc_now,
)
from linkshare.models.enums import Permission
from linkshare.models.permissions import DEFAULT_LINK_PERMISSIONS, LinkPermissions


class SharedLink(VersionedRecord):
    SCHEMA_VERSION: ClassVar[str] = "shared_link.v1"

    schema_version: str = Field(default=SCHEMA_VERSION)
    link_id: str
    token: str
    project_id: str
    permissions: LinkPermissions = Field(default=DEFAULT_LINK_PERMISSIONS)
    is_active: bool = True
    expires_at: datetime | None = None
    created_at: datetime

    @field_validator("link_id", "project_id", mode="before")
    @classmethod
    def _normalize_ids(cls, value: Any) -> str:
        return ensure_uuid_str(value)

    @field_validator("token")
    @classmethod
    def _validate_token(cls, value: str) -> str:
        return ensure_non_empty_text(value, "token")

    @field_validator("expires_at", mode="before")
    @classmethod
    def _validate_expires_at(cls, value: Any) -> datetime | None:
        if value is None:
            return None
        return coerce_aware_datetime(value, "expires_at")

    @field_validator("created_at", mode="before")
    @classmethod
    def _validate_created_at(cls, value: Any) -> datetime:
        return coerce_aware_datetime(value, "created_at")

    def is_expired(self, at: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (at or utc_now())

    def is_live(self, at: datetime | None = None) -> bool:
        return self.is_active and not self.is_expired(at)

    def authorizes(self, permission: Permission, at: datetime | None = None) -> bool:
        return self.is_live(at) and self.permissions.allows(permission)


__all__ = ["SharedLink"]
