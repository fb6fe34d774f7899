from datetime import datetime
from typing import Any, ClassVar
from uuid import uuid4

from pydantic import Field, field_validator

from linkshare.models.base import (
    VersionedRecord,
    coerce_aware_datetime,
    ensure_field_mapping,
    ensure_non_empty_text,
    ensure_uuid_str,
    utc_now,
)


class ClientEntry(VersionedRecord):
    """Audit record linking an externally stored document to the link that wrote it."""

    SCHEMA_VERSION: ClassVar[str] = "client_entry.v1"

    schema_version: str = Field(default=SCHEMA_VERSION)
    entry_id: str = Field(default_factory=lambda: str(uuid4()))
    project_id: str
    link_id: str
    document_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("entry_id", "project_id", "link_id", mode="before")
    @classmethod
    def _normalize_ids(cls, value: Any) -> str:
        return ensure_uuid_str(value)

    @field_validator("document_id", mode="before")
    @classmethod
    def _validate_document_id(cls, value: Any) -> str:
        return ensure_non_empty_text(str(value), "document_id")

    @field_validator("payload", mode="before")
    @classmethod
    def _normalize_payload(cls, value: Any) -> dict[str, Any]:
        return ensure_field_mapping(value, "payload")

    @field_validator("created_at", mode="before")
    @classmethod
    def _validate_created_at(cls, value: Any) -> datetime:
        return coerce_aware_datetime(value, "created_at")


__all__ = ["ClientEntry"]
