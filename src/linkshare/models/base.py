"""Shared base record and field validators for persisted domain models."""

from datetime import datetime, timezone
from typing import Any, ClassVar, Mapping
from uuid import UUID

from pydantic import BaseModel, ConfigDict, model_validator


class VersionedRecord(BaseModel):
    """Immutable record stamped with the schema version it was written under.

    Subclasses set ``SCHEMA_VERSION``; records loaded without a stamp get the
    current one, and a stamp from another version is rejected.
    """

    SCHEMA_VERSION: ClassVar[str]
    schema_version: str

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _stamp_schema_version(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and "schema_version" not in data:
            return {**data, "schema_version": cls.SCHEMA_VERSION}
        return data

    @model_validator(mode="after")
    def _check_schema_version(self) -> "VersionedRecord":
        if self.schema_version != self.SCHEMA_VERSION:
            raise ValueError(
                f"{type(self).__name__} expects schema_version '{self.SCHEMA_VERSION}', "
                f"got '{self.schema_version}'"
            )
        return self


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_uuid_str(value: Any) -> str:
    """Normalize a UUID or UUID string to its canonical lowercase form."""
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, str):
        return str(UUID(value.strip()))
    raise TypeError("identifier must be a UUID or UUID string")


def ensure_timezone_aware(dt: datetime) -> datetime:
    if dt.utcoffset() is None:
        raise ValueError("datetime must carry a timezone")
    return dt


def coerce_aware_datetime(value: Any, field_name: str) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise TypeError(f"{field_name} must be a datetime")
    return ensure_timezone_aware(value)


def ensure_non_empty_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    if not value.strip():
        raise ValueError(f"{field_name} must not be blank")
    return value


def ensure_field_mapping(value: Any, field_name: str) -> dict[str, Any]:
    """Accept a string-keyed mapping (None means empty) and return a plain dict."""
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise TypeError(f"{field_name} must be a dictionary")
    if not all(isinstance(key, str) for key in value):
        raise ValueError(f"{field_name} keys must be strings")
    return dict(value)
