"""SQLModel table definitions for database persistence.

Table classes are kept apart from the frozen Pydantic domain models in
project.py, shared_link.py and client_entry.py. The domain models carry
validation rules and never mutate; the tables are the mutable ORM view used
by the stores.

Field names match the domain models so conversion goes through
.model_dump() and .model_validate(). Shared link permissions are flattened
into one boolean column per capability and regrouped by the link store.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON
from sqlmodel import Field, SQLModel


class ProjectRecord(SQLModel, table=True):
    """SQLModel table for projects.

    ``schema_revision`` is bumped by every canonical schema replace and is
    the compare-and-swap guard for concurrent schema mutations.
    """

    __tablename__ = "projects"

    project_id: str = Field(primary_key=True)
    schema_version: str
    developer_id: str = Field(index=True)
    name: str
    description: str | None = None
    connection_uri: str
    database_name: str
    collection_name: str
    schema_data: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    schema_revision: int = 0
    created_at: datetime


class SharedLinkRecord(SQLModel, table=True):
    """SQLModel table for shared links."""

    __tablename__ = "shared_links"

    link_id: str = Field(primary_key=True)
    schema_version: str
    token: str = Field(index=True, unique=True)
    project_id: str = Field(index=True, foreign_key="projects.project_id")
    can_insert: bool
    can_view: bool
    can_delete: bool
    can_modify_schema: bool
    is_active: bool = True
    expires_at: datetime | None = None
    created_at: datetime


class ClientEntryRecord(SQLModel, table=True):
    """SQLModel table for the append-only client entry audit trail."""

    __tablename__ = "client_entries"

    entry_id: str = Field(primary_key=True)
    schema_version: str
    project_id: str = Field(index=True)
    link_id: str = Field(index=True)
    document_id: str
    payload: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    created_at: datetime
