"""Async SQLite plumbing shared by the project, link and client entry stores."""

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

# Registers the table classes on SQLModel.metadata.
from linkshare.models import tables  # noqa: F401


async def initialize_schema(engine: AsyncEngine) -> None:
    """Create the projects, shared_links and client_entries tables when missing."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


def create_async_engine_from_path(db_path: str) -> AsyncEngine:
    """Build an aiosqlite engine for a database file.

    Every session checks out its own connection, so one session rolling back
    never discards another session's pending writes. SQLite's in-memory
    databases are refused: aiosqlite serves them from a single shared
    connection, which breaks that isolation.

    Args:
        db_path: Path of the SQLite database file.

    Raises:
        ValueError: If ``db_path`` names an in-memory database.
    """
    if is_memory_database(db_path):
        raise ValueError("in-memory SQLite databases are not supported; use a database file")
    return create_async_engine(f"sqlite+aiosqlite:///{db_path}")


def is_memory_database(db_path: str) -> bool:
    path = db_path.strip()
    return not path or path == ":memory:" or "mode=memory" in path


def restore_utc(value: datetime | None) -> datetime | None:
    """SQLite stores naive datetimes; reattach UTC on the way out."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
