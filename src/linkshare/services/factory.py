"""Factory functions for creating and wiring the sharing services.

Provides a production factory backed by a SQLite file and the remote
data-access service, and a test factory that takes a scratch database file and an
injected data-access client for fast, isolated testing.
"""

from types import TracebackType

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from linkshare.config import Settings
from linkshare.services.access import LinkResolver
from linkshare.services.audit_log import ClientEntryLog, ClientEntryRecorder
from linkshare.services.data_access import DataAccessClient
from linkshare.services.database import create_async_engine_from_path, initialize_schema
from linkshare.services.gateway import ClientGateway
from linkshare.services.lifecycle import SharedLinkManager
from linkshare.services.link_store import SharedLinkStore
from linkshare.services.project_store import ProjectStore
from linkshare.services.schema_sync import SchemaCoordinator


class SharingServices:
    """Container holding one fully wired set of services.

    Use as an async context manager: entering creates the tables, leaving
    waits for pending audit writes and releases the HTTP client and engine.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        data_access: DataAccessClient,
        token_bytes: int = 24,
        schema_settle_delay: float = 0.0,
        schema_update_attempts: int = 3,
        audit_retry_attempts: int = 3,
        audit_retry_backoff: float = 0.2,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self.engine = engine
        self.data_access = data_access
        self.project_store = ProjectStore(engine=engine, logger=logger)
        self.link_store = SharedLinkStore(engine=engine, token_bytes=token_bytes, logger=logger)
        self.entry_log = ClientEntryLog(engine=engine, logger=logger)
        self.recorder = ClientEntryRecorder(
            entry_log=self.entry_log,
            retry_attempts=audit_retry_attempts,
            retry_backoff=audit_retry_backoff,
            logger=logger,
        )
        self.resolver = LinkResolver(
            link_store=self.link_store,
            project_store=self.project_store,
            logger=logger,
        )
        self.links = SharedLinkManager(
            project_store=self.project_store,
            link_store=self.link_store,
            logger=logger,
        )
        self.schema = SchemaCoordinator(
            resolver=self.resolver,
            project_store=self.project_store,
            data_access=data_access,
            settle_delay=schema_settle_delay,
            update_attempts=schema_update_attempts,
            logger=logger,
        )
        self.gateway = ClientGateway(
            resolver=self.resolver,
            data_access=data_access,
            recorder=self.recorder,
            schema=self.schema,
            logger=logger,
        )

    async def initialize(self) -> None:
        await initialize_schema(self.engine)

    async def aclose(self) -> None:
        await self.recorder.drain()
        await self.data_access.aclose()
        await self.engine.dispose()

    async def __aenter__(self) -> "SharingServices":
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def create_sharing_services(settings: Settings) -> SharingServices:
    """Create production services from settings.

    Args:
        settings: Loaded application settings.

    Returns:
        SharingServices backed by the configured SQLite file and data-access URL.
    """
    logger = structlog.get_logger(__name__)

    engine = create_async_engine_from_path(settings.DATABASE_PATH)
    http_client = httpx.AsyncClient(
        base_url=settings.DATA_ACCESS_URL,
        timeout=settings.DATA_ACCESS_TIMEOUT,
    )
    data_access = DataAccessClient(client=http_client, logger=logger)

    return SharingServices(
        engine=engine,
        data_access=data_access,
        token_bytes=settings.TOKEN_BYTES,
        schema_settle_delay=settings.SCHEMA_SETTLE_DELAY,
        schema_update_attempts=settings.SCHEMA_UPDATE_ATTEMPTS,
        audit_retry_attempts=settings.AUDIT_RETRY_ATTEMPTS,
        audit_retry_backoff=settings.AUDIT_RETRY_BACKOFF,
        logger=logger,
    )


def create_test_sharing_services(
    data_access: DataAccessClient,
    db_path: str,
    schema_settle_delay: float = 0.0,
    audit_retry_attempts: int = 1,
) -> SharingServices:
    """Create services over a scratch SQLite file for testing.

    Give each call its own file (e.g. under pytest's ``tmp_path``) so tests
    don't interfere.

    Args:
        data_access: Client (or fake) standing in for the data-access service.
        db_path: Database file; created on ``initialize()``.
        schema_settle_delay: Delay before the post-update schema re-read.
        audit_retry_attempts: Attempts per audit write; no backoff is applied.

    Returns:
        SharingServices over ``db_path``. Call ``initialize()`` or use
        it as an async context manager before first use.
    """
    logger = structlog.get_logger(__name__)

    engine = create_async_engine_from_path(db_path)
    return SharingServices(
        engine=engine,
        data_access=data_access,
        schema_settle_delay=schema_settle_delay,
        audit_retry_attempts=audit_retry_attempts,
        audit_retry_backoff=0.0,
        logger=logger,
    )
