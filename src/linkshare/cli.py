"""Shared link administration CLI.

Provides database setup, project registration, shared link management for
project owners, and the HTTP server exposing owner and client routes.
"""

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Optional, TypeVar

import structlog
import typer
import uvicorn

from linkshare.config import Settings, get_settings
from linkshare.errors import SharingError
from linkshare.services.factory import SharingServices, create_sharing_services
from linkshare.web.app import link_view

T = TypeVar("T")


def configure_logging(log_level: str) -> None:
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=lambda name: structlog.PrintLogger(file=sys.stderr),
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level)),
        context_class=dict,
        cache_logger_on_first_use=False,
    )


logger = structlog.get_logger(__name__)

app = typer.Typer(
    name="linkshare",
    help="""Manage tokenized shared links that give anonymous clients scoped access to project data.

Examples:

  # Create tables
  uv run linkshare init-db

  # Share a project with insert and schema rights
  uv run linkshare create-link PROJECT_ID --developer dev-1 --modify-schema

  # Start REST API server
  uv run linkshare serve --port 8000""",
    rich_markup_mode="markdown",
)


@app.callback()
def main() -> None:
    configure_logging(get_settings().LOG_LEVEL)


def _run(settings: Settings, operation: Callable[[SharingServices], Awaitable[T]]) -> T:
    async def run() -> T:
        async with create_sharing_services(settings) as services:
            return await operation(services)

    try:
        return asyncio.run(run())
    except SharingError as e:
        logger.error("command_failed", kind=e.kind, message=e.message)
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)


def _echo_json(data: object) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


@app.command("init-db")
def init_db() -> None:
    """Create the project, shared link and client entry tables."""
    settings = get_settings()

    async def noop(services: SharingServices) -> None:
        return None

    _run(settings, noop)
    logger.info("database_initialized", database_path=settings.DATABASE_PATH)
    typer.echo(f"Initialized {settings.DATABASE_PATH}")


@app.command("create-project")
def create_project(
    name: str = typer.Argument(..., help="Project name"),
    developer: str = typer.Option(..., "--developer", "-d", help="Owning developer id"),
    connection_uri: str = typer.Option(..., "--connection-uri", help="Connection URI of the target store"),
    database: str = typer.Option(..., "--database", help="Target database name"),
    collection: str = typer.Option(..., "--collection", help="Target collection name"),
    description: Optional[str] = typer.Option(None, "--description", help="Project description"),
) -> None:
    """Register a project owned by a developer."""
    project = _run(
        get_settings(),
        lambda services: services.project_store.create_project(
            developer_id=developer,
            name=name,
            connection_uri=connection_uri,
            database_name=database,
            collection_name=collection,
            description=description,
        ),
    )
    typer.echo(project.project_id)


@app.command("create-link")
def create_link(
    project_id: str = typer.Argument(..., help="Project to share"),
    developer: str = typer.Option(..., "--developer", "-d", help="Developer id of the project owner"),
    insert: Optional[bool] = typer.Option(None, "--insert/--no-insert", help="Allow inserting documents"),
    view: Optional[bool] = typer.Option(None, "--view/--no-view", help="Allow reading documents"),
    delete: Optional[bool] = typer.Option(None, "--delete/--no-delete", help="Allow deleting documents"),
    modify_schema: Optional[bool] = typer.Option(
        None,
        "--modify-schema/--no-modify-schema",
        help="Allow adding and removing collection fields",
    ),
    expires_at: Optional[datetime] = typer.Option(
        None,
        "--expires-at",
        formats=["%Y-%m-%dT%H:%M:%S%z"],
        help="Expiry instant with UTC offset, e.g. 2030-01-01T00:00:00+0000",
    ),
) -> None:
    """Create a shared link for one of your projects."""
    overrides = {
        "can_insert": insert,
        "can_view": view,
        "can_delete": delete,
        "can_modify_schema": modify_schema,
    }
    link = _run(
        get_settings(),
        lambda services: services.links.create_link(project_id, developer, overrides, expires_at),
    )
    _echo_json(link_view(link))


@app.command("list-links")
def list_links(
    project_id: str = typer.Argument(..., help="Project whose links to list"),
    developer: str = typer.Option(..., "--developer", "-d", help="Developer id of the project owner"),
) -> None:
    """List every shared link of a project."""
    links = _run(get_settings(), lambda services: services.links.list_links(project_id, developer))
    _echo_json([link_view(link) for link in links])


@app.command("revoke-link")
def revoke_link(
    token: str = typer.Argument(..., help="Token of the link to disable"),
    developer: str = typer.Option(..., "--developer", "-d", help="Developer id of the project owner"),
) -> None:
    """Disable a shared link without deleting it."""
    link = _run(get_settings(), lambda services: services.links.update_link(token, developer, is_active=False))
    typer.echo(f"Link {link.link_id} disabled")


@app.command()
def serve(
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to serve on"),
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to serve on"),
) -> None:
    """Start REST API server for owners and link holders."""
    settings = get_settings()
    bind_host = host or settings.HOST
    bind_port = port or settings.PORT

    logger.info("starting_api_server", host=bind_host, port=bind_port, database_path=settings.DATABASE_PATH)
    uvicorn.run("linkshare.web.app:create_app", factory=True, host=bind_host, port=bind_port)


@app.command()
def version() -> None:
    """Show version information."""
    from linkshare import __version__

    typer.echo(f"linkshare {__version__}")
