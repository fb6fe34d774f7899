"""Tests for the service factory module."""

from pathlib import Path

import pytest

from conftest import FakeDataAccess
from linkshare.config import Settings
from linkshare.services.access import LinkResolver
from linkshare.services.data_access import DataAccessClient
from linkshare.services.factory import create_sharing_services, create_test_sharing_services
from linkshare.services.gateway import ClientGateway
from linkshare.services.lifecycle import SharedLinkManager
from linkshare.services.schema_sync import SchemaCoordinator


class TestCreateSharingServices:
    """Tests for create_sharing_services factory."""

    def test_wires_data_access_to_configured_url(self, tmp_path: Path) -> None:
        settings = Settings(DATABASE_PATH=str(tmp_path / "links.db"), DATA_ACCESS_URL="http://data.internal:9081")

        services = create_sharing_services(settings)

        assert isinstance(services.data_access, DataAccessClient)
        assert str(services.data_access._client.base_url).rstrip("/") == "http://data.internal:9081"

    def test_uses_configured_database_file(self, tmp_path: Path) -> None:
        settings = Settings(DATABASE_PATH=str(tmp_path / "links.db"))

        services = create_sharing_services(settings)

        assert services.engine.url.database == str(tmp_path / "links.db")

    async def test_initialize_creates_database_file(self, tmp_path: Path) -> None:
        db_path = tmp_path / "links.db"

        async with create_sharing_services(Settings(DATABASE_PATH=str(db_path))):
            pass

        assert db_path.exists()

    def test_applies_token_length(self, tmp_path: Path) -> None:
        settings = Settings(DATABASE_PATH=str(tmp_path / "links.db"), TOKEN_BYTES=32)

        services = create_sharing_services(settings)

        assert services.link_store._token_bytes == 32


class TestCreateTestSharingServices:
    """Tests for create_test_sharing_services factory."""

    def test_creates_full_service_graph(self, fake_data_access: FakeDataAccess, database_path: str) -> None:
        services = create_test_sharing_services(data_access=fake_data_access, db_path=database_path)

        assert isinstance(services.resolver, LinkResolver)
        assert isinstance(services.links, SharedLinkManager)
        assert isinstance(services.schema, SchemaCoordinator)
        assert isinstance(services.gateway, ClientGateway)

    async def test_instances_are_isolated(self, fake_data_access: FakeDataAccess, tmp_path: Path) -> None:
        async with create_test_sharing_services(data_access=fake_data_access, db_path=str(tmp_path / "a.db")) as first:
            project = await first.project_store.create_project(
                developer_id="dev", name="p", connection_uri="mongodb://x", database_name="d", collection_name="c"
            )
            async with create_test_sharing_services(
                data_access=FakeDataAccess(), db_path=str(tmp_path / "b.db")
            ) as second:
                assert await first.project_store.get_project_by_id(project.project_id) is not None
                assert await second.project_store.get_project_by_id(project.project_id) is None

    async def test_closing_releases_data_access(self, fake_data_access: FakeDataAccess, database_path: str) -> None:
        async with create_test_sharing_services(data_access=fake_data_access, db_path=database_path):
            pass

        assert fake_data_access.closed is True

    @pytest.mark.parametrize("db_path", [":memory:", "", "file:scratch?mode=memory&cache=shared"])
    def test_rejects_in_memory_database(self, fake_data_access: FakeDataAccess, db_path: str) -> None:
        with pytest.raises(ValueError, match="in-memory"):
            create_test_sharing_services(data_access=fake_data_access, db_path=db_path)
