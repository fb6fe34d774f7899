"""Unit tests for the SchemaCoordinator."""

import asyncio
from typing import Any

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import OWNER, FakeDataAccess
from linkshare.errors import LinkUnavailable, UpstreamFailure, ValidationFailed
from linkshare.models.project import Project
from linkshare.models.shared_link import SharedLink
from linkshare.services.factory import SharingServices
from linkshare.services.project_store import ProjectStore
from linkshare.services.schema_sync import SchemaCoordinator

SCHEMA_ACCESS = {"can_insert": False, "can_view": False, "can_modify_schema": True}


@pytest.fixture
async def schema_link(services: SharingServices, project: Project) -> SharedLink:
    return await services.links.create_link(project.project_id, OWNER, SCHEMA_ACCESS)


class RivalWriterStore:
    """Project store that lets a concurrent writer win the first swap."""

    def __init__(self, store: ProjectStore, rival_field: str) -> None:
        self._store = store
        self._rival_field = rival_field
        self.swaps = 0

    async def get_project_by_id(self, project_id: str) -> Project | None:
        return await self._store.get_project_by_id(project_id)

    async def compare_and_set_schema(
        self, project_id: str, expected_revision: int, schema_data: dict[str, Any]
    ) -> Project | None:
        self.swaps += 1
        if self.swaps == 1:
            current = await self._store.get_project_by_id(project_id)
            await self._store.compare_and_set_schema(
                project_id,
                current.schema_revision,
                {**current.schema_data, self._rival_field: {"type": "string"}},
            )
        return await self._store.compare_and_set_schema(project_id, expected_revision, schema_data)


class AlwaysContendedStore:
    def __init__(self, store: ProjectStore) -> None:
        self._store = store
        self.swaps = 0
        self.exclusive_merges = 0

    async def get_project_by_id(self, project_id: str) -> Project | None:
        return await self._store.get_project_by_id(project_id)

    async def compare_and_set_schema(self, *args: Any) -> Project | None:
        self.swaps += 1
        return None

    async def merge_schema_exclusively(self, project_id: str, merge: Any) -> Project | None:
        self.exclusive_merges += 1
        return await self._store.merge_schema_exclusively(project_id, merge)


class BrokenStore:
    async def compare_and_set_schema(self, *args: Any) -> Project | None:
        raise SQLAlchemyError("database is locked")


class LateWriterStore:
    """Project store where another writer lands right after our swap."""

    def __init__(self, store: ProjectStore) -> None:
        self._store = store

    async def get_project_by_id(self, project_id: str) -> Project | None:
        return await self._store.get_project_by_id(project_id)

    async def compare_and_set_schema(
        self, project_id: str, expected_revision: int, schema_data: dict[str, Any]
    ) -> Project | None:
        stored = await self._store.compare_and_set_schema(project_id, expected_revision, schema_data)
        if stored is not None:
            await self._store.compare_and_set_schema(
                project_id,
                stored.schema_revision,
                {**stored.schema_data, "late": {"type": "bool"}},
            )
        return stored


def _coordinator(services: SharingServices, store: Any, **kwargs: Any) -> SchemaCoordinator:
    return SchemaCoordinator(
        resolver=services.resolver,
        project_store=store,
        data_access=services.data_access,
        **kwargs,
    )


class TestAddSchemaFields:
    async def test_adds_fields_to_collection_and_snapshot(
        self,
        services: SharingServices,
        project: Project,
        schema_link: SharedLink,
        fake_data_access: FakeDataAccess,
    ) -> None:
        update = await services.schema.add_schema_fields(schema_link.token, {"age": {"type": "number"}})

        assert update.updated_schema == {"age": {"type": "number"}}
        assert update.result == {"fields_added": ["age"]}
        assert fake_data_access.fields == {"age": {"type": "number"}}
        stored = await services.project_store.get_project_by_id(project.project_id)
        assert stored.schema_data == {"age": {"type": "number"}}
        assert stored.schema_revision == project.schema_revision + 1

    async def test_new_fields_override_existing_descriptors(
        self, services: SharingServices, schema_link: SharedLink
    ) -> None:
        await services.schema.add_schema_fields(schema_link.token, {"age": {"type": "string"}, "name": {}})

        update = await services.schema.add_schema_fields(schema_link.token, {"age": {"type": "number"}})

        assert update.updated_schema == {"age": {"type": "number"}, "name": {}}

    async def test_info_reflects_added_fields(self, services: SharingServices, schema_link: SharedLink) -> None:
        await services.schema.add_schema_fields(schema_link.token, {"age": {"type": "number"}})

        info = await services.gateway.get_project_info(schema_link.token)

        assert info.schema_ == {"age": {"type": "number"}}

    async def test_response_carries_collaborator_result(
        self, services: SharingServices, schema_link: SharedLink
    ) -> None:
        update = await services.schema.add_schema_fields(schema_link.token, {"age": {}})

        assert update.to_response() == {"fields_added": ["age"], "updatedSchema": {"age": {}}}

    @pytest.mark.parametrize("new_fields", [None, ["age"], "age", {"": {}}, {"  ": {}}])
    async def test_rejects_malformed_fields(
        self, services: SharingServices, schema_link: SharedLink, fake_data_access: FakeDataAccess, new_fields
    ) -> None:
        with pytest.raises(ValidationFailed):
            await services.schema.add_schema_fields(schema_link.token, new_fields)

        assert fake_data_access.calls == []

    async def test_requires_modify_schema_bit(
        self, services: SharingServices, project: Project, fake_data_access: FakeDataAccess
    ) -> None:
        link = await services.links.create_link(project.project_id, OWNER)

        with pytest.raises(LinkUnavailable):
            await services.schema.add_schema_fields(link.token, {"age": {}})

        assert fake_data_access.calls == []

    async def test_upstream_failure_leaves_snapshot_untouched(
        self,
        services: SharingServices,
        project: Project,
        schema_link: SharedLink,
        fake_data_access: FakeDataAccess,
    ) -> None:
        fake_data_access.fail_with = UpstreamFailure("add_schema_fields failed: capped collection")

        with pytest.raises(UpstreamFailure):
            await services.schema.add_schema_fields(schema_link.token, {"age": {}})

        stored = await services.project_store.get_project_by_id(project.project_id)
        assert stored.schema_data == {}
        assert stored.schema_revision == project.schema_revision


class TestRemoveSchemaField:
    async def test_removes_field(self, services: SharingServices, project: Project, schema_link: SharedLink) -> None:
        await services.schema.add_schema_fields(schema_link.token, {"age": {}, "name": {}})

        update = await services.schema.remove_schema_field(schema_link.token, "age")

        assert update.updated_schema == {"name": {}}
        stored = await services.project_store.get_project_by_id(project.project_id)
        assert stored.schema_data == {"name": {}}

    async def test_removing_twice_succeeds(self, services: SharingServices, schema_link: SharedLink) -> None:
        await services.schema.add_schema_fields(schema_link.token, {"age": {}})

        await services.schema.remove_schema_field(schema_link.token, "age")
        update = await services.schema.remove_schema_field(schema_link.token, "age")

        assert update.updated_schema == {}

    async def test_reserved_id_rejected_before_resolving(
        self, services: SharingServices, fake_data_access: FakeDataAccess
    ) -> None:
        with pytest.raises(ValidationFailed, match="_id"):
            await services.schema.remove_schema_field("not-a-token", "_id")

        assert fake_data_access.calls == []

    async def test_empty_field_name_rejected(self, services: SharingServices, schema_link: SharedLink) -> None:
        with pytest.raises(ValidationFailed):
            await services.schema.remove_schema_field(schema_link.token, "")

    async def test_requires_modify_schema_bit(self, services: SharingServices, project: Project) -> None:
        link = await services.links.create_link(project.project_id, OWNER)

        with pytest.raises(LinkUnavailable):
            await services.schema.remove_schema_field(link.token, "age")


class TestSnapshotConsistency:
    async def test_conflicting_writer_is_merged_not_lost(
        self, services: SharingServices, project: Project, schema_link: SharedLink
    ) -> None:
        store = RivalWriterStore(services.project_store, rival_field="rival")
        coordinator = _coordinator(services, store)

        update = await coordinator.add_schema_fields(schema_link.token, {"ours": {}})

        assert store.swaps == 2
        assert update.updated_schema == {"rival": {"type": "string"}, "ours": {}}
        stored = await services.project_store.get_project_by_id(project.project_id)
        assert stored.schema_data == update.updated_schema

    async def test_exhausted_attempts_fall_back_to_exclusive_merge(
        self, services: SharingServices, project: Project, schema_link: SharedLink
    ) -> None:
        store = AlwaysContendedStore(services.project_store)
        coordinator = _coordinator(services, store, update_attempts=2)

        update = await coordinator.add_schema_fields(schema_link.token, {"ours": {}})

        assert store.swaps == 2
        assert store.exclusive_merges == 1
        assert update.updated_schema == {"ours": {}}
        stored = await services.project_store.get_project_by_id(project.project_id)
        assert stored.schema_data == update.updated_schema
        assert stored.schema_revision == project.schema_revision + 1

    async def test_storage_error_returns_local_merge(
        self, services: SharingServices, schema_link: SharedLink, fake_data_access: FakeDataAccess
    ) -> None:
        coordinator = _coordinator(services, BrokenStore())

        update = await coordinator.add_schema_fields(schema_link.token, {"ours": {}})

        assert update.updated_schema == {"ours": {}}
        assert fake_data_access.fields == {"ours": {}}

    async def test_settle_delay_rereads_snapshot(self, services: SharingServices, schema_link: SharedLink) -> None:
        coordinator = _coordinator(services, LateWriterStore(services.project_store), settle_delay=0.01)

        update = await coordinator.add_schema_fields(schema_link.token, {"ours": {}})

        assert update.updated_schema == {"ours": {}, "late": {"type": "bool"}}

    async def test_without_settle_delay_returns_swapped_snapshot(
        self, services: SharingServices, schema_link: SharedLink
    ) -> None:
        coordinator = _coordinator(services, LateWriterStore(services.project_store))

        update = await coordinator.add_schema_fields(schema_link.token, {"ours": {}})

        assert update.updated_schema == {"ours": {}}

    def test_requires_at_least_one_attempt(self, fake_data_access: FakeDataAccess) -> None:
        with pytest.raises(ValueError):
            SchemaCoordinator(resolver=None, project_store=None, data_access=fake_data_access, update_attempts=0)


class TestConcurrentSchemaChanges:
    async def test_concurrent_additions_all_land(
        self, services: SharingServices, project: Project, schema_link: SharedLink
    ) -> None:
        names = [f"f{i}" for i in range(5)]

        updates = await asyncio.gather(
            *(services.schema.add_schema_fields(schema_link.token, {name: {}}) for name in names)
        )

        stored = await services.project_store.get_project_by_id(project.project_id)
        assert set(stored.schema_data) == set(names)
        for name, update in zip(names, updates):
            assert name in update.updated_schema

    async def test_concurrent_additions_and_removal(
        self, services: SharingServices, project: Project, schema_link: SharedLink
    ) -> None:
        await services.schema.add_schema_fields(schema_link.token, {"old": {}})

        await asyncio.gather(
            services.schema.add_schema_fields(schema_link.token, {"a": {}}),
            services.schema.remove_schema_field(schema_link.token, "old"),
            services.schema.add_schema_fields(schema_link.token, {"b": {}}),
        )

        stored = await services.project_store.get_project_by_id(project.project_id)
        assert set(stored.schema_data) == {"a", "b"}
