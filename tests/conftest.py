"""Shared test fixtures."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from labmanager.core.config import Settings
from labmanager.core.context import get_orchestrator
from labmanager.core.exceptions import ProviderError, ResourceNotFoundError
from labmanager.main import app
from labmanager.models import AttendeeRecord, ResourceHandle, ResourceKind
from labmanager.provisioning.orchestrator import LabOrchestrator
from labmanager.provisioning.provider import CloudProvider, DataImporter

# Nested kinds removed along with their top-level resource
CHILD_KINDS = {
    ResourceKind.SQL_SERVER: {ResourceKind.SQL_FIREWALL_RULE, ResourceKind.SQL_DATABASE},
    ResourceKind.EVENTHUB_NAMESPACE: {
        ResourceKind.EVENTHUB,
        ResourceKind.EVENTHUB_AUTH_RULE,
        ResourceKind.EVENTHUB_CONSUMER_GROUP,
    },
    ResourceKind.EVENTHUB: {ResourceKind.EVENTHUB_AUTH_RULE, ResourceKind.EVENTHUB_CONSUMER_GROUP},
    ResourceKind.STORAGE_ACCOUNT: {ResourceKind.STORAGE_CONTAINER},
}


class FakeProvider(CloudProvider, DataImporter):
    """In-memory cloud that records every call.

    fail_on maps (kind, name) to the exception create() raises for it.
    """

    def __init__(self):
        self.resources: dict[tuple[ResourceKind, tuple[str, ...]], ResourceHandle] = {}
        self.calls: list[tuple[str, ResourceKind | None, str]] = []
        self.imports = []
        self.fail_on: dict[tuple[ResourceKind, str], Exception] = {}
        self.access_keys: dict[str, str | None] = {}

    @staticmethod
    def _key(kind, name, parent=None):
        path = parent.path() if parent is not None else ()
        return kind, (*path, name)

    def calls_of(self, method: str) -> list[tuple[str, ResourceKind | None, str]]:
        return [call for call in self.calls if call[0] == method]

    def names(self, kind: ResourceKind) -> list[str]:
        return sorted(path[-1] for k, path in self.resources if k == kind)

    async def exists(self, kind, name, parent=None) -> bool:
        self.calls.append(("exists", kind, name))
        return self._key(kind, name, parent) in self.resources

    async def create(self, kind, name, spec, parent=None) -> ResourceHandle:
        self.calls.append(("create", kind, name))
        if (kind, name) in self.fail_on:
            raise self.fail_on[(kind, name)]
        key = self._key(kind, name, parent)
        if key in self.resources:
            raise ProviderError(f"{kind.label} '{name}' already exists", status_code=409)
        handle = ResourceHandle(
            kind=kind,
            name=name,
            id="/fake/" + "/".join(key[1]),
            parent=parent,
            properties=dict(spec),
        )
        self.resources[key] = handle
        return handle

    async def get(self, kind, name, parent=None) -> ResourceHandle:
        self.calls.append(("get", kind, name))
        handle = self.resources.get(self._key(kind, name, parent))
        if handle is None:
            raise ResourceNotFoundError(f"{kind.label} '{name}' not found")
        return handle

    async def delete(self, handle) -> None:
        self.calls.append(("delete", handle.kind, handle.name))
        doomed = {handle.kind} | CHILD_KINDS.get(handle.kind, set())
        prefix = handle.path()
        for kind, path in list(self.resources):
            if kind in doomed and path[: len(prefix)] == prefix:
                del self.resources[(kind, path)]

    async def list_all(self, kind, parent=None) -> list[ResourceHandle]:
        self.calls.append(("list_all", kind, ""))
        parent_path = parent.path() if parent is not None else ()
        return [
            handle
            for (k, path), handle in self.resources.items()
            if k == kind and path[:-1] == parent_path
        ]

    async def update_sku(self, handle, sku_name) -> ResourceHandle:
        self.calls.append(("update_sku", handle.kind, handle.name))
        key = self._key(handle.kind, handle.name, handle.parent)
        updated = self.resources[key].model_copy(
            update={"properties": {**self.resources[key].properties, "sku_name": sku_name}}
        )
        self.resources[key] = updated
        return updated

    async def fetch_access_key(self, handle) -> str | None:
        self.calls.append(("fetch_access_key", handle.kind, handle.name))
        return self.access_keys.get(handle.name, f"key-for-{handle.name}")

    async def describe(self) -> dict[str, str]:
        return {"Subscription Name": "Workshop", "Subscription ID": "0000", "Tenant ID": "1111"}

    async def start_import(self, database, source_uri, credentials) -> None:
        self.calls.append(("start_import", database.kind, database.name))
        self.imports.append((database.path(), source_uri, credentials))


@pytest.fixture(name="provider")
def provider_fixture() -> FakeProvider:
    """Empty in-memory cloud."""
    return FakeProvider()


@pytest.fixture(name="settings")
def settings_fixture(tmp_path) -> Settings:
    """Settings pointing the report at a temporary directory."""
    return Settings(
        resource_group_name="lab-rg",
        resource_region_name="eastus2",
        max_parallelism=2,
        roster_path=tmp_path / "Attendees.csv",
        report_path=tmp_path / "AttendeeResources.csv",
        sql_database={"server_name": "sqlws", "username": "labadmin", "password": "P@ssw0rd!"},
        event_hub={
            "namespace_name": "cesws",
            "event_hub_name": "ces-hub",
            "policy_name": "ces-policy",
            "sas_token_expiration_days": 7,
        },
        storage={"account_name": "sqlws", "container_name": "lab"},
        consumer_groups={"namespace_name": "shared-ces", "event_hub_name": "ces-hub"},
        adventure_works={
            "resource_group_name": "shared-rg",
            "storage_account_name": "sharedstore",
            "bacpac_uri": "https://sharedstore.blob.core.windows.net/bacpac/AdventureWorks2022.bacpac",
        },
    )


@pytest.fixture(name="shared_hub")
def shared_hub_fixture(provider) -> ResourceHandle:
    """Shared Standard tier event hub holding only the $Default consumer group."""

    async def create():
        namespace = await provider.create(
            ResourceKind.EVENTHUB_NAMESPACE, "shared-ces", {"sku_name": "Standard"}
        )
        hub = await provider.create(ResourceKind.EVENTHUB, "ces-hub", {}, namespace)
        await provider.create(ResourceKind.EVENTHUB_CONSUMER_GROUP, "$Default", {}, hub)
        return hub

    hub = asyncio.run(create())
    provider.calls.clear()
    return hub


@pytest.fixture(name="roster")
def roster_fixture() -> list[AttendeeRecord]:
    """Three attendees, deliberately not in name order."""
    return [
        AttendeeRecord(name="bob"),
        AttendeeRecord(name="alice", email="alice@example.com"),
        AttendeeRecord(name="carol"),
    ]


@pytest.fixture(name="orchestrator")
def orchestrator_fixture(provider, settings, roster) -> LabOrchestrator:
    """Orchestrator over the fake provider that confirms every prompt."""
    return LabOrchestrator(provider, provider, settings, roster, confirm=lambda prompt: True)


@pytest.fixture(name="client")
def client_fixture(orchestrator: LabOrchestrator):
    """Create a test client wired to the fake-provider orchestrator."""

    def get_orchestrator_override():
        return orchestrator

    app.dependency_overrides[get_orchestrator] = get_orchestrator_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
