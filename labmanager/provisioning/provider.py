"""Provider-neutral interface to the cloud the lab resources live in.

The builder and orchestrator only talk to these two capabilities, so the
Azure implementation can be swapped for an in-memory one in tests.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from labmanager.models import ResourceHandle, ResourceKind


@dataclass(frozen=True)
class ImportCredentials:
    """Credentials a bulk import needs: the source storage key and the target admin login."""
    storage_key: str
    administrator_login: str
    administrator_password: str


class CloudProvider(ABC):
    """Resource-management calls. Every method is a network round trip."""

    @abstractmethod
    async def exists(
        self, kind: ResourceKind, name: str, parent: ResourceHandle | None = None
    ) -> bool:
        """Return True if a resource of kind named name exists under parent."""

    @abstractmethod
    async def create(
        self,
        kind: ResourceKind,
        name: str,
        spec: dict[str, Any],
        parent: ResourceHandle | None = None,
    ) -> ResourceHandle:
        """Create the resource and wait until the provider reports it exists."""

    @abstractmethod
    async def get(
        self, kind: ResourceKind, name: str, parent: ResourceHandle | None = None
    ) -> ResourceHandle:
        """Fetch an existing resource. Raises ResourceNotFoundError if absent."""

    @abstractmethod
    async def delete(self, handle: ResourceHandle) -> None:
        """Delete the resource and everything nested in it."""

    @abstractmethod
    async def list_all(
        self, kind: ResourceKind, parent: ResourceHandle | None = None
    ) -> list[ResourceHandle]:
        """All resources of kind in the lab resource group (or under parent)."""

    @abstractmethod
    async def update_sku(self, handle: ResourceHandle, sku_name: str) -> ResourceHandle:
        """Move an event hub namespace to another pricing tier and return it refreshed."""

    @abstractmethod
    async def fetch_access_key(self, handle: ResourceHandle) -> str | None:
        """Primary key of a storage account or event hub authorization rule."""

    async def describe(self) -> dict[str, str]:
        """Subscription details shown by the view-configuration command."""
        return {}

    async def close(self) -> None:
        """Release network clients."""


class DataImporter(ABC):
    """Bulk data import into a database."""

    @abstractmethod
    async def start_import(
        self, database: ResourceHandle, source_uri: str, credentials: ImportCredentials
    ) -> None:
        """Start importing source_uri into database and return once it is accepted.

        Completion is not awaited; the import keeps running at the provider.
        """
