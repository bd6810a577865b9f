"""Azure resource manager client using the async management SDKs.

Authentication goes through DefaultAzureCredential, so signing in with
`az login` before starting the lab manager is enough on an operator machine.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any

from azure.core import exceptions as azure_errors
from azure.identity.aio import DefaultAzureCredential
from azure.mgmt.eventhub.aio import EventHubManagementClient
from azure.mgmt.eventhub.models import (
    AuthorizationRule,
    ConsumerGroup,
    EHNamespace,
    Eventhub,
    RetentionDescription,
)
from azure.mgmt.eventhub.models import Sku as EventHubSku
from azure.mgmt.resource.resources.aio import ResourceManagementClient
from azure.mgmt.resource.subscriptions.aio import SubscriptionClient
from azure.mgmt.sql.aio import SqlManagementClient
from azure.mgmt.sql.models import (
    Database,
    FirewallRule,
    ImportExistingDatabaseDefinition,
    Server,
)
from azure.mgmt.sql.models import Sku as SqlSku
from azure.mgmt.storage.aio import StorageManagementClient
from azure.mgmt.storage.models import BlobContainer, StorageAccountCreateParameters
from azure.mgmt.storage.models import Sku as StorageSku

from labmanager.core.config import Settings
from labmanager.core.exceptions import ConfigurationError, ProviderError, ResourceNotFoundError
from labmanager.models import ResourceHandle, ResourceKind
from labmanager.provisioning.provider import CloudProvider, DataImporter, ImportCredentials

logger = logging.getLogger(__name__)

STORAGE_PRIMARY_KEY_NAME = "key1"


@asynccontextmanager
async def _translate_errors(kind: ResourceKind, name: str):
    """Re-raise Azure SDK errors as lab manager errors."""
    try:
        yield
    except azure_errors.ResourceNotFoundError as e:
        raise ResourceNotFoundError(f"{kind.label} '{name}' not found") from e
    except azure_errors.HttpResponseError as e:
        raise ProviderError(e.message or str(e), status_code=e.status_code) from e
    except azure_errors.AzureError as e:
        raise ProviderError(str(e)) from e


class AzureProvider(CloudProvider, DataImporter):
    """CloudProvider and DataImporter backed by Azure Resource Manager."""

    def __init__(self, settings: Settings):
        self._settings = settings
        self._resource_group = settings.resource_group_name
        self._credential: DefaultAzureCredential | None = None
        self._subscription: dict[str, str] = {}
        self._sql: SqlManagementClient | None = None
        self._eventhub: EventHubManagementClient | None = None
        self._storage: StorageManagementClient | None = None

    async def open(self) -> "AzureProvider":
        """
        Resolve the subscription and check that the lab resource groups exist.

        Raises:
            ConfigurationError: If no subscription is available or a resource
                group cannot be found.
        """
        self._credential = DefaultAzureCredential()

        try:
            subscription = await self._find_subscription()
            subscription_id = subscription.subscription_id

            async with ResourceManagementClient(self._credential, subscription_id) as resources:
                for group in (
                    self._resource_group,
                    self._settings.adventure_works.resource_group_name,
                ):
                    await resources.resource_groups.get(group)
        except azure_errors.AzureError as e:
            await self.close()
            raise ConfigurationError(f"Could not retrieve Azure resource information: {e}") from e
        except ConfigurationError:
            await self.close()
            raise

        self._subscription = {
            "Subscription Name": subscription.display_name,
            "Subscription ID": subscription_id,
            "Tenant ID": subscription.tenant_id,
        }
        self._sql = SqlManagementClient(self._credential, subscription_id)
        self._eventhub = EventHubManagementClient(self._credential, subscription_id)
        self._storage = StorageManagementClient(self._credential, subscription_id)
        logger.info(
            f"Connected to subscription {subscription_id}, resource group {self._resource_group}"
        )
        return self

    async def _find_subscription(self):
        wanted = self._settings.subscription_id
        async with SubscriptionClient(self._credential) as client:
            async for subscription in client.subscriptions.list():
                if not wanted or subscription.subscription_id == wanted:
                    return subscription
        raise ConfigurationError("No Azure subscription available; run 'az login' first")

    async def close(self) -> None:
        for client in (self._sql, self._eventhub, self._storage, self._credential):
            if client is not None:
                await client.close()
        self._sql = self._eventhub = self._storage = self._credential = None

    async def describe(self) -> dict[str, str]:
        return dict(self._subscription)

    # ------------------------------------------------------------------
    # CloudProvider
    # ------------------------------------------------------------------

    async def exists(self, kind, name, parent=None) -> bool:
        try:
            await self.get(kind, name, parent)
        except ResourceNotFoundError:
            return False
        return True

    async def get(self, kind, name, parent=None) -> ResourceHandle:
        rg = self._resource_group
        async with _translate_errors(kind, name):
            if kind == ResourceKind.SQL_SERVER:
                resource = await self._sql.servers.get(rg, name)
            elif kind == ResourceKind.SQL_FIREWALL_RULE:
                resource = await self._sql.firewall_rules.get(rg, parent.name, name)
            elif kind == ResourceKind.SQL_DATABASE:
                resource = await self._sql.databases.get(rg, parent.name, name)
            elif kind == ResourceKind.EVENTHUB_NAMESPACE:
                resource = await self._eventhub.namespaces.get(rg, name)
            elif kind == ResourceKind.EVENTHUB:
                resource = await self._eventhub.event_hubs.get(rg, parent.name, name)
            elif kind == ResourceKind.EVENTHUB_AUTH_RULE:
                namespace, hub = parent.path()
                resource = await self._eventhub.event_hubs.get_authorization_rule(
                    rg, namespace, hub, name
                )
            elif kind == ResourceKind.EVENTHUB_CONSUMER_GROUP:
                namespace, hub = parent.path()
                resource = await self._eventhub.consumer_groups.get(rg, namespace, hub, name)
            elif kind == ResourceKind.STORAGE_ACCOUNT:
                resource = await self._storage.storage_accounts.get_properties(rg, name)
            else:
                resource = await self._storage.blob_containers.get(rg, parent.name, name)
        return _to_handle(kind, resource, parent)

    async def create(self, kind, name, spec, parent=None) -> ResourceHandle:
        logger.debug(f"Creating {kind.label} {name} with {spec}")
        async with _translate_errors(kind, name):
            if kind == ResourceKind.SQL_SERVER:
                resource = await self._create_sql_server(name, spec)
            elif kind == ResourceKind.SQL_FIREWALL_RULE:
                resource = await self._sql.firewall_rules.create_or_update(
                    self._resource_group,
                    parent.name,
                    name,
                    FirewallRule(
                        start_ip_address=spec["start_ip_address"],
                        end_ip_address=spec["end_ip_address"],
                    ),
                )
            elif kind == ResourceKind.SQL_DATABASE:
                poller = await self._sql.databases.begin_create_or_update(
                    self._resource_group,
                    parent.name,
                    name,
                    Database(location=spec["location"], sku=SqlSku(name=spec["sku_name"])),
                )
                resource = await poller.result()
            elif kind == ResourceKind.EVENTHUB_NAMESPACE:
                poller = await self._eventhub.namespaces.begin_create_or_update(
                    self._resource_group,
                    name,
                    EHNamespace(
                        location=spec["location"],
                        sku=EventHubSku(name=spec["sku_name"], tier=spec["sku_name"]),
                    ),
                )
                resource = await poller.result()
            elif kind == ResourceKind.EVENTHUB:
                resource = await self._eventhub.event_hubs.create_or_update(
                    self._resource_group,
                    parent.name,
                    name,
                    Eventhub(
                        retention_description=RetentionDescription(
                            cleanup_policy="Delete",
                            retention_time_in_hours=spec["retention_hours"],
                        )
                    ),
                )
            elif kind == ResourceKind.EVENTHUB_AUTH_RULE:
                namespace, hub = parent.path()
                resource = await self._eventhub.event_hubs.create_or_update_authorization_rule(
                    self._resource_group, namespace, hub, name, AuthorizationRule(rights=spec["rights"])
                )
            elif kind == ResourceKind.EVENTHUB_CONSUMER_GROUP:
                namespace, hub = parent.path()
                resource = await self._eventhub.consumer_groups.create_or_update(
                    self._resource_group,
                    namespace,
                    hub,
                    name,
                    ConsumerGroup(user_metadata=spec.get("user_metadata")),
                )
            elif kind == ResourceKind.STORAGE_ACCOUNT:
                resource = await self._create_storage_account(name, spec)
            else:
                resource = await self._storage.blob_containers.create(
                    self._resource_group,
                    parent.name,
                    name,
                    BlobContainer(public_access=spec.get("public_access", "None")),
                )
        return _to_handle(kind, resource, parent)

    async def _create_sql_server(self, name: str, spec: dict[str, Any]):
        server = Server(
            location=spec["location"],
            administrator_login=spec["administrator_login"],
            administrator_login_password=spec["administrator_password"],
            minimal_tls_version=spec.get("minimal_tls_version", "1.2"),
            public_network_access=spec.get("public_network_access", "Enabled"),
        )
        poller = await self._sql.servers.begin_create_or_update(self._resource_group, name, server)
        return await poller.result()

    async def _create_storage_account(self, name: str, spec: dict[str, Any]):
        parameters = StorageAccountCreateParameters(
            sku=StorageSku(name=spec.get("sku_name", "Standard_LRS")),
            kind=spec.get("account_kind", "StorageV2"),
            location=spec["location"],
            enable_https_traffic_only=True,
            minimum_tls_version=spec.get("minimum_tls_version", "TLS1_2"),
            allow_blob_public_access=spec.get("allow_blob_public_access", False),
            access_tier=spec.get("access_tier", "Hot"),
        )
        poller = await self._storage.storage_accounts.begin_create(
            self._resource_group, name, parameters
        )
        return await poller.result()

    async def delete(self, handle: ResourceHandle) -> None:
        rg = handle.resource_group or self._resource_group
        async with _translate_errors(handle.kind, handle.name):
            if handle.kind == ResourceKind.SQL_SERVER:
                poller = await self._sql.servers.begin_delete(rg, handle.name)
                await poller.result()
            elif handle.kind == ResourceKind.EVENTHUB_NAMESPACE:
                poller = await self._eventhub.namespaces.begin_delete(rg, handle.name)
                await poller.result()
            elif handle.kind == ResourceKind.STORAGE_ACCOUNT:
                await self._storage.storage_accounts.delete(rg, handle.name)
            elif handle.kind == ResourceKind.EVENTHUB_CONSUMER_GROUP:
                namespace, hub = handle.parent.path()
                await self._eventhub.consumer_groups.delete(rg, namespace, hub, handle.name)
            else:
                raise ProviderError(f"Deleting a {handle.kind.label} on its own is not supported")

    async def list_all(self, kind, parent=None) -> list[ResourceHandle]:
        rg = self._resource_group
        if kind == ResourceKind.SQL_SERVER:
            pager = self._sql.servers.list_by_resource_group(rg)
        elif kind == ResourceKind.EVENTHUB_NAMESPACE:
            pager = self._eventhub.namespaces.list_by_resource_group(rg)
        elif kind == ResourceKind.STORAGE_ACCOUNT:
            pager = self._storage.storage_accounts.list_by_resource_group(rg)
        elif kind == ResourceKind.EVENTHUB_CONSUMER_GROUP and parent is not None:
            namespace, hub = parent.path()
            pager = self._eventhub.consumer_groups.list_by_event_hub(rg, namespace, hub)
        else:
            raise ProviderError(f"Listing {kind.label} resources is not supported")

        async with _translate_errors(kind, "*"):
            return [_to_handle(kind, resource, parent) async for resource in pager]

    async def update_sku(self, handle: ResourceHandle, sku_name: str) -> ResourceHandle:
        if handle.kind != ResourceKind.EVENTHUB_NAMESPACE:
            raise ProviderError(f"Changing the pricing tier of a {handle.kind.label} is not supported")

        logger.info(f"Moving {handle.kind.label} {handle.name} to the {sku_name} tier")
        async with _translate_errors(handle.kind, handle.name):
            await self._eventhub.namespaces.update(
                self._resource_group,
                handle.name,
                EHNamespace(
                    location=handle.properties.get("location"),
                    sku=EventHubSku(name=sku_name, tier=sku_name),
                ),
            )
        # The update may be accepted without a body
        return await self.get(handle.kind, handle.name)

    async def fetch_access_key(self, handle: ResourceHandle) -> str | None:
        rg = handle.resource_group or self._resource_group
        async with _translate_errors(handle.kind, handle.name):
            if handle.kind == ResourceKind.EVENTHUB_AUTH_RULE:
                namespace, hub = handle.parent.path()
                keys = await self._eventhub.event_hubs.list_keys(rg, namespace, hub, handle.name)
                return keys.primary_key

            if handle.kind == ResourceKind.STORAGE_ACCOUNT:
                result = await self._storage.storage_accounts.list_keys(rg, handle.name)
                for key in result.keys or []:
                    if key.key_name.lower() == STORAGE_PRIMARY_KEY_NAME:
                        return key.value
                return None

        raise ProviderError(f"A {handle.kind.label} has no access keys")

    # ------------------------------------------------------------------
    # DataImporter
    # ------------------------------------------------------------------

    async def start_import(
        self, database: ResourceHandle, source_uri: str, credentials: ImportCredentials
    ) -> None:
        definition = ImportExistingDatabaseDefinition(
            storage_key_type="StorageAccessKey",
            storage_key=credentials.storage_key,
            storage_uri=source_uri,
            administrator_login=credentials.administrator_login,
            administrator_login_password=credentials.administrator_password,
        )
        async with _translate_errors(database.kind, database.name):
            # Only acceptance is awaited; the poller is not kept.
            await self._sql.databases.begin_import_method(
                self._resource_group, database.parent.name, database.name, definition
            )
        logger.info(f"Import of {source_uri} into {'/'.join(database.path())} accepted")


def _to_handle(kind: ResourceKind, resource: Any, parent: ResourceHandle | None) -> ResourceHandle:
    properties = {}
    for attribute in ("location", "provisioning_state"):
        value = getattr(resource, attribute, None)
        if value is not None:
            properties[attribute] = _plain(value)
    sku = getattr(resource, "sku", None)
    if sku is not None and getattr(sku, "name", None) is not None:
        properties["sku_name"] = _plain(sku.name)
    return ResourceHandle(
        kind=kind,
        name=resource.name,
        id=getattr(resource, "id", None),
        parent=parent,
        properties=properties,
    )


def _plain(value: Any) -> str:
    """SDK enums as their wire value."""
    return str(getattr(value, "value", value))
