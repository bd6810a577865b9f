"""Provision the lab resources of a single attendee.

An attendee gets three independent groups of resources, set up concurrently:

    - SQL: server, wide-open firewall rule, database with the AdventureWorks
      reference data import started
    - Event hub: namespace, hub, authorization rule, and a SAS token signed
      with the rule's key
    - Storage: account, private blob container, and a connection string

Every resource is looked up before it is created, so re-running after a partial
failure only creates what is still missing.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import partial
from posixpath import basename
from urllib.parse import urlparse

from labmanager.core.config import Settings
from labmanager.core.exceptions import AttendeeProvisioningError, InvalidKeyError
from labmanager.models import (
    AttendeeRecord,
    ProvisionedAttendeeResources,
    ResourceHandle,
    ResourceKind,
)
from labmanager.provisioning.naming import (
    EVENTHUB_NAMESPACE_NAMING,
    SQL_SERVER_NAMING,
    STORAGE_ACCOUNT_NAMING,
    consumer_group_name,
)
from labmanager.provisioning.progress import Progress
from labmanager.provisioning.provider import CloudProvider, DataImporter, ImportCredentials
from labmanager.provisioning.sas import event_hub_resource_uri, generate_sas_token

logger = logging.getLogger(__name__)

FIREWALL_RULE_NAME = "WideOpen"
STORAGE_ENDPOINT_SUFFIX = "core.windows.net"
EVENT_HUB_RIGHTS = ["Manage", "Listen", "Send"]


def storage_connection_string(account_name: str, account_key: str) -> str:
    return (
        f"DefaultEndpointsProtocol=https;AccountName={account_name};"
        f"AccountKey={account_key};EndpointSuffix={STORAGE_ENDPOINT_SUFFIX}"
    )


class AttendeeResourceBuilder:
    """Creates, or finds, every lab resource for one attendee at a time."""

    def __init__(
        self,
        provider: CloudProvider,
        importer: DataImporter,
        settings: Settings,
        progress: Progress,
    ):
        self._provider = provider
        self._importer = importer
        self._settings = settings
        self._progress = progress

    async def ensure_exists(
        self,
        kind: ResourceKind,
        name: str,
        creator: Callable[[], Awaitable[ResourceHandle]],
        step: int,
        parent: ResourceHandle | None = None,
        indent: int = 0,
    ) -> tuple[ResourceHandle, bool]:
        """
        Return the existing resource, or create it with creator.

        Returns:
            (handle, was_created). was_created is False when the resource
            was already there and creation was skipped.
        """
        if await self._provider.exists(kind, name, parent):
            self._progress.skipped(step, f"Skipping {kind.label}: {name} (already exists)", indent)
            return await self._provider.get(kind, name, parent), False

        self._progress.created(step, f"Creating {kind.label}: {name}", indent)
        return await creator(), True

    def _ensure(self, kind, name, spec, step, parent=None, indent=0):
        creator = partial(self._provider.create, kind, name, spec, parent)
        return self.ensure_exists(kind, name, creator, step, parent, indent)

    async def build(
        self,
        attendee: AttendeeRecord,
        result: ProvisionedAttendeeResources | None = None,
    ) -> ProvisionedAttendeeResources:
        """
        Provision all resource groups for attendee concurrently.

        result is populated in place as steps succeed, so the caller keeps
        the partial data even if this raises.

        Raises:
            AttendeeProvisioningError: After every group was attempted, if
                any of them failed.
        """
        if result is None:
            result = ProvisionedAttendeeResources(attendee_name=attendee.name)
        logger.debug(f"Provisioning attendee '{attendee.name}'")

        await asyncio.gather(
            self._attempt(attendee, result, "SQL database resources", self._provision_sql_database),
            self._attempt(attendee, result, "event hub resources", self._provision_event_hub),
            self._attempt(attendee, result, "storage resources", self._provision_storage),
        )

        if result.errors:
            raise AttendeeProvisioningError(result, dict(result.errors))
        logger.info(f"Attendee '{attendee.name}' fully provisioned")
        return result

    async def _attempt(self, attendee, result, description, provision) -> None:
        step = self._progress.next_step()
        try:
            await provision(attendee, result, step)
        except Exception as e:
            column = _failed_column(provision.__name__, result)
            result.errors[column] = str(e)
            self._progress.failed(
                self._progress.next_step(),
                f"Error creating {description} for attendee '{attendee.name}': {e}",
            )

    # ------------------------------------------------------------------
    # SQL database
    # ------------------------------------------------------------------

    async def _provision_sql_database(self, attendee, result, step) -> None:
        cfg = self._settings.sql_database
        server_name = SQL_SERVER_NAMING.derive(cfg.server_name, attendee.name)

        server, _ = await self._ensure(
            ResourceKind.SQL_SERVER,
            server_name,
            {
                "location": self._settings.resource_region_name,
                "administrator_login": cfg.username,
                "administrator_password": cfg.password.get_secret_value(),
                "minimal_tls_version": "1.2",
                "public_network_access": "Enabled",
            },
            step,
        )
        result.sql_database_server_name = server.name

        # Lab machines connect from anywhere
        await self._ensure(
            ResourceKind.SQL_FIREWALL_RULE,
            FIREWALL_RULE_NAME,
            {"start_ip_address": "0.0.0.0", "end_ip_address": "255.255.255.255"},
            step,
            parent=server,
            indent=1,
        )

        database, created = await self._ensure(
            ResourceKind.SQL_DATABASE,
            cfg.database_name,
            {"location": self._settings.resource_region_name, "sku_name": cfg.sku_name},
            step,
            parent=server,
            indent=1,
        )
        if created:
            await self._start_reference_import(database, step)

    async def _start_reference_import(self, database: ResourceHandle, step: int) -> None:
        cfg = self._settings.sql_database
        source = self._settings.adventure_works

        source_account = ResourceHandle(
            kind=ResourceKind.STORAGE_ACCOUNT,
            name=source.storage_account_name,
            resource_group=source.resource_group_name,
        )
        storage_key = await self._provider.fetch_access_key(source_account)
        if not storage_key:
            raise InvalidKeyError(
                f"Storage account '{source.storage_account_name}' returned no access key"
            )

        bacpac = basename(urlparse(source.bacpac_uri).path)
        self._progress.created(
            step,
            f"Importing {bacpac} to server {database.parent.name} from {source.bacpac_uri}",
            indent=1,
        )
        await self._importer.start_import(
            database,
            source.bacpac_uri,
            ImportCredentials(
                storage_key=storage_key,
                administrator_login=cfg.username,
                administrator_password=cfg.password.get_secret_value(),
            ),
        )

    # ------------------------------------------------------------------
    # Event hub
    # ------------------------------------------------------------------

    async def _provision_event_hub(self, attendee, result, step) -> None:
        cfg = self._settings.event_hub
        namespace_name = EVENTHUB_NAMESPACE_NAMING.derive(cfg.namespace_name, attendee.name)

        namespace, _ = await self._ensure(
            ResourceKind.EVENTHUB_NAMESPACE,
            namespace_name,
            {"location": self._settings.resource_region_name, "sku_name": cfg.sku_name},
            step,
        )
        result.event_hub_namespace_name = namespace.name

        hub, _ = await self._ensure(
            ResourceKind.EVENTHUB,
            cfg.event_hub_name,
            {"retention_hours": cfg.retention_hours},
            step,
            parent=namespace,
            indent=1,
        )
        rule, _ = await self._ensure(
            ResourceKind.EVENTHUB_AUTH_RULE,
            cfg.policy_name,
            {"rights": EVENT_HUB_RIGHTS},
            step,
            parent=hub,
            indent=1,
        )
        result.event_hub_sas_token = await self.sas_token_for(rule)

    async def sas_token_for(self, rule: ResourceHandle) -> str:
        """Sign a SAS token for the event hub that owns authorization rule."""
        cfg = self._settings.event_hub
        namespace_name, hub_name = rule.parent.path()
        access_key = await self._provider.fetch_access_key(rule)
        return generate_sas_token(
            event_hub_resource_uri(namespace_name, hub_name),
            access_key,
            cfg.sas_token_expiration_days,
            rule.name,
        )

    async def refresh_sas_token(self, attendee: AttendeeRecord) -> str:
        """
        Re-sign the SAS token of an attendee's existing event hub.

        Raises:
            ResourceNotFoundError: If the namespace, hub or rule is missing.
        """
        cfg = self._settings.event_hub
        namespace_name = EVENTHUB_NAMESPACE_NAMING.derive(cfg.namespace_name, attendee.name)

        namespace = await self._provider.get(ResourceKind.EVENTHUB_NAMESPACE, namespace_name)
        hub = await self._provider.get(ResourceKind.EVENTHUB, cfg.event_hub_name, namespace)
        rule = await self._provider.get(ResourceKind.EVENTHUB_AUTH_RULE, cfg.policy_name, hub)
        return await self.sas_token_for(rule)

    async def ensure_consumer_group(
        self, attendee: AttendeeRecord, hub: ResourceHandle, step: int
    ) -> tuple[ResourceHandle, bool]:
        """Find or create the attendee's consumer group on the shared event hub."""
        name = consumer_group_name(self._settings, attendee.name)
        return await self._ensure(ResourceKind.EVENTHUB_CONSUMER_GROUP, name, {}, step, parent=hub)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    async def _provision_storage(self, attendee, result, step) -> None:
        cfg = self._settings.storage
        account_name = STORAGE_ACCOUNT_NAMING.derive(cfg.account_name, attendee.name)

        account, _ = await self._ensure(
            ResourceKind.STORAGE_ACCOUNT,
            account_name,
            {
                "location": self._settings.resource_region_name,
                "sku_name": "Standard_LRS",
                "account_kind": "StorageV2",
                "minimum_tls_version": "TLS1_2",
                "allow_blob_public_access": False,
                "access_tier": "Hot",
            },
            step,
        )
        await self._ensure(
            ResourceKind.STORAGE_CONTAINER,
            cfg.container_name,
            {"public_access": "None"},
            step,
            parent=account,
            indent=1,
        )

        account_key = await self._provider.fetch_access_key(account)
        if not account_key:
            raise InvalidKeyError(f"Storage account '{account.name}' returned no access key")
        result.storage_account_connection_string = storage_connection_string(
            account.name, account_key
        )


def _failed_column(step_name: str, result: ProvisionedAttendeeResources) -> str:
    """Report column a failed step is noted against."""
    if step_name == "_provision_sql_database":
        return "SqlDatabaseServerName"
    if step_name == "_provision_event_hub":
        if result.event_hub_namespace_name:
            return "EventHubSasToken"
        return "EventHubNamespaceName"
    return "StorageAccountConnectionString"
