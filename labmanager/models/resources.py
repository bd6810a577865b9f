"""Cloud resource handles and the per-attendee provisioning result.

ResourceHandle is the provider-neutral reference to something that exists in
the cloud. ProvisionedAttendeeResources accumulates what one attendee's
provisioning produced and is flattened into one row of the report.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ResourceKind(str, Enum):
    """Kinds of cloud resources the lab manager creates or inspects."""
    SQL_SERVER = "sql_server"
    SQL_FIREWALL_RULE = "sql_firewall_rule"
    SQL_DATABASE = "sql_database"
    EVENTHUB_NAMESPACE = "eventhub_namespace"
    EVENTHUB = "eventhub"
    EVENTHUB_AUTH_RULE = "eventhub_auth_rule"
    EVENTHUB_CONSUMER_GROUP = "eventhub_consumer_group"
    STORAGE_ACCOUNT = "storage_account"
    STORAGE_CONTAINER = "storage_container"

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    ResourceKind.SQL_SERVER: "SQL database server",
    ResourceKind.SQL_FIREWALL_RULE: "SQL firewall rule",
    ResourceKind.SQL_DATABASE: "SQL database",
    ResourceKind.EVENTHUB_NAMESPACE: "event hub namespace",
    ResourceKind.EVENTHUB: "event hub",
    ResourceKind.EVENTHUB_AUTH_RULE: "event hub authorization rule",
    ResourceKind.EVENTHUB_CONSUMER_GROUP: "consumer group",
    ResourceKind.STORAGE_ACCOUNT: "storage account",
    ResourceKind.STORAGE_CONTAINER: "storage container",
}

# Kinds that live directly in the resource group; everything else is nested.
TOP_LEVEL_KINDS = (
    ResourceKind.SQL_SERVER,
    ResourceKind.EVENTHUB_NAMESPACE,
    ResourceKind.STORAGE_ACCOUNT,
)


class ResourceHandle(BaseModel):
    """Reference to a resource that exists at the provider.

    Attributes:
        kind: What sort of resource this is.
        name: Resource name, unique within its parent.
        id: Provider-assigned identifier, when known.
        parent: Enclosing resource for nested kinds (a hub's namespace, a
            database's server).
        resource_group: Resource group override. None means the configured
            lab resource group.
        properties: Provider-specific details (location, SKU, ...).
    """
    kind: ResourceKind
    name: str
    id: str | None = None
    parent: "ResourceHandle | None" = None
    resource_group: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)

    def path(self) -> tuple[str, ...]:
        """Names from the outermost parent down to this resource."""
        if self.parent is None:
            return (self.name,)
        return (*self.parent.path(), self.name)


class ProvisionedAttendeeResources(BaseModel):
    """What was provisioned for one attendee during a run.

    Fields start unset and are populated as each resource kind's step
    succeeds. A failed step leaves its field empty and records the message
    in errors, keyed by the report column name.

    Attributes:
        attendee_name: Copied from the AttendeeRecord.
        sql_database_server_name: Name of the attendee's SQL server.
        event_hub_namespace_name: Name of the attendee's event hub namespace.
        event_hub_sas_token: Signed token for the attendee's event hub.
        storage_account_connection_string: Connection string embedding the
            storage account key.
        errors: Failure messages per report column.
    """
    attendee_name: str
    sql_database_server_name: str | None = None
    event_hub_namespace_name: str | None = None
    event_hub_sas_token: str | None = None
    storage_account_connection_string: str | None = None
    errors: dict[str, str] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.errors

    def to_row(self) -> list[str]:
        errors = "; ".join(f"{column}: {message}" for column, message in self.errors.items())
        return [
            self.attendee_name,
            self.sql_database_server_name or "",
            self.event_hub_namespace_name or "",
            self.event_hub_sas_token or "",
            self.storage_account_connection_string or "",
            errors,
        ]


REPORT_HEADER = [
    "AttendeeName",
    "SqlDatabaseServerName",
    "EventHubNamespaceName",
    "EventHubSasToken",
    "StorageAccountConnectionString",
    "Errors",
]
