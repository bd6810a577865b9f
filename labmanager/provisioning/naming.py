"""Derive per-attendee resource names from a base name.

Every name is a pure function of (base, attendee), which is what lets a second
"create" run find and skip what the first run made.
"""
import re
from dataclasses import dataclass

from labmanager.core.config import Settings
from labmanager.core.exceptions import ConfigurationError
from labmanager.models import AttendeeRecord, ResourceKind

_NOT_ALPHANUMERIC = re.compile(r"[^a-z0-9]")
_NOT_NAME_CHAR = re.compile(r"[^a-z0-9-]+")
_HYPHEN_RUN = re.compile(r"-{2,}")


@dataclass(frozen=True)
class NamingScheme:
    """Naming constraints of one resource kind.

    Attributes:
        max_length: Longest name the provider accepts.
        alphanumeric_only: Strip everything but letters and digits (storage
            accounts). Otherwise hyphens are kept as separators.
    """
    max_length: int
    alphanumeric_only: bool = False

    def sanitize(self, raw: str) -> str:
        name = raw.lower()
        if self.alphanumeric_only:
            return _NOT_ALPHANUMERIC.sub("", name)[: self.max_length]

        name = _NOT_NAME_CHAR.sub("-", name)
        name = _HYPHEN_RUN.sub("-", name).strip("-")
        return name[: self.max_length].rstrip("-")

    def derive(self, base: str, attendee_name: str) -> str:
        """Name of the resource of this kind belonging to attendee_name."""
        return self.sanitize(f"{base}-{attendee_name}")

    def prefix(self, base: str) -> str:
        """
        Prefix shared by every name derived from base.

        Alphanumeric schemes have no separator to end the prefix on, so any
        name that merely starts with the base matches too: base "lab" also
        matches an unrelated "laboratorylogs". Keep such resources out of the
        lab resource group, or pick a base that nothing else starts with.
        """
        if self.alphanumeric_only:
            return self.sanitize(base)
        return self.sanitize(base) + "-"

    def matches(self, base: str, name: str) -> bool:
        """True if name looks like it was derived from base by this scheme."""
        return name.lower().startswith(self.prefix(base))


SQL_SERVER_NAMING = NamingScheme(max_length=63)
EVENTHUB_NAMESPACE_NAMING = NamingScheme(max_length=50)
STORAGE_ACCOUNT_NAMING = NamingScheme(max_length=24, alphanumeric_only=True)
CONSUMER_GROUP_NAMING = NamingScheme(max_length=50)

# Naming scheme for each top-level kind
TOP_LEVEL_NAMING = {
    ResourceKind.SQL_SERVER: SQL_SERVER_NAMING,
    ResourceKind.EVENTHUB_NAMESPACE: EVENTHUB_NAMESPACE_NAMING,
    ResourceKind.STORAGE_ACCOUNT: STORAGE_ACCOUNT_NAMING,
}


def resource_base_names(settings: Settings) -> dict[ResourceKind, str]:
    """Configured base name of each top-level kind."""
    return {
        ResourceKind.SQL_SERVER: settings.sql_database.server_name,
        ResourceKind.EVENTHUB_NAMESPACE: settings.event_hub.namespace_name,
        ResourceKind.STORAGE_ACCOUNT: settings.storage.account_name,
    }


def attendee_resource_names(settings: Settings, attendee_name: str) -> dict[ResourceKind, str]:
    """Derived names of an attendee's top-level resources."""
    return {
        kind: TOP_LEVEL_NAMING[kind].derive(base, attendee_name)
        for kind, base in resource_base_names(settings).items()
    }


def consumer_group_name(settings: Settings, attendee_name: str) -> str:
    """Name of the attendee's consumer group on the shared event hub."""
    return CONSUMER_GROUP_NAMING.derive(settings.consumer_groups.name_base, attendee_name)


def check_distinct_resource_names(settings: Settings, attendees: list[AttendeeRecord]) -> None:
    """
    Make sure no two attendees would share a resource.

    Derived names are lowercased, stripped and truncated, so distinct roster
    entries such as "Alice" and "alice", or "alice.smith" and "alicesmith"
    for storage accounts, can end up with the same name.

    Raises:
        ConfigurationError: Naming both attendees and the shared name.
    """
    owners: dict[tuple[ResourceKind, str], str] = {}
    for attendee in attendees:
        names = attendee_resource_names(settings, attendee.name)
        if settings.consumer_groups is not None:
            names[ResourceKind.EVENTHUB_CONSUMER_GROUP] = consumer_group_name(settings, attendee.name)

        for kind, name in names.items():
            owner = owners.setdefault((kind, name), attendee.name)
            if owner != attendee.name:
                raise ConfigurationError(
                    f"Attendees '{owner}' and '{attendee.name}' would share the "
                    f"{kind.label} '{name}'; rename one of them in the roster"
                )
