"""Fan attendee provisioning and teardown out over a bounded number of tasks.

LabOrchestrator is the public API used by both the interactive console and
the HTTP routes. All state that concurrent attendee tasks share (the step
counter, the collected results) is created per call and discarded after it.
"""
import asyncio
import logging
import time
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TextIO

from labmanager.core.config import ConsumerGroupSettings, Settings
from labmanager.core.exceptions import (
    AttendeeProvisioningError,
    ConfigurationError,
    ConfirmationDeclinedError,
    ProviderError,
)
from labmanager.models import (
    TOP_LEVEL_KINDS,
    AttendeeRecord,
    ProvisionedAttendeeResources,
    ResourceHandle,
    ResourceKind,
)
from labmanager.provisioning.builder import AttendeeResourceBuilder
from labmanager.provisioning.naming import (
    CONSUMER_GROUP_NAMING,
    TOP_LEVEL_NAMING,
    attendee_resource_names,
    check_distinct_resource_names,
    consumer_group_name,
    resource_base_names,
)
from labmanager.provisioning.progress import Progress
from labmanager.provisioning.provider import CloudProvider, DataImporter
from labmanager.provisioning.report import write_report

logger = logging.getLogger(__name__)

# Built into every event hub; never deleted
DEFAULT_CONSUMER_GROUP = "$Default"
BASIC_TIER = "Basic"
STANDARD_TIER = "Standard"


@dataclass
class RunSummary:
    """Outcome of a create run."""
    processed: int
    succeeded: int
    elapsed: timedelta
    results: list[ProvisionedAttendeeResources] = field(default_factory=list)
    cancelled: bool = False

    def __str__(self) -> str:
        return (
            f"Processed {self.processed} attendee(s); successfully created resources for "
            f"{self.succeeded} attendee(s) in {_format_elapsed(self.elapsed)}"
        )


@dataclass
class DeleteSummary:
    """Outcome of a delete run, per top-level resource kind."""
    targeted: dict[ResourceKind, int]
    deleted: dict[ResourceKind, int]
    elapsed: timedelta
    cancelled: bool = False

    def __str__(self) -> str:
        counts = ", ".join(
            f"{self.deleted.get(kind, 0)}/{self.targeted.get(kind, 0)} {kind.label}(s)"
            for kind in TOP_LEVEL_KINDS
        )
        return f"Deleted {counts} in {_format_elapsed(self.elapsed)}"


@dataclass
class ConsumerGroupSummary:
    """Outcome of creating or deleting consumer groups on the shared event hub."""
    verb: str
    changed: int
    skipped: int
    failed: int
    elapsed: timedelta

    def __str__(self) -> str:
        return (
            f"{self.verb} {self.changed} consumer group(s), skipped {self.skipped}, "
            f"failed {self.failed} in {_format_elapsed(self.elapsed)}"
        )


def _format_elapsed(elapsed: timedelta) -> str:
    return str(timedelta(seconds=round(elapsed.total_seconds())))


class LabOrchestrator:
    """
    Create, list and delete lab resources for the roster or one attendee.

    Destructive operations ask confirm(prompt) first unless called with
    confirmed=True. Without a confirm callback they are always declined.
    """

    def __init__(
        self,
        provider: CloudProvider,
        importer: DataImporter,
        settings: Settings,
        roster: list[AttendeeRecord],
        confirm: Callable[[str], bool] | None = None,
        stream: TextIO | None = None,
    ):
        self.provider = provider
        self.importer = importer
        self.settings = settings
        self.roster = roster
        self._confirm = confirm
        self._stream = stream

    # ------------------------------------------------------------------
    # Read-only operations
    # ------------------------------------------------------------------

    async def describe(self) -> dict[str, dict]:
        """Subscription details and settings, with secrets masked."""
        return {
            "subscription": await self.provider.describe(),
            "settings": self.settings.model_dump(mode="json"),
        }

    def find_attendee(self, name: str) -> AttendeeRecord:
        """Roster entry for name, or a bare record if name is not on the roster."""
        for attendee in self.roster:
            if attendee.name == name:
                return attendee
        logger.info(f"Attendee '{name}' is not in the roster")
        return AttendeeRecord(name=name)

    async def list_all(self) -> list[ResourceHandle]:
        """Every top-level resource in the lab resource group, grouped by kind."""
        listings = await asyncio.gather(*(self.provider.list_all(kind) for kind in TOP_LEVEL_KINDS))

        handles = []
        for listing in listings:
            handles.extend(sorted(listing, key=lambda handle: handle.name))

        progress = Progress(self._stream)
        for handle in handles:
            progress.note(f"{progress.next_step():3}. {handle.kind.label}: {handle.name}")
        if not handles:
            progress.note(f"No resources found in resource group '{self.settings.resource_group_name}'")
        return handles

    async def refresh_tokens(
        self, name: str | None = None, cancel: asyncio.Event | None = None
    ) -> dict[str, str | None]:
        """
        Re-sign event hub SAS tokens from existing authorization rules.

        Nothing is created. Attendees whose rule cannot be found map to None.
        """
        attendees = self.roster if name is None else [self.find_attendee(name)]
        progress = Progress(self._stream)
        builder = AttendeeResourceBuilder(self.provider, self.importer, self.settings, progress)
        semaphore = asyncio.Semaphore(self.settings.max_parallelism)
        tokens = {}

        async def refresh(attendee):
            async with semaphore:
                if cancel is not None and cancel.is_set():
                    return
                try:
                    token = await builder.refresh_sas_token(attendee)
                except Exception as e:
                    progress.failed(
                        progress.next_step(),
                        f"Error generating SAS token for attendee '{attendee.name}': {e}",
                    )
                    tokens[attendee.name] = None
                else:
                    progress.created(progress.next_step(), f"{attendee.name}: {token}")
                    tokens[attendee.name] = token

        await asyncio.gather(*(refresh(attendee) for attendee in attendees))
        return tokens

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_all(
        self, cancel: asyncio.Event | None = None, confirmed: bool = False
    ) -> RunSummary:
        self._require_confirmation(
            f"Create resources for all {len(self.roster)} attendee(s) in resource group "
            f"'{self.settings.resource_group_name}'?",
            confirmed,
        )
        return await self._provision(self.roster, cancel)

    async def create_one(
        self, name: str, cancel: asyncio.Event | None = None, confirmed: bool = False
    ) -> RunSummary:
        self._require_confirmation(
            f"Create resources for attendee '{name}' in resource group "
            f"'{self.settings.resource_group_name}'?",
            confirmed,
        )
        attendee = self.find_attendee(name)
        if attendee not in self.roster:
            check_distinct_resource_names(self.settings, [*self.roster, attendee])
        return await self._provision([attendee], cancel)

    async def _provision(
        self, attendees: list[AttendeeRecord], cancel: asyncio.Event | None
    ) -> RunSummary:
        """
        Build every attendee with at most max_parallelism in flight, then write the report.

        A failing attendee is logged and kept in the report with what it got.
        When cancel is set, attendees not yet started are skipped. If the run
        itself is cancelled, the report is still written before the
        cancellation propagates.
        """
        progress = Progress(self._stream)
        builder = AttendeeResourceBuilder(self.provider, self.importer, self.settings, progress)
        semaphore = asyncio.Semaphore(self.settings.max_parallelism)
        lock = asyncio.Lock()
        results = []
        started = time.monotonic()

        async def provision(attendee):
            async with semaphore:
                if cancel is not None and cancel.is_set():
                    return
                result = ProvisionedAttendeeResources(attendee_name=attendee.name)
                try:
                    await builder.build(attendee, result)
                except AttendeeProvisioningError as e:
                    logger.warning(f"Attendee '{attendee.name}' partially provisioned: {e}")
                except asyncio.CancelledError:
                    result.errors.setdefault("AttendeeName", "cancelled")
                    raise
                except Exception as e:
                    result.errors.setdefault("AttendeeName", str(e))
                    progress.failed(
                        progress.next_step(),
                        f"Error creating resources for attendee '{attendee.name}': {e}",
                    )
                finally:
                    async with lock:
                        results.append(result)

        try:
            await asyncio.gather(*(provision(attendee) for attendee in attendees))
        finally:
            write_report(self.settings.report_path, results, self._stream)
            summary = RunSummary(
                processed=len(results),
                succeeded=sum(1 for result in results if result.succeeded),
                elapsed=timedelta(seconds=time.monotonic() - started),
                results=results,
                cancelled=cancel is not None and cancel.is_set(),
            )
            progress.note(str(summary))
        return summary

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_all(
        self, cancel: asyncio.Event | None = None, confirmed: bool = False
    ) -> DeleteSummary:
        """Delete every top-level resource whose name follows the lab naming scheme."""
        self._require_confirmation(
            f"Delete resources for ALL attendees in resource group "
            f"'{self.settings.resource_group_name}'?",
            confirmed,
        )
        bases = resource_base_names(self.settings)
        return await self._teardown(
            lambda handle: TOP_LEVEL_NAMING[handle.kind].matches(bases[handle.kind], handle.name),
            cancel,
        )

    async def delete_one(
        self, name: str, cancel: asyncio.Event | None = None, confirmed: bool = False
    ) -> DeleteSummary:
        """Delete the top-level resources derived for attendee name."""
        self._require_confirmation(
            f"Delete resources for attendee '{name}' in resource group "
            f"'{self.settings.resource_group_name}'?",
            confirmed,
        )
        names = attendee_resource_names(self.settings, name)
        return await self._teardown(lambda handle: handle.name == names[handle.kind], cancel)

    async def _teardown(
        self, selector: Callable[[ResourceHandle], bool], cancel: asyncio.Event | None
    ) -> DeleteSummary:
        """Delete the listed top-level resources that selector picks, bounded like creation."""
        progress = Progress(self._stream)
        semaphore = asyncio.Semaphore(self.settings.max_parallelism)
        lock = asyncio.Lock()
        started = time.monotonic()

        listings = await asyncio.gather(*(self.provider.list_all(kind) for kind in TOP_LEVEL_KINDS))
        targets = [handle for listing in listings for handle in listing if selector(handle)]
        targeted = Counter(handle.kind for handle in targets)
        deleted = Counter()

        async def remove(handle):
            async with semaphore:
                if cancel is not None and cancel.is_set():
                    return
                progress.created(progress.next_step(), f"Deleting {handle.kind.label}: {handle.name}")
                try:
                    await self.provider.delete(handle)
                except Exception as e:
                    progress.failed(
                        progress.next_step(),
                        f"Error deleting {handle.kind.label} '{handle.name}': {e}",
                    )
                else:
                    async with lock:
                        deleted[handle.kind] += 1

        try:
            await asyncio.gather(*(remove(handle) for handle in targets))
        finally:
            summary = DeleteSummary(
                targeted=dict(targeted),
                deleted=dict(deleted),
                elapsed=timedelta(seconds=time.monotonic() - started),
                cancelled=cancel is not None and cancel.is_set(),
            )
            progress.note(str(summary))
        return summary

    # ------------------------------------------------------------------
    # Consumer groups on the shared event hub
    # ------------------------------------------------------------------

    def _consumer_group_settings(self) -> ConsumerGroupSettings:
        if self.settings.consumer_groups is None:
            raise ConfigurationError("No shared event hub is configured under 'consumer_groups'")
        return self.settings.consumer_groups

    async def _shared_event_hub(self) -> ResourceHandle:
        cfg = self._consumer_group_settings()
        namespace = await self.provider.get(ResourceKind.EVENTHUB_NAMESPACE, cfg.namespace_name)
        return await self.provider.get(ResourceKind.EVENTHUB, cfg.event_hub_name, namespace)

    async def list_consumer_groups(self) -> list[ResourceHandle]:
        """Consumer groups of the shared event hub, by name."""
        hub = await self._shared_event_hub()
        groups = sorted(
            await self.provider.list_all(ResourceKind.EVENTHUB_CONSUMER_GROUP, hub),
            key=lambda group: group.name,
        )

        progress = Progress(self._stream)
        for group in groups:
            progress.note(f"{progress.next_step():3}. {group.name}")
        progress.note(f"Total consumer groups: {len(groups)}")
        return groups

    async def create_consumer_groups(
        self,
        name: str | None = None,
        cancel: asyncio.Event | None = None,
        confirmed: bool = False,
    ) -> ConsumerGroupSummary:
        """Give each roster attendee, or only name, a consumer group; existing ones are skipped."""
        cfg = self._consumer_group_settings()
        who = "all attendees" if name is None else f"attendee '{name}'"
        self._require_confirmation(
            f"Create consumer groups for {who} on event hub '{cfg.event_hub_name}'?", confirmed
        )
        attendees = self.roster if name is None else [self.find_attendee(name)]

        progress = Progress(self._stream)
        builder = AttendeeResourceBuilder(self.provider, self.importer, self.settings, progress)
        semaphore = asyncio.Semaphore(self.settings.max_parallelism)
        outcomes = Counter()
        started = time.monotonic()
        hub = await self._shared_event_hub()

        async def create(attendee):
            async with semaphore:
                if cancel is not None and cancel.is_set():
                    return
                try:
                    _, created = await builder.ensure_consumer_group(
                        attendee, hub, progress.next_step()
                    )
                except Exception as e:
                    progress.failed(
                        progress.next_step(),
                        f"Error creating consumer group for attendee '{attendee.name}': {e}",
                    )
                    outcomes["failed"] += 1
                else:
                    outcomes["created" if created else "skipped"] += 1

        await asyncio.gather(*(create(attendee) for attendee in attendees))
        summary = ConsumerGroupSummary(
            verb="Created",
            changed=outcomes["created"],
            skipped=outcomes["skipped"],
            failed=outcomes["failed"],
            elapsed=timedelta(seconds=time.monotonic() - started),
        )
        progress.note(str(summary))
        return summary

    async def delete_consumer_groups(
        self,
        name: str | None = None,
        cancel: asyncio.Event | None = None,
        confirmed: bool = False,
    ) -> ConsumerGroupSummary:
        """
        Delete attendee consumer groups from the shared event hub.

        Without a name, every group following the naming scheme goes, whether
        or not its attendee is still on the roster. Missing groups are skipped.
        """
        cfg = self._consumer_group_settings()
        who = "all attendees" if name is None else f"attendee '{name}'"
        self._require_confirmation(
            f"Delete consumer groups for {who} on event hub '{cfg.event_hub_name}'?", confirmed
        )

        progress = Progress(self._stream)
        semaphore = asyncio.Semaphore(self.settings.max_parallelism)
        outcomes = Counter()
        started = time.monotonic()
        hub = await self._shared_event_hub()
        groups = {
            group.name: group
            for group in await self.provider.list_all(ResourceKind.EVENTHUB_CONSUMER_GROUP, hub)
            if group.name != DEFAULT_CONSUMER_GROUP
        }

        if name is None:
            targets = [
                group
                for group in groups.values()
                if CONSUMER_GROUP_NAMING.matches(cfg.name_base, group.name)
            ]
            wanted = [consumer_group_name(self.settings, attendee.name) for attendee in self.roster]
        else:
            wanted = [consumer_group_name(self.settings, name)]
            targets = [groups[group_name] for group_name in wanted if group_name in groups]

        for group_name in wanted:
            if group_name not in groups:
                progress.skipped(
                    progress.next_step(), f"Skipping consumer group: {group_name} (not found)"
                )
                outcomes["skipped"] += 1

        async def remove(group):
            async with semaphore:
                if cancel is not None and cancel.is_set():
                    return
                progress.created(progress.next_step(), f"Deleting consumer group: {group.name}")
                try:
                    await self.provider.delete(group)
                except Exception as e:
                    progress.failed(
                        progress.next_step(), f"Error deleting consumer group '{group.name}': {e}"
                    )
                    outcomes["failed"] += 1
                else:
                    outcomes["deleted"] += 1

        await asyncio.gather(*(remove(group) for group in targets))
        summary = ConsumerGroupSummary(
            verb="Deleted",
            changed=outcomes["deleted"],
            skipped=outcomes["skipped"],
            failed=outcomes["failed"],
            elapsed=timedelta(seconds=time.monotonic() - started),
        )
        progress.note(str(summary))
        return summary

    async def toggle_namespace_tier(self, confirmed: bool = False) -> str:
        """
        Switch the shared event hub namespace between the Basic and Standard tiers.

        Basic namespaces only allow the $Default consumer group, so the other
        groups of the shared hub are deleted before downgrading.

        Returns:
            The namespace's new SKU name.

        Raises:
            ProviderError: If the namespace is on any other tier.
        """
        cfg = self._consumer_group_settings()
        self._require_confirmation(
            f"Toggle the pricing tier of event hub namespace '{cfg.namespace_name}'?", confirmed
        )
        progress = Progress(self._stream)
        namespace = await self.provider.get(ResourceKind.EVENTHUB_NAMESPACE, cfg.namespace_name)
        current = namespace.properties.get("sku_name")

        if current == STANDARD_TIER:
            hub = await self.provider.get(ResourceKind.EVENTHUB, cfg.event_hub_name, namespace)
            groups = await self.provider.list_all(ResourceKind.EVENTHUB_CONSUMER_GROUP, hub)
            for group in groups:
                if group.name == DEFAULT_CONSUMER_GROUP:
                    continue
                progress.created(progress.next_step(), f"Deleting consumer group: {group.name}")
                await self.provider.delete(group)
            target = BASIC_TIER
        elif current == BASIC_TIER:
            target = STANDARD_TIER
        else:
            raise ProviderError(
                f"Unsupported SKU '{current}' on event hub namespace '{namespace.name}'"
            )

        updated = await self.provider.update_sku(namespace, target)
        sku_name = updated.properties.get("sku_name", target)
        progress.note(f"Updated pricing tier: {sku_name}")
        return sku_name

    def _require_confirmation(self, prompt: str, confirmed: bool) -> None:
        if confirmed:
            return
        if self._confirm is None or not self._confirm(prompt):
            logger.info(f"Declined: {prompt}")
            raise ConfirmationDeclinedError(f"Operator declined: {prompt}")
