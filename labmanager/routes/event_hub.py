"""Routes for attendee consumer groups on the shared event hub."""
from fastapi import APIRouter, Depends, Form

from labmanager.core.context import get_orchestrator, http_error, require_confirmation
from labmanager.core.exceptions import LabManagerError
from labmanager.provisioning.orchestrator import ConsumerGroupSummary, LabOrchestrator

router = APIRouter(prefix="/event-hub", tags=["event hub"])


def _summary_body(summary: ConsumerGroupSummary) -> dict:
    return {
        "changed": summary.changed,
        "skipped": summary.skipped,
        "failed": summary.failed,
        "elapsed_seconds": summary.elapsed.total_seconds(),
    }


@router.get("/consumer-groups")
async def list_consumer_groups(orchestrator: LabOrchestrator = Depends(get_orchestrator)):
    """Consumer group names on the shared event hub, including $Default."""
    try:
        groups = await orchestrator.list_consumer_groups()
    except LabManagerError as e:
        raise http_error(e) from e
    return [group.name for group in groups]


@router.post("/consumer-groups/create")
async def create_consumer_groups(
    attendee: str | None = Form(None),
    confirm: str = Form(""),
    orchestrator: LabOrchestrator = Depends(get_orchestrator),
):
    """Create consumer groups for all attendees, or only attendee. Requires confirm=Y."""
    require_confirmation(confirm, "create consumer groups")
    try:
        summary = await orchestrator.create_consumer_groups(attendee, confirmed=True)
    except LabManagerError as e:
        raise http_error(e) from e
    return _summary_body(summary)


@router.post("/consumer-groups/delete")
async def delete_consumer_groups(
    attendee: str | None = Form(None),
    confirm: str = Form(""),
    orchestrator: LabOrchestrator = Depends(get_orchestrator),
):
    """Delete consumer groups for all attendees, or only attendee. Requires confirm=Y."""
    require_confirmation(confirm, "delete consumer groups")
    try:
        summary = await orchestrator.delete_consumer_groups(attendee, confirmed=True)
    except LabManagerError as e:
        raise http_error(e) from e
    return _summary_body(summary)


@router.post("/tier")
async def toggle_tier(
    confirm: str = Form(""),
    orchestrator: LabOrchestrator = Depends(get_orchestrator),
):
    """
    Switch the shared namespace between Basic and Standard. Requires confirm=Y.

    Downgrading to Basic deletes every consumer group except $Default.
    """
    require_confirmation(confirm, "toggle the event hub namespace tier")
    try:
        sku_name = await orchestrator.toggle_namespace_tier(confirmed=True)
    except LabManagerError as e:
        raise http_error(e) from e
    return {"sku_name": sku_name}
