"""Routes that list, create and delete lab resources."""
from fastapi import APIRouter, Depends, Form

from labmanager.core.context import get_orchestrator, http_error, require_confirmation
from labmanager.core.exceptions import LabManagerError
from labmanager.provisioning.orchestrator import LabOrchestrator

router = APIRouter(prefix="/resources", tags=["resources"])

@router.get("")
async def list_resources(orchestrator: LabOrchestrator = Depends(get_orchestrator)):
    """Top-level lab resources currently in the resource group."""
    try:
        handles = await orchestrator.list_all()
    except LabManagerError as e:
        raise http_error(e) from e
    return [{"kind": handle.kind.value, "name": handle.name} for handle in handles]


@router.post("/create")
async def create_resources(
    attendee: str | None = Form(None),
    confirm: str = Form(""),
    orchestrator: LabOrchestrator = Depends(get_orchestrator),
):
    """
    Create resources for every roster attendee, or only attendee.

    The request must carry confirm=Y. Per-attendee failures do not fail the
    request; they are returned in each row's errors.
    """
    require_confirmation(confirm, "create resources")
    try:
        if attendee:
            summary = await orchestrator.create_one(attendee, confirmed=True)
        else:
            summary = await orchestrator.create_all(confirmed=True)
    except LabManagerError as e:
        raise http_error(e) from e

    return {
        "processed": summary.processed,
        "succeeded": summary.succeeded,
        "elapsed_seconds": summary.elapsed.total_seconds(),
        "results": [
            result.model_dump()
            for result in sorted(summary.results, key=lambda result: result.attendee_name)
        ],
    }


@router.post("/delete")
async def delete_resources(
    attendee: str | None = Form(None),
    confirm: str = Form(""),
    orchestrator: LabOrchestrator = Depends(get_orchestrator),
):
    """Delete resources for all attendees, or only attendee. Requires confirm=Y."""
    require_confirmation(confirm, "delete resources")
    try:
        if attendee:
            summary = await orchestrator.delete_one(attendee, confirmed=True)
        else:
            summary = await orchestrator.delete_all(confirmed=True)
    except LabManagerError as e:
        raise http_error(e) from e

    return {
        "targeted": {kind.value: count for kind, count in summary.targeted.items()},
        "deleted": {kind.value: count for kind, count in summary.deleted.items()},
        "elapsed_seconds": summary.elapsed.total_seconds(),
    }
