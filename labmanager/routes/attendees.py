"""Attendee roster and SAS token routes."""
from fastapi import APIRouter, Depends, HTTPException

from labmanager.core.context import get_orchestrator
from labmanager.models import AttendeeRecord
from labmanager.provisioning.orchestrator import LabOrchestrator

router = APIRouter(prefix="/attendees", tags=["attendees"])


@router.get("")
async def list_attendees(
    orchestrator: LabOrchestrator = Depends(get_orchestrator),
) -> list[AttendeeRecord]:
    """Attendees from the roster file, in file order."""
    return orchestrator.roster


@router.get("/{name}/token")
async def attendee_token(
    name: str,
    orchestrator: LabOrchestrator = Depends(get_orchestrator),
):
    """
    Regenerate the event hub SAS token for one attendee.

    Signs a fresh token with the key of the attendee's existing authorization
    rule; nothing is created. Returns 404 if the attendee's event hub
    resources do not exist.
    """
    tokens = await orchestrator.refresh_tokens(name)
    token = tokens.get(name)
    if token is None:
        raise HTTPException(
            status_code=404, detail=f"No event hub authorization rule found for '{name}'"
        )
    return {"attendee": name, "event_hub_sas_token": token}
