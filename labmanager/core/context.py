"""Request-scoped access to the orchestrator created at application start-up."""
import logging

from fastapi import HTTPException, Request

from labmanager.core.exceptions import (
    ConfigurationError,
    ConfirmationDeclinedError,
    LabManagerError,
    ProviderError,
    ResourceNotFoundError,
)
from labmanager.provisioning.orchestrator import LabOrchestrator

logger = logging.getLogger(__name__)

CONFIRMATION_ANSWER = "Y"


def get_orchestrator(request: Request) -> LabOrchestrator:
    """Dependency that provides the application's orchestrator."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Lab manager is not connected to Azure")
    return orchestrator


def require_confirmation(confirm: str, action: str) -> None:
    """Reject the request with 400 unless its confirm field is exactly Y."""
    if confirm.strip() != CONFIRMATION_ANSWER:
        logger.info(f"Rejected request to {action} without confirm={CONFIRMATION_ANSWER}")
        raise http_error(ConfirmationDeclinedError(f"Not confirmed: {action}"))


def http_error(error: LabManagerError) -> HTTPException:
    """HTTPException matching a lab manager error."""
    if isinstance(error, ConfirmationDeclinedError):
        return HTTPException(
            status_code=400, detail=f"Confirmation required: submit confirm={CONFIRMATION_ANSWER}"
        )
    if isinstance(error, ConfigurationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, ResourceNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ProviderError):
        return HTTPException(status_code=502, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
