"""Workshop Lab Manager web application."""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from labmanager.core.config import DEFAULT_SETTINGS_FILE, load_settings
from labmanager.core.context import get_orchestrator
from labmanager.core.logs import configure_logging
from labmanager.provisioning.azure import AzureProvider
from labmanager.provisioning.orchestrator import LabOrchestrator
from labmanager.provisioning.roster import load_roster
from labmanager.routes import attendees, event_hub, resources

logger = logging.getLogger(__name__)

APP_NAME = "Workshop Lab Manager"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load settings and the roster, and connect to Azure, for the app's lifetime."""
    # Startup
    settings = load_settings(os.environ.get("LAB_SETTINGS_FILE", DEFAULT_SETTINGS_FILE))
    configure_logging(settings.debug)
    logger.info(f"Starting {settings.app_name}")
    roster = load_roster(settings.roster_path, settings)
    provider = await AzureProvider(settings).open()
    # Destructive routes confirm through the request's confirm field
    app.state.orchestrator = LabOrchestrator(provider, provider, settings, roster)
    yield
    # Shutdown
    await provider.close()
    logger.info(f"{settings.app_name} shut down")


app = FastAPI(
    title=APP_NAME,
    description="Provision and tear down per-attendee Azure lab environments",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(attendees.router)
app.include_router(resources.router)
app.include_router(event_hub.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": APP_NAME}


@app.get("/config")
async def config(orchestrator: LabOrchestrator = Depends(get_orchestrator)):
    """Subscription details and settings, with the SQL password masked."""
    return await orchestrator.describe()
