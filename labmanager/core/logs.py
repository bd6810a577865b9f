"""Logging setup shared by the console and the HTTP entry points."""
import logging
from pathlib import Path


def configure_logging(debug: bool = False) -> Path:
    """Send log records to ~/.logs/labmanager/latest.log and return that path."""
    log_dir = Path.home() / ".logs" / "labmanager"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "latest.log"

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        filename=str(log_file),
    )
    # The Azure SDK logs every HTTP request at INFO
    logging.getLogger("azure").setLevel(logging.WARNING)
    return log_file
