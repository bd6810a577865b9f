"""Parse the attendee roster file."""
import logging
from pathlib import Path

from labmanager.core.config import Settings
from labmanager.core.exceptions import ConfigurationError
from labmanager.models import AttendeeRecord
from labmanager.provisioning.naming import check_distinct_resource_names

logger = logging.getLogger(__name__)

COMMENT_MARKER = "#"


def parse_roster(lines) -> list[AttendeeRecord]:
    """
    Parse roster lines into attendee records.

    Expected format, one attendee per line:
        # comment
        alice
        bob, bob@example.com

    Blank lines and lines starting with "#" are skipped. The optional second
    field after the first comma is the attendee's email address. Names are
    trimmed; a repeated name keeps its first occurrence. Names differing only
    in case are distinct entries here; load_roster rejects them when they
    would share resources.
    """
    attendees = []
    seen = set()

    for line in lines:
        line = line.strip()
        if not line or line.startswith(COMMENT_MARKER):
            continue

        name, _, email = line.partition(",")
        name = name.strip()
        email = email.strip() or None
        if not name:
            continue

        if name in seen:
            logger.warning(f"Duplicate attendee '{name}' in roster, keeping the first entry")
            continue
        seen.add(name)
        attendees.append(AttendeeRecord(name=name, email=email))

    return attendees


def load_roster(path: str | Path, settings: Settings | None = None) -> list[AttendeeRecord]:
    """
    Read and parse the roster file.

    When settings is given, attendees whose resource names would collide are
    rejected as well.

    Raises:
        ConfigurationError: If the file is missing or two attendees would
            share a resource.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Attendee list file not found at '{path}'")

    attendees = parse_roster(path.read_text(encoding="utf-8-sig").splitlines())
    if settings is not None:
        check_distinct_resource_names(settings, attendees)
    logger.info(f"Loaded {len(attendees)} attendee(s) from {path}")
    return attendees
