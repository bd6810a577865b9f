"""Write the per-attendee resource report."""
import csv
import io
import logging
from pathlib import Path
from typing import TextIO

from labmanager.models import REPORT_HEADER, ProvisionedAttendeeResources

logger = logging.getLogger(__name__)


def build_report_rows(results: list[ProvisionedAttendeeResources]) -> list[list[str]]:
    """Header row followed by one row per attempted attendee, sorted by attendee name."""
    ordered = sorted(results, key=lambda result: result.attendee_name)
    return [list(REPORT_HEADER)] + [result.to_row() for result in ordered]


def write_report(
    path: str | Path,
    results: list[ProvisionedAttendeeResources],
    stream: TextIO | None = None,
) -> list[list[str]]:
    """
    Write the report CSV, replacing any previous file at path.

    Attendees that only partly provisioned keep their row, with empty fields
    for what failed and the messages in the Errors column. When stream is
    given, the rows are also echoed there, numbered.

    Returns:
        The rows written, header first.
    """
    rows = build_report_rows(results)
    path = Path(path)

    with path.open("w", newline="", encoding="utf-8") as f:
        csv.writer(f).writerows(rows)

    if stream is not None:
        print(file=stream)
        for number, row in enumerate(rows, start=1):
            print(f"{number:3}. {_csv_line(row)}", file=stream)
        print(file=stream)

    logger.info(f"Wrote {len(rows) - 1} attendee row(s) to {path}")
    return rows


def _csv_line(row: list[str]) -> str:
    line = io.StringIO()
    csv.writer(line, lineterminator="").writerow(row)
    return line.getvalue()
