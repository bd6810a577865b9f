"""Tests for the attendee resource report."""

import csv
import io

from labmanager.models import REPORT_HEADER, ProvisionedAttendeeResources
from labmanager.provisioning.report import build_report_rows, write_report


def _result(name: str, **fields) -> ProvisionedAttendeeResources:
    return ProvisionedAttendeeResources(attendee_name=name, **fields)


class TestBuildReportRows:
    """Tests for build_report_rows."""

    def test_sorted_by_attendee_name(self):
        rows = build_report_rows([_result("bob"), _result("alice"), _result("carol")])
        assert rows[0] == REPORT_HEADER
        assert [row[0] for row in rows[1:]] == ["alice", "bob", "carol"]

    def test_partial_row_kept(self):
        partial = _result(
            "bob",
            event_hub_namespace_name="cesws-bob",
            errors={"SqlDatabaseServerName": "Too many requests"},
        )
        rows = build_report_rows([partial])
        assert rows[1] == [
            "bob",
            "",
            "cesws-bob",
            "",
            "",
            "SqlDatabaseServerName: Too many requests",
        ]

    def test_empty(self):
        assert build_report_rows([]) == [REPORT_HEADER]


class TestWriteReport:
    """Tests for write_report."""

    def test_overwrites_previous_file(self, tmp_path):
        path = tmp_path / "AttendeeResources.csv"
        path.write_text("stale,data\n" * 10, encoding="utf-8")

        write_report(path, [_result("alice", sql_database_server_name="sqlws-alice")])

        with path.open(newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows == [REPORT_HEADER, ["alice", "sqlws-alice", "", "", "", ""]]

    def test_quotes_fields_with_commas(self, tmp_path):
        path = tmp_path / "report.csv"
        write_report(path, [_result("alice", errors={"EventHubSasToken": "bad, really bad"})])

        with path.open(newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows[1][5] == "EventHubSasToken: bad, really bad"

    def test_echoes_numbered_rows(self, tmp_path):
        out = io.StringIO()
        write_report(tmp_path / "report.csv", [_result("bob"), _result("alice")], stream=out)

        lines = [line for line in out.getvalue().splitlines() if line]
        assert lines[0].startswith("  1. AttendeeName,")
        assert lines[1].startswith("  2. alice,")
        assert lines[2].startswith("  3. bob,")

    def test_echo_quotes_fields_with_commas(self, tmp_path):
        out = io.StringIO()
        write_report(
            tmp_path / "report.csv",
            [_result("alice", errors={"EventHubSasToken": "bad, really bad"})],
            stream=out,
        )

        line = [line for line in out.getvalue().splitlines() if line][1]
        number, _, echoed = line.partition(". ")
        assert number.strip() == "2"
        assert next(csv.reader([echoed]))[5] == "EventHubSasToken: bad, really bad"
