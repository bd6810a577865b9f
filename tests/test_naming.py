"""Tests for per-attendee resource naming."""

import pytest

from labmanager.core.exceptions import ConfigurationError
from labmanager.models import AttendeeRecord
from labmanager.provisioning.naming import (
    EVENTHUB_NAMESPACE_NAMING,
    SQL_SERVER_NAMING,
    STORAGE_ACCOUNT_NAMING,
    NamingScheme,
    check_distinct_resource_names,
    consumer_group_name,
)


class TestDerive:
    """Tests for deriving a resource name from base and attendee."""

    def test_hyphenated_name(self):
        assert SQL_SERVER_NAMING.derive("sqlws", "alice") == "sqlws-alice"

    def test_derive_is_stable(self):
        first = EVENTHUB_NAMESPACE_NAMING.derive("cesws", "Mary Jane")
        second = EVENTHUB_NAMESPACE_NAMING.derive("cesws", "Mary Jane")
        assert first == second == "cesws-mary-jane"

    def test_lowercases(self):
        assert SQL_SERVER_NAMING.derive("SqlWS", "ALICE") == "sqlws-alice"

    def test_collapses_separators(self):
        assert SQL_SERVER_NAMING.derive("sqlws", "o'brien  & co") == "sqlws-o-brien-co"

    def test_truncates_without_trailing_hyphen(self):
        scheme = NamingScheme(max_length=10)
        assert scheme.derive("abcd", "efgh-ijkl") == "abcd-efgh"


class TestStorageAccountNames:
    """Storage account names are lowercase alphanumerics, 24 at most."""

    @pytest.mark.parametrize(
        "attendee",
        ["alice", "Mary-Jane O'Neil", "user_with.lots+of!symbols", "x" * 40],
    )
    def test_sanitized(self, attendee):
        name = STORAGE_ACCOUNT_NAMING.derive("sqlws", attendee)
        assert name.isalnum()
        assert name == name.lower()
        assert len(name) <= 24

    def test_example(self):
        assert STORAGE_ACCOUNT_NAMING.derive("sqlws", "Mary-Jane") == "sqlwsmaryjane"

    def test_truncated_to_max_length(self):
        name = STORAGE_ACCOUNT_NAMING.derive("sqlworkshop", "a" * 30)
        assert name == "sqlworkshop" + "a" * 13


class TestMatches:
    """Tests for recognising names derived from a base."""

    def test_derived_name_matches(self):
        name = SQL_SERVER_NAMING.derive("sqlws", "alice")
        assert SQL_SERVER_NAMING.matches("sqlws", name)

    def test_unrelated_name_does_not_match(self):
        assert not SQL_SERVER_NAMING.matches("sqlws", "production-db")

    def test_base_without_separator_does_not_match(self):
        assert not SQL_SERVER_NAMING.matches("sqlws", "sqlwsextra")

    def test_storage_prefix(self):
        assert STORAGE_ACCOUNT_NAMING.matches("sql-ws", "sqlwsalice")

    def test_alphanumeric_prefix_has_no_separator(self):
        # Documented limitation: anything starting with the base matches
        assert STORAGE_ACCOUNT_NAMING.matches("lab", "laboratorylogs")


def test_consumer_group_name(settings):
    assert consumer_group_name(settings, "Mary Jane") == "cg-mary-jane"


class TestCheckDistinctResourceNames:
    """Attendees whose derived names collide are rejected."""

    def test_distinct_roster_passes(self, settings, roster):
        check_distinct_resource_names(settings, roster)

    def test_names_differing_in_case(self, settings):
        attendees = [AttendeeRecord(name="Alice"), AttendeeRecord(name="alice")]
        with pytest.raises(ConfigurationError, match="'Alice' and 'alice'.*SQL database server"):
            check_distinct_resource_names(settings, attendees)

    def test_names_differing_in_punctuation(self, settings):
        attendees = [AttendeeRecord(name="alice.smith"), AttendeeRecord(name="alicesmith")]
        with pytest.raises(ConfigurationError, match="storage account 'sqlwsalicesmith'"):
            check_distinct_resource_names(settings, attendees)

    def test_names_equal_after_truncation(self, settings):
        attendees = [AttendeeRecord(name="a" * 19 + "x"), AttendeeRecord(name="a" * 19 + "y")]
        with pytest.raises(ConfigurationError, match="storage account 'sqlws" + "a" * 19 + "'"):
            check_distinct_resource_names(settings, attendees)
