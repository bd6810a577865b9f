"""Tests for loading settings."""

import json

import pytest

from labmanager.core.config import load_settings
from labmanager.core.exceptions import ConfigurationError

VALID = {
    "resource_group_name": "lab-rg",
    "resource_region_name": "eastus2",
    "sql_database": {"server_name": "sqlws", "username": "labadmin", "password": "secret"},
    "event_hub": {
        "namespace_name": "cesws",
        "event_hub_name": "ces-hub",
        "policy_name": "ces-policy",
        "sas_token_expiration_days": "7",
    },
    "storage": {"account_name": "sqlws", "container_name": "lab"},
    "adventure_works": {
        "resource_group_name": "shared-rg",
        "storage_account_name": "sharedstore",
        "bacpac_uri": "https://sharedstore.blob.core.windows.net/bacpac/aw.bacpac",
    },
}


def _write(tmp_path, data) -> str:
    path = tmp_path / "appsettings.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestLoadSettings:
    """Tests for load_settings."""

    def test_valid_file(self, tmp_path):
        settings = load_settings(_write(tmp_path, VALID))

        assert settings.resource_group_name == "lab-rg"
        assert settings.event_hub.sas_token_expiration_days == 7
        assert settings.max_parallelism == 6
        assert settings.sql_database.database_name == "AdventureWorks2022"
        assert settings.sql_database.password.get_secret_value() == "secret"

    def test_roster_path_relative_to_settings_file(self, tmp_path):
        settings = load_settings(_write(tmp_path, VALID))
        assert settings.roster_path == tmp_path / "Attendees.csv"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_settings(tmp_path / "appsettings.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "appsettings.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="not valid JSON"):
            load_settings(path)

    def test_not_an_object(self, tmp_path):
        with pytest.raises(ConfigurationError, match="JSON object"):
            load_settings(_write(tmp_path, ["a", "b"]))

    def test_missing_required_setting(self, tmp_path):
        data = {key: value for key, value in VALID.items() if key != "resource_group_name"}
        with pytest.raises(ConfigurationError, match="resource_group_name"):
            load_settings(_write(tmp_path, data))

    @pytest.mark.parametrize("days", ["soon", 0, -1])
    def test_expiry_days_must_be_positive_integer(self, tmp_path, days):
        data = json.loads(json.dumps(VALID))
        data["event_hub"]["sas_token_expiration_days"] = days
        with pytest.raises(ConfigurationError):
            load_settings(_write(tmp_path, data))

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LAB_MAX_PARALLELISM", "3")
        monkeypatch.setenv("LAB_SQL_DATABASE__PASSWORD", "from-env")

        settings = load_settings(_write(tmp_path, VALID))
        assert settings.max_parallelism == 3
        assert settings.sql_database.password.get_secret_value() == "from-env"

    def test_password_masked_in_dump(self, tmp_path):
        settings = load_settings(_write(tmp_path, VALID))
        dumped = settings.model_dump(mode="json")
        assert dumped["sql_database"]["password"] != "secret"

    def test_consumer_groups_optional(self, tmp_path):
        assert load_settings(_write(tmp_path, VALID)).consumer_groups is None

        data = dict(VALID, consumer_groups={"namespace_name": "shared-ces", "event_hub_name": "hub"})
        settings = load_settings(_write(tmp_path, data))
        assert settings.consumer_groups.namespace_name == "shared-ces"
        assert settings.consumer_groups.name_base == "cg"
