"""Lab manager configuration from a JSON settings file and environment variables."""
import json
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from labmanager.core.exceptions import ConfigurationError

DEFAULT_SETTINGS_FILE = "appsettings.json"


class SqlDatabaseSettings(BaseModel):
    """Per-attendee SQL database server and the reference database imported into it."""
    server_name: str
    username: str
    password: SecretStr
    database_name: str = "AdventureWorks2022"
    sku_name: str = "GP_S_Gen5_2"  # General Purpose serverless, 2 vCores


class EventHubSettings(BaseModel):
    """Per-attendee event hub namespace, hub and access policy."""
    namespace_name: str
    event_hub_name: str
    policy_name: str
    sas_token_expiration_days: int = Field(gt=0)
    sku_name: str = "Basic"
    retention_hours: int = Field(default=1, gt=0)


class StorageSettings(BaseModel):
    """Per-attendee storage account and blob container."""
    account_name: str
    container_name: str


class ConsumerGroupSettings(BaseModel):
    """Shared event hub on which every attendee gets a consumer group of their own."""
    namespace_name: str
    event_hub_name: str
    name_base: str = "cg"  # groups are named cg-<attendee>


class AdventureWorksSettings(BaseModel):
    """Shared location of the AdventureWorks .bacpac imported into each database."""
    resource_group_name: str
    storage_account_name: str
    bacpac_uri: str


class Settings(BaseSettings):
    """Settings loaded from appsettings.json, overridden by .env and LAB_* variables.

    Nested sections are overridden with a double underscore, for example
    LAB_SQL_DATABASE__PASSWORD.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LAB_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application
    app_name: str = "Workshop Lab Manager"
    debug: bool = False

    # Azure
    subscription_id: str = ""  # Default subscription of the signed-in identity when empty
    resource_group_name: str
    resource_region_name: str

    # Fan-out. Too many in flight gets throttled by Azure with HTTP 429.
    max_parallelism: int = Field(default=6, gt=0)

    # Files
    roster_path: Path = Path("Attendees.csv")
    report_path: Path = Path("AttendeeResources.csv")

    sql_database: SqlDatabaseSettings
    event_hub: EventHubSettings
    storage: StorageSettings
    adventure_works: AdventureWorksSettings
    consumer_groups: ConsumerGroupSettings | None = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Values read from the JSON file arrive as init kwargs and have the
        # lowest priority, so the environment can override any of them.
        return env_settings, dotenv_settings, file_secret_settings, init_settings


def load_settings(path: str | Path = DEFAULT_SETTINGS_FILE) -> Settings:
    """
    Load settings from a JSON file.

    A relative roster_path is resolved against the settings file's directory.

    Raises:
        ConfigurationError: If the file is missing, is not valid JSON, or a
            required setting is absent or has the wrong type.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Settings file not found at '{path}'")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Settings file '{path}' is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file '{path}' must contain a JSON object")

    try:
        settings = Settings(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings in '{path}': {e}") from e

    if not settings.roster_path.is_absolute():
        settings.roster_path = path.parent / settings.roster_path
    return settings
