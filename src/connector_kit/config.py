"""Configuration management using Pydantic Settings.

Environment variables (a local ``.env`` file is read as well):
    CONNECTOR_KIT_API_TOKEN       bearer token used by ``push``
    CONNECTOR_KIT_PUSH_ENDPOINT   registry URL connectors are pushed to
    CONNECTOR_KIT_RECORD_MODE     record / replay / once
    CONNECTOR_KIT_CASSETTE_DIR    where recorded interactions are stored
    CONNECTOR_KIT_LOG_LEVEL       DEBUG / INFO / WARNING / ERROR
    CONNECTOR_KIT_LOG_FORMAT      console / json
    TEST_<FIELD>                  test credential for connection field <field>
"""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from dotenv import dotenv_values
from pydantic_settings import BaseSettings, SettingsConfigDict

from connector_kit.descriptor.model import ConnectorDescriptor
from connector_kit.recording.cassette import RecordMode

TEST_CREDENTIAL_PREFIX = "TEST_"


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CONNECTOR_KIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Deployment
    api_token: str | None = None
    push_endpoint: str = "https://registry.example.com/api/connectors"

    # Recording
    record_mode: RecordMode = RecordMode.ONCE
    cassette_dir: Path = Path("test/fixtures/cassettes")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None


def connection_values_from_env(
    descriptor: ConnectorDescriptor,
    environ: Mapping[str, str] | None = None,
    prefix: str = TEST_CREDENTIAL_PREFIX,
) -> dict[str, str]:
    """Collect ``TEST_<FIELD>`` values for the descriptor's connection fields.

    Without an explicit ``environ``, values come from ``.env`` overlaid by
    the process environment.
    """
    if environ is None:
        environ = {**{k: v for k, v in dotenv_values(".env").items() if v is not None}, **os.environ}

    values = {}
    for field in descriptor.connection.fields:
        value = environ.get(f"{prefix}{field.name.upper()}")
        if value:
            values[field.name] = value
    return values
