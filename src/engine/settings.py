# src/engine/settings.py
"""
Runtime configuration. Values come from an optional YAML file (path in
SCAN_SUPERVISOR_CONFIG) and are overridden by environment variables.
"""
import logging
import os
from typing import Optional

import yaml
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from tools.nikto_adapter import normalize_container_dir

CONFIG_PATH_ENV = "SCAN_SUPERVISOR_CONFIG"


def _read_yaml(path: str) -> dict:
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data


class YamlConfigSource(PydanticBaseSettingsSource):
    """Settings keyed by field name in a YAML mapping."""

    def __init__(self, settings_cls, path: Optional[str] = None):
        super().__init__(settings_cls)
        self.data = _read_yaml(path) if path else {}
        if path:
            logging.info(f"Loaded settings from {path}")

    def get_field_value(self, field, field_name):
        return self.data.get(field_name), field_name, False

    def __call__(self) -> dict:
        values = {}
        for field_name, field in self.settings_cls.model_fields.items():
            value, key, _ = self.get_field_value(field, field_name)
            if value is not None:
                values[key] = value
        return values


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_ignore_empty=True,
        populate_by_name=True,
        extra="ignore",
    )

    # first variable set wins; the legacy NIKTO_* names are fallbacks
    output_dir: str = Field(
        "/scans",
        validation_alias=AliasChoices("CYBERSEC_OUTPUT_DIR", "NIKTO_OUTPUT_DIR"),
        description="Host-visible report directory",
    )
    scanner_container: str = Field(
        "cybersec_scanner",
        validation_alias=AliasChoices("CYBERSEC_CONTAINER", "NIKTO_CONTAINER"),
        description="Container running the scanner",
    )
    container_output_dir: str = Field(
        "/scans",
        validation_alias=AliasChoices("CYBERSEC_CONTAINER_OUTPUT_DIR", "NIKTO_CONTAINER_OUTPUT_DIR"),
        description="Report directory as seen inside the container",
    )
    docker_binary: str = Field("docker", validation_alias="CYBERSEC_DOCKER_BINARY")
    scanner_command: str = Field("nikto.pl", validation_alias="CYBERSEC_SCANNER_COMMAND")
    log_buffer_size: int = Field(1000, ge=1, validation_alias="CYBERSEC_LOG_BUFFER_SIZE")
    subscriber_queue_size: int = Field(5000, ge=0, validation_alias="CYBERSEC_SUBSCRIBER_QUEUE_SIZE")
    carry_partial_lines: bool = Field(False, validation_alias="CYBERSEC_CARRY_PARTIAL_LINES")
    job_retention_seconds: Optional[float] = Field(None, gt=0, validation_alias="CYBERSEC_JOB_RETENTION_SECONDS")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    port: int = Field(2609, validation_alias="PORT")

    @field_validator("container_output_dir")
    @classmethod
    def _normalize_container_dir(cls, value):
        return normalize_container_dir(value)

    @property
    def resolved_output_dir(self) -> str:
        return os.path.abspath(self.output_dir)

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings,
                                   dotenv_settings, file_secret_settings):
        path = settings_cls.model_config.get("yaml_file") or os.environ.get(CONFIG_PATH_ENV)
        return init_settings, env_settings, YamlConfigSource(settings_cls, path)


def load_settings(config_path: str = None) -> Settings:
    """Build settings; an explicit config_path replaces SCAN_SUPERVISOR_CONFIG."""
    if not config_path:
        return Settings()

    class FileSettings(Settings):
        model_config = SettingsConfigDict(yaml_file=config_path)

    return FileSettings()
