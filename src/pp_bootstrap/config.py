"""
Configuration management for the bootstrap tool.
Loads settings from environment, YAML config files, and CLI overrides.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

DATAVERSE_CONNECTOR = "shared_commondataserviceforapps"
SHAREPOINT_CONNECTOR = "shared_sharepointonline"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class Credentials(BaseModel):
    """Service-principal credentials plus the target environment."""

    model_config = {"frozen": True}

    environment_url: str = Field(default="", description="Environment name/GUID or Dataverse instance URL")
    tenant_id: str = Field(default="")
    client_id: str = Field(default="")
    client_secret: str = Field(default="", repr=False)

    @field_validator("environment_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str:
        return (v or "").strip().rstrip("/")

    def missing_fields(self) -> list[str]:
        return [name for name in ("environment_url", "tenant_id", "client_id", "client_secret") if not getattr(self, name)]


class ConnectionSpec(BaseModel):
    """How one connection is looked up and, if absent, created.

    ``parameters`` values are templates formatted with the credentials, e.g.
    ``"{client_id}"``.
    """

    connector: str
    display_name: str
    parameters: dict[str, str] = Field(default_factory=dict)


def _default_dataverse() -> ConnectionSpec:
    return ConnectionSpec(
        connector=DATAVERSE_CONNECTOR,
        display_name="Dataverse (service principal)",
        parameters={
            "token:grantType": "client_credentials",
            "token:clientId": "{client_id}",
            "token:clientSecret": "{client_secret}",
            "token:TenantId": "{tenant_id}",
        },
    )


def _default_sharepoint() -> ConnectionSpec:
    return ConnectionSpec(connector=SHAREPOINT_CONNECTOR, display_name="SharePoint Online")


class ConnectionsConfig(BaseModel):
    dataverse: ConnectionSpec = Field(default_factory=_default_dataverse)
    sharepoint: ConnectionSpec = Field(default_factory=_default_sharepoint)


class BootstrapConfig(BaseModel):
    """Root configuration for an environment bootstrap run."""

    credentials: Credentials = Field(default_factory=Credentials)
    connections: ConnectionsConfig = Field(default_factory=ConnectionsConfig)
    settings_path: Path | None = Field(default=None, description="Deployment settings JSON to patch")
    case_sensitive_match: bool = Field(
        default=True,
        description="Match connection-reference logical names case-sensitively",
    )
    log_level: LogLevel = Field(default=LogLevel.INFO)

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: object) -> object:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("settings_path", mode="before")
    @classmethod
    def resolve_path(cls, v: str | Path | None) -> Path | None:
        if v is None or v == "":
            return None
        return Path(v)

    @classmethod
    def from_yaml(cls, path: Path) -> BootstrapConfig:
        """Load configuration from a YAML file, with env var overrides."""
        if path.exists():
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        else:
            data = {}

        data = cls._apply_env_overrides(data)
        return cls(**data)

    @classmethod
    def _apply_env_overrides(cls, data: dict) -> dict:
        """Apply environment variable overrides to config data."""
        env_map = {
            "credentials": {
                "environment_url": "PP_ENVIRONMENT_URL",
                "tenant_id": "AZURE_TENANT_ID",
                "client_id": "AZURE_CLIENT_ID",
                "client_secret": "AZURE_CLIENT_SECRET",
            },
        }

        for section, mappings in env_map.items():
            if not isinstance(data.get(section), dict):
                data[section] = {}
            for key, env_var in mappings.items():
                val = os.environ.get(env_var)
                if val:
                    data[section][key] = val

        if os.environ.get("PP_DEPLOYMENT_SETTINGS_PATH"):
            data["settings_path"] = os.environ["PP_DEPLOYMENT_SETTINGS_PATH"]
        if os.environ.get("LOG_LEVEL"):
            data["log_level"] = os.environ["LOG_LEVEL"]

        return data

    def with_credentials(self, **overrides: str | None) -> BootstrapConfig:
        """Return a copy whose credentials take any non-empty *overrides*."""
        values = self.credentials.model_dump()
        values.update({k: v for k, v in overrides.items() if v})
        return self.model_copy(update={"credentials": Credentials(**values)})


def load_config(config_path: Path | None = None) -> BootstrapConfig:
    """Load bootstrap config from YAML file with env overrides."""
    path = config_path or Path("bootstrap_config.yaml")
    return BootstrapConfig.from_yaml(path)
