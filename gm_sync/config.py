"""
Configuration loading and validation.

Loads sync configuration from a YAML file with environment variable
resolution for secrets (API tokens are never stored in config files).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


class DirectoryConfig(BaseModel):
    api_url: str = "https://api.snyk.io/v1"
    rest_url: str = "https://api.snyk.io/rest"
    group_id: str = ""
    api_token_env: str = "SNYK_TOKEN"
    verify_tls: bool = True
    request_timeout_seconds: int = 30
    user_agent_prefix: str = "snyk-user-sync-tool"

    @property
    def api_token(self) -> str | None:
        return os.environ.get(self.api_token_env)


class TransportConfig(BaseModel):
    max_retries: int = Field(default=5, ge=1)
    retry_base_seconds: float = Field(default=1.0, ge=0)
    burst_size: int = Field(default=1, ge=1)
    period_seconds: float = Field(default=1.0, gt=0)


class SyncConfig(BaseModel):
    auto_provision: bool = False
    dry_run: bool = False
    invite_to_all_orgs: bool = False
    add_new: bool = True
    delete_missing: bool = True
    concurrency: int = Field(default=10, ge=1)


class LoggingConfig(BaseModel):
    level: str = "info"
    format: Literal["json", "text"] = "text"


class MetricsConfig(BaseModel):
    textfile_path: Optional[str] = None


class AppConfig(BaseModel):
    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


def load_config(path: str | Path) -> AppConfig:
    """Load and validate sync configuration from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return AppConfig.model_validate(raw)
