"""Configuration models and YAML loader for the website health dashboard."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


class StorageConfig(BaseModel):
    """Where the local engine keeps the registry."""

    path: str = "data/websites.db"


class SyncConfig(BaseModel):
    """Persistence synchronizer timing."""

    debounce_ms: int = Field(default=150, ge=0, le=5000)


class JobConfig(BaseModel):
    """Bulk job timing."""

    completion_grace_ms: int = Field(default=2000, ge=0)


class NotificationConfig(BaseModel):
    """Lifetime of user-visible notifications."""

    ttl_ms: int = Field(default=5000, ge=0)


class SearchSettings(BaseModel):
    """Search box behaviour: debounce, suggestions, result caps."""

    debounce_ms: int = Field(default=300, ge=0)
    min_suggestion_length: int = Field(default=2, ge=1)
    suggestion_limit: int = Field(default=10, ge=1)
    default_limit: int | None = Field(default=None, ge=1)
    quick_limit: int = Field(default=5, ge=1)


class BrowserConfig(BaseModel):
    """Screenshot browser configuration."""

    headless: bool = True
    timeout_ms: int = Field(default=30000, ge=1000)
    settle_ms: int = Field(default=3000, ge=0)
    capture_delay_ms: int = Field(default=1000, ge=0)
    viewport_width: int = Field(default=1280, ge=320)
    viewport_height: int = Field(default=800, ge=240)


class CheckConfig(BaseModel):
    """HTTP status check configuration."""

    timeout_s: float = Field(default=10.0, gt=0)
    user_agent: str = DEFAULT_USER_AGENT

    @field_validator("user_agent")
    @classmethod
    def user_agent_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "user_agent must not be empty"
            raise ValueError(msg)
        return v.strip()


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    jobs: JobConfig = Field(default_factory=JobConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    search: SearchSettings = Field(default_factory=SearchSettings)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    checks: CheckConfig = Field(default_factory=CheckConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
