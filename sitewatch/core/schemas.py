"""Core data models for the website health dashboard."""

import re
from datetime import datetime
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

INDUSTRIES: tuple[str, ...] = (
    "general",
    "ecommerce",
    "finance",
    "healthcare",
    "education",
    "technology",
    "media",
    "travel",
    "government",
    "nonprofit",
)

ALL = "all"

HEX_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def validate_url(url: str) -> str:
    """Return the stripped URL if it is http(s) with a host, else raise ValueError."""
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        msg = f"invalid website URL: '{url}' (expected http:// or https:// with a host)"
        raise ValueError(msg)
    return url


def hostname_of(url: str) -> str:
    """Hostname of an already validated URL, used as the default display name."""
    return urlparse(url).hostname or url


class WebVitals(BaseModel):
    """Performance metrics in milliseconds (CLS is unitless)."""

    model_config = ConfigDict(frozen=True)

    lcp: float = Field(default=0.0, ge=0.0)
    fid: float = Field(default=0.0, ge=0.0)
    cls: float = Field(default=0.0, ge=0.0)
    fcp: float = Field(default=0.0, ge=0.0)
    ttfb: float = Field(default=0.0, ge=0.0)


class WebsiteRecord(BaseModel):
    """One tracked website.

    Frozen; the registry store swaps whole records instead of mutating them.
    ``is_capturing`` is transient and never written to storage.
    ``screenshot_at`` is when ``screenshot`` was taken; storage uses it to
    keep a newer capture over a stale copy of the record.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=1)
    url: str
    display_name: str
    http_status: int | None = Field(default=None, ge=0, le=999)
    vitals: WebVitals | None = None
    last_checked_at: datetime | None = None
    screenshot: str | None = None
    screenshot_at: datetime | None = None
    is_capturing: bool = False
    industry: str = "general"
    project_status: str = "wip"
    favorite: bool = False
    is_wordpress: bool | None = None
    notes: dict[str, Any] | None = None

    @field_validator("url")
    @classmethod
    def url_is_http(cls, v: str) -> str:
        return validate_url(v)

    @field_validator("display_name", "industry", "project_status")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            msg = "must not be empty"
            raise ValueError(msg)
        return v.strip()

    def to_storage(self) -> dict[str, Any]:
        """JSON-compatible dict without transient fields."""
        return self.model_dump(mode="json", exclude={"is_capturing"})


class CheckResult(BaseModel):
    """Outcome of a single HTTP check."""

    model_config = ConfigDict(frozen=True)

    status: int = Field(ge=0, le=999)
    vitals: WebVitals = Field(default_factory=WebVitals)
    is_wordpress: bool | None = None


class ScreenshotProgress(BaseModel):
    """Snapshot emitted by the engine while a bulk capture runs."""

    model_config = ConfigDict(frozen=True)

    total: int = Field(default=0, ge=0)
    completed: int = Field(default=0, ge=0)
    current_website: str = ""
    current_id: int | None = None
    is_complete: bool = False
    errors: list[str] = Field(default_factory=list)


class JobStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    CANCELLING = "cancelling"
    COMPLETE = "complete"


class BulkJob(BaseModel):
    """State of the single exclusive bulk operation."""

    model_config = ConfigDict(frozen=True)

    status: JobStatus = JobStatus.IDLE
    total: int = Field(default=0, ge=0)
    completed: int = Field(default=0, ge=0)
    current_target: str | None = None
    current_id: int | None = None
    errors: list[str] = Field(default_factory=list)
    started_at: datetime | None = None

    @model_validator(mode="after")
    def completed_within_total(self) -> "BulkJob":
        if self.completed > self.total:
            msg = f"completed ({self.completed}) exceeds total ({self.total})"
            raise ValueError(msg)
        return self

    @property
    def is_active(self) -> bool:
        return self.status in (JobStatus.RUNNING, JobStatus.CANCELLING)

    @property
    def degraded(self) -> bool:
        """Completed, but at least one item failed."""
        return self.status is JobStatus.COMPLETE and bool(self.errors)


class StatusFilter(str, Enum):
    """HTTP status buckets: online = 200, offline = any other code, unknown = unchecked."""

    ALL = "all"
    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


class SearchQuery(BaseModel):
    """Free-text term plus a compound filter. ``None``/``"all"`` mean inactive."""

    model_config = ConfigDict(frozen=True)

    query: str = Field(default="", max_length=500)
    status: StatusFilter = StatusFilter.ALL
    project_status: str = ALL
    industry: str = ALL
    favorite: bool | None = None
    is_wordpress: bool | None = None
    limit: int | None = Field(default=None, ge=1)

    @field_validator("project_status", "industry")
    @classmethod
    def blank_means_all(cls, v: str) -> str:
        v = v.strip()
        return v or ALL

    @property
    def text(self) -> str:
        return self.query.strip()

    def has_criteria(self) -> bool:
        """True when the text term or any filter is active."""
        return bool(
            self.text
            or self.status is not StatusFilter.ALL
            or self.project_status != ALL
            or self.industry != ALL
            or self.favorite is not None
            or self.is_wordpress is not None
        )


class SearchResult(BaseModel):
    """Ranked, possibly truncated subset of the registry."""

    matches: list[WebsiteRecord] = Field(default_factory=list)
    total_count: int = 0
    has_more: bool = False


class SearchStats(BaseModel):
    """Registry-wide counters used to populate filter menus."""

    total_websites: int = 0
    online_count: int = 0
    offline_count: int = 0
    unknown_count: int = 0
    wordpress_count: int = 0
    favorite_count: int = 0
    industries: list[str] = Field(default_factory=list)
    project_statuses: list[str] = Field(default_factory=list)


class ProjectStatusOption(BaseModel):
    """A selectable project status (built-in or user-defined)."""

    model_config = ConfigDict(frozen=True)

    value: str
    label: str
    color: str = "#A4A4A4"

    @field_validator("color")
    @classmethod
    def color_is_hex(cls, v: str) -> str:
        if not HEX_COLOR_RE.match(v):
            msg = f"invalid color '{v}' (expected #rgb or #rrggbb)"
            raise ValueError(msg)
        return v
