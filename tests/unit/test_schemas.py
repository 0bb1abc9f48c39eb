"""Tests for core data models."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from sitewatch.core.schemas import (
    BulkJob,
    JobStatus,
    ProjectStatusOption,
    SearchQuery,
    StatusFilter,
    WebsiteRecord,
    WebVitals,
    hostname_of,
    validate_url,
)


def _record(**kw: object) -> WebsiteRecord:
    defaults: dict[str, object] = {
        "id": 1,
        "url": "https://example.com",
        "display_name": "Example",
    }
    defaults.update(kw)
    return WebsiteRecord(**defaults)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# URLs
# ---------------------------------------------------------------------------


class TestValidateUrl:
    def test_https_accepted(self) -> None:
        assert validate_url("  https://example.com/path  ") == "https://example.com/path"

    def test_http_accepted(self) -> None:
        assert validate_url("http://example.com") == "http://example.com"

    @pytest.mark.parametrize("url", ["example.com", "ftp://example.com", "https://", "", "   "])
    def test_rejected(self, url: str) -> None:
        with pytest.raises(ValueError, match="invalid website URL"):
            validate_url(url)

    def test_hostname_of(self) -> None:
        assert hostname_of("https://shop.example.com:8080/a?b=c") == "shop.example.com"


# ---------------------------------------------------------------------------
# WebsiteRecord
# ---------------------------------------------------------------------------


class TestWebsiteRecord:
    def test_defaults(self) -> None:
        r = _record()
        assert r.http_status is None
        assert r.vitals is None
        assert r.is_capturing is False
        assert r.industry == "general"
        assert r.project_status == "wip"
        assert r.favorite is False
        assert r.is_wordpress is None

    def test_frozen(self) -> None:
        r = _record()
        with pytest.raises(ValidationError):
            r.favorite = True  # type: ignore[misc]

    def test_invalid_url_rejected(self) -> None:
        with pytest.raises(ValidationError, match="invalid website URL"):
            _record(url="not a url")

    def test_blank_name_rejected(self) -> None:
        with pytest.raises(ValidationError, match="must not be empty"):
            _record(display_name="   ")

    def test_id_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            _record(id=0)

    def test_to_storage_drops_transient_flag(self) -> None:
        r = _record(is_capturing=True, notes={"general": {"text": "hi"}})
        data = r.to_storage()
        assert "is_capturing" not in data
        assert data["notes"] == {"general": {"text": "hi"}}

    def test_notes_round_trip_nested(self) -> None:
        notes = {"access": [{"host": "ftp", "user": "a"}], "dns": {"history": []}}
        r = _record(notes=notes)
        assert WebsiteRecord.model_validate(r.model_dump()).notes == notes

    def test_vitals_non_negative(self) -> None:
        with pytest.raises(ValidationError):
            WebVitals(lcp=-1.0)


# ---------------------------------------------------------------------------
# ProjectStatusOption
# ---------------------------------------------------------------------------


class TestProjectStatusOption:
    @pytest.mark.parametrize("color", ["#abc", "#A4A4A4"])
    def test_hex_color_accepted(self, color: str) -> None:
        assert ProjectStatusOption(value="x", label="X", color=color).color == color

    @pytest.mark.parametrize("color", ["red", "#12345", "#ggg", "A4A4A4", ""])
    def test_bad_color_rejected(self, color: str) -> None:
        with pytest.raises(ValidationError, match="invalid color"):
            ProjectStatusOption(value="x", label="X", color=color)


# ---------------------------------------------------------------------------
# BulkJob
# ---------------------------------------------------------------------------


class TestBulkJob:
    def test_default_is_idle(self) -> None:
        job = BulkJob()
        assert job.status is JobStatus.IDLE
        assert job.is_active is False

    def test_completed_cannot_exceed_total(self) -> None:
        with pytest.raises(ValidationError, match="exceeds total"):
            BulkJob(total=2, completed=3)

    @pytest.mark.parametrize(
        ("status", "active"),
        [
            (JobStatus.IDLE, False),
            (JobStatus.RUNNING, True),
            (JobStatus.CANCELLING, True),
            (JobStatus.COMPLETE, False),
        ],
    )
    def test_is_active(self, status: JobStatus, active: bool) -> None:
        assert BulkJob(status=status).is_active is active

    def test_degraded_only_when_complete_with_errors(self) -> None:
        assert BulkJob(status=JobStatus.COMPLETE, errors=["x"]).degraded is True
        assert BulkJob(status=JobStatus.COMPLETE).degraded is False
        assert BulkJob(status=JobStatus.RUNNING, errors=["x"]).degraded is False

    def test_started_at(self) -> None:
        now = datetime.now()
        assert BulkJob(started_at=now).started_at == now


# ---------------------------------------------------------------------------
# SearchQuery
# ---------------------------------------------------------------------------


class TestSearchQuery:
    def test_defaults_have_no_criteria(self) -> None:
        assert SearchQuery().has_criteria() is False

    def test_whitespace_query_has_no_criteria(self) -> None:
        assert SearchQuery(query="   ").has_criteria() is False

    def test_blank_filters_mean_all(self) -> None:
        q = SearchQuery(industry="  ", project_status="")
        assert q.industry == "all"
        assert q.project_status == "all"
        assert q.has_criteria() is False

    @pytest.mark.parametrize(
        "kw",
        [
            {"query": "shop"},
            {"status": "online"},
            {"project_status": "live"},
            {"industry": "finance"},
            {"favorite": False},
            {"is_wordpress": True},
        ],
    )
    def test_any_active_filter_counts(self, kw: dict[str, object]) -> None:
        assert SearchQuery(**kw).has_criteria() is True  # type: ignore[arg-type]

    def test_status_parsed_from_string(self) -> None:
        assert SearchQuery(status="offline").status is StatusFilter.OFFLINE

    def test_unknown_status_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SearchQuery(status="sideways")  # type: ignore[arg-type]

    def test_limit_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            SearchQuery(limit=0)

    def test_text_is_stripped(self) -> None:
        assert SearchQuery(query="  shop  ").text == "shop"
