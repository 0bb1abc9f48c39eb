"""Search/filter engine over a registry snapshot.

Filter order:
  1. TextFilter: name or URL contains the term, case-insensitive
  2. HttpStatusFilter: online (200) / offline (other code) / unknown (unchecked)
  3. ProjectStatusFilter: exact project status
  4. IndustryFilter: exact industry
  5. FavoriteFilter: favorite flag
  6. PlatformFilter: WordPress detected (unchecked sites never match)

Inactive filters pass everything through; active ones are ANDed. A query
with no active criteria returns an empty result, never the whole registry.
"""

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from sitewatch.core.config import SearchSettings
from sitewatch.core.errors import InvalidInputError
from sitewatch.core.schemas import (
    ALL,
    INDUSTRIES,
    SearchQuery,
    SearchResult,
    SearchStats,
    StatusFilter,
    WebsiteRecord,
)
from sitewatch.registry.store import RegistryStore

logger = logging.getLogger(__name__)

# A filter is a callable that takes records and returns a subset.
Filter = Callable[[list[WebsiteRecord]], list[WebsiteRecord]]


class TextFilter:
    """Keep records whose display name or URL contains the term (case-insensitive)."""

    def __init__(self, term: str) -> None:
        self._term = term.strip().casefold()

    def __call__(self, records: list[WebsiteRecord]) -> list[WebsiteRecord]:
        if not self._term:
            return records
        result = [
            r for r in records
            if self._term in r.display_name.casefold() or self._term in r.url.casefold()
        ]
        logger.debug("TextFilter: %d of %d match '%s'", len(result), len(records), self._term)
        return result


class HttpStatusFilter:
    def __init__(self, status: StatusFilter) -> None:
        self._status = status

    def __call__(self, records: list[WebsiteRecord]) -> list[WebsiteRecord]:
        if self._status is StatusFilter.ALL:
            return records
        return [r for r in records if status_bucket(r.http_status) is self._status]


class ProjectStatusFilter:
    def __init__(self, project_status: str) -> None:
        self._value = project_status

    def __call__(self, records: list[WebsiteRecord]) -> list[WebsiteRecord]:
        if self._value == ALL:
            return records
        return [r for r in records if r.project_status == self._value]


class IndustryFilter:
    def __init__(self, industry: str) -> None:
        self._value = industry

    def __call__(self, records: list[WebsiteRecord]) -> list[WebsiteRecord]:
        if self._value == ALL:
            return records
        return [r for r in records if r.industry == self._value]


class FavoriteFilter:
    def __init__(self, favorite: bool | None) -> None:
        self._favorite = favorite

    def __call__(self, records: list[WebsiteRecord]) -> list[WebsiteRecord]:
        if self._favorite is None:
            return records
        return [r for r in records if r.favorite == self._favorite]


class PlatformFilter:
    """Match the detected-WordPress flag exactly; records never checked are excluded."""

    def __init__(self, is_wordpress: bool | None) -> None:
        self._is_wordpress = is_wordpress

    def __call__(self, records: list[WebsiteRecord]) -> list[WebsiteRecord]:
        if self._is_wordpress is None:
            return records
        return [r for r in records if r.is_wordpress is self._is_wordpress]


def status_bucket(http_status: int | None) -> StatusFilter:
    if http_status is None:
        return StatusFilter.UNKNOWN
    return StatusFilter.ONLINE if http_status == 200 else StatusFilter.OFFLINE


def build_filters(query: SearchQuery) -> list[Filter]:
    return [
        TextFilter(query.text),
        HttpStatusFilter(query.status),
        ProjectStatusFilter(query.project_status),
        IndustryFilter(query.industry),
        FavoriteFilter(query.favorite),
        PlatformFilter(query.is_wordpress),
    ]


def run_filter_chain(
    records: list[WebsiteRecord],
    filters: list[Filter],
) -> list[WebsiteRecord]:
    """Apply filters in order, returning the surviving records."""
    result = records
    for f in filters:
        result = f(result)
    return result


def _text_tier(record: WebsiteRecord, term: str) -> int:
    """0 exact name, 1 name prefix, 2 name substring, 3 anything else."""
    if not term:
        return 0
    name = record.display_name.casefold()
    if name == term:
        return 0
    if name.startswith(term):
        return 1
    if term in name:
        return 2
    return 3


def rank(records: list[WebsiteRecord], term: str = "") -> list[WebsiteRecord]:
    """Favorites first, then text relevance, then name (case-insensitive)."""
    term = term.strip().casefold()
    return sorted(
        records,
        key=lambda r: (not r.favorite, _text_tier(r, term), r.display_name.casefold()),
    )


def evaluate(records: Iterable[WebsiteRecord], query: SearchQuery) -> SearchResult:
    """Filter, rank and cap ``records``. Stateless; works on any snapshot."""
    if not query.has_criteria():
        return SearchResult()

    matches = rank(run_filter_chain(list(records), build_filters(query)), query.text)
    total = len(matches)
    has_more = query.limit is not None and total > query.limit
    if has_more:
        matches = matches[: query.limit]
    return SearchResult(matches=matches, total_count=total, has_more=has_more)


def suggest(
    records: Iterable[WebsiteRecord],
    prefix: str,
    *,
    min_length: int = 2,
    limit: int = 10,
) -> list[str]:
    """Completions drawn from names, URLs and industries containing ``prefix``.

    Deduplicated; prefix matches come first, then alphabetical order.
    """
    term = prefix.strip().casefold()
    if len(term) < min_length:
        return []

    candidates: set[str] = set()
    for record in records:
        for value in (record.display_name, record.url, record.industry):
            if term in value.casefold():
                candidates.add(value)
    for industry in INDUSTRIES:
        if term in industry:
            candidates.add(industry)

    ordered = sorted(candidates, key=lambda s: (not s.casefold().startswith(term), s.casefold(), s))
    return ordered[:limit]


def compute_stats(records: Iterable[WebsiteRecord]) -> SearchStats:
    records = list(records)
    buckets = [status_bucket(r.http_status) for r in records]
    return SearchStats(
        total_websites=len(records),
        online_count=buckets.count(StatusFilter.ONLINE),
        offline_count=buckets.count(StatusFilter.OFFLINE),
        unknown_count=buckets.count(StatusFilter.UNKNOWN),
        wordpress_count=sum(1 for r in records if r.is_wordpress),
        favorite_count=sum(1 for r in records if r.favorite),
        industries=sorted({r.industry for r in records}),
        project_statuses=sorted({r.project_status for r in records}),
    )


class SearchEngine:
    """Evaluates queries against the live registry store.

    Holds no state of its own beyond settings; every call reads a fresh
    snapshot, so results always reflect the registry at call time.
    """

    def __init__(self, store: RegistryStore, settings: SearchSettings | None = None) -> None:
        self._store = store
        self._settings = settings or SearchSettings()

    def evaluate(self, query: SearchQuery | Mapping[str, Any]) -> SearchResult:
        query = parse_query(query)
        if query.limit is None and self._settings.default_limit is not None:
            query = query.model_copy(update={"limit": self._settings.default_limit})
        result = evaluate(self._store.snapshot(), query)
        logger.debug("Search '%s': %d matches", query.text, result.total_count)
        return result

    def quick_search(self, text: str) -> SearchResult:
        """Text-only search capped at the quick-result limit."""
        return self.evaluate({"query": text, "limit": self._settings.quick_limit})

    def suggest(self, prefix: str) -> list[str]:
        return suggest(
            self._store.snapshot(),
            prefix,
            min_length=self._settings.min_suggestion_length,
            limit=self._settings.suggestion_limit,
        )

    def stats(self) -> SearchStats:
        return compute_stats(self._store.snapshot())


def parse_query(query: SearchQuery | Mapping[str, Any]) -> SearchQuery:
    """Accept a SearchQuery or a plain mapping; malformed input raises InvalidInputError."""
    if isinstance(query, SearchQuery):
        return query
    try:
        return SearchQuery.model_validate(dict(query))
    except ValidationError as e:
        msg = f"malformed search query: {e}"
        raise InvalidInputError(msg) from e
