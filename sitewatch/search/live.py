"""Call-site debouncing for the search box.

The engine is synchronous and stateless; ``LiveSearch`` sits in front of it
so a burst of keystrokes produces one evaluation of the latest input.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from sitewatch.core.debounce import Debouncer
from sitewatch.core.errors import InvalidInputError
from sitewatch.core.schemas import SearchQuery, SearchResult
from sitewatch.core.timers import Timer
from sitewatch.search.engine import SearchEngine, parse_query

logger = logging.getLogger(__name__)


class LiveSearch:
    """Debounced evaluate + suggest for interactive input.

    Usage::

        live = LiveSearch(engine, show_results, on_suggestions=show_suggestions)
        live.submit(SearchQuery(query="sh"))
        live.submit(SearchQuery(query="shop"))   # only this one is evaluated
    """

    def __init__(
        self,
        engine: SearchEngine,
        on_result: Callable[[SearchResult], None],
        *,
        delay: float = 0.3,
        timer: Timer | None = None,
        on_suggestions: Callable[[list[str]], None] | None = None,
    ) -> None:
        self._engine = engine
        self._on_result = on_result
        self._on_suggestions = on_suggestions
        self._debouncer = Debouncer(delay, self._run, timer)
        self._latest: SearchQuery | None = None
        self.evaluations = 0

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def submit(self, query: SearchQuery | Mapping[str, Any]) -> None:
        """Record the latest input and restart the debounce window.

        Malformed input raises InvalidInputError immediately and leaves any
        earlier pending query in place.
        """
        self._latest = parse_query(query)
        self._debouncer.trigger()

    def cancel(self) -> None:
        self._debouncer.cancel()
        self._latest = None

    def _run(self) -> None:
        query = self._latest
        if query is None:
            return
        self.evaluations += 1
        try:
            result = self._engine.evaluate(query)
        except InvalidInputError as e:
            logger.warning("Dropping search: %s", e)
            return
        self._on_result(result)
        if self._on_suggestions is not None:
            self._on_suggestions(self._engine.suggest(query.text))
