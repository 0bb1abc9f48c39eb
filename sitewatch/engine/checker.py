"""HTTP site check: status code, response timing and WordPress detection."""

import logging

import httpx

from sitewatch.core.config import CheckConfig
from sitewatch.core.errors import EngineError
from sitewatch.core.schemas import CheckResult, WebVitals

logger = logging.getLogger(__name__)

WORDPRESS_MARKERS: tuple[str, ...] = (
    "wp-content",
    "wp-includes",
    "WordPress",
    "wp-json",
    "/wp-admin/",
    "wp-embed.min.js",
)


def detect_wordpress(html: str) -> bool:
    """True when the page body carries any of the usual WordPress asset markers."""
    return any(marker in html for marker in WORDPRESS_MARKERS)


class SiteChecker:
    """Runs one GET per check with the configured timeout and user agent.

    ``transport`` is passed through to ``httpx.AsyncClient``; tests inject
    an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: CheckConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or CheckConfig()
        self._transport = transport

    async def check(self, url: str) -> CheckResult:
        """GET ``url``. Any HTTP status is a result; transport failures raise EngineError."""
        try:
            async with httpx.AsyncClient(
                timeout=self._config.timeout_s,
                headers={"User-Agent": self._config.user_agent},
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            msg = f"Failed to reach {url}: {e}"
            raise EngineError(msg) from e

        ttfb_ms = response.elapsed.total_seconds() * 1000
        is_wordpress = detect_wordpress(response.text)
        logger.debug(
            "Checked %s: %d in %.0fms (wordpress=%s)",
            url, response.status_code, ttfb_ms, is_wordpress,
        )
        return CheckResult(
            status=response.status_code,
            vitals=WebVitals(ttfb=ttfb_ms),
            is_wordpress=is_wordpress,
        )
