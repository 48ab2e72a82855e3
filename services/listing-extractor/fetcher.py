"""HTTP client for fetching listing pages from third-party marketplaces.

Uses httpx with browser-like headers and configurable timeouts. Marketplaces
block obvious bot traffic, so requests look like a desktop Chrome navigation
arriving from a search engine. There is no retry loop here: transient
failures are reported as TransientFetchError and the caller decides.
"""

import logging
from dataclasses import dataclass

import httpx

from config import settings

logger = logging.getLogger(__name__)

SEARCH_REFERER = "https://www.google.com/"

_STATUS_MESSAGES = {
    403: "Access denied. The listing site may be blocking automated requests.",
    404: "Listing page not found. Please check the URL.",
    410: "Listing page has been removed.",
    429: "Rate limited by the listing site. Please wait a moment and try again.",
}


class FetchError(Exception):
    """Listing page could not be fetched."""

    def __init__(self, message: str, status_code: int | None = None, transient: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.transient = transient


class TransientFetchError(FetchError):
    """Timeout, network failure, 5xx or 429: safe for the caller to retry."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, status_code=status_code, transient=True)


@dataclass(frozen=True)
class RawContent:
    url: str
    final_url: str
    status_code: int
    html: str
    content_type: str = ""


def browser_headers(user_agent: str | None = None) -> dict[str, str]:
    """Request headers resembling a top-level browser navigation.

    Listing pages are normally entered from search results, so the referer is
    a search engine and the fetch is marked cross-site.
    """
    return {
        "User-Agent": user_agent or settings.USER_AGENT,
        "Accept": (
            "text/html,application/xhtml+xml,application/xml;q=0.9,"
            "image/avif,image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
        "DNT": "1",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "cross-site",
        "Sec-Fetch-User": "?1",
        "Cache-Control": "max-age=0",
        "Referer": SEARCH_REFERER,
    }


def classify_status(status_code: int) -> FetchError:
    """Map a non-2xx status to the matching FetchError."""
    message = _STATUS_MESSAGES.get(
        status_code, f"Failed to fetch listing page (status {status_code})"
    )
    if status_code >= 500 or status_code == 429:
        return TransientFetchError(message, status_code=status_code)
    return FetchError(message, status_code=status_code)


class PageFetcher:
    """Fetches raw listing page HTML. One instance can serve many requests."""

    def __init__(
        self,
        timeout: int | None = None,
        connect_timeout: int | None = None,
        max_redirects: int | None = None,
        user_agent: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        read_timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS
        conn_timeout = connect_timeout if connect_timeout is not None else settings.FETCH_CONNECT_TIMEOUT
        self._user_agent = user_agent or settings.USER_AGENT

        self._client = httpx.Client(
            follow_redirects=True,
            max_redirects=max_redirects if max_redirects is not None else settings.FETCH_MAX_REDIRECTS,
            timeout=httpx.Timeout(
                connect=float(conn_timeout),
                read=float(read_timeout),
                write=10.0,
                pool=10.0,
            ),
            transport=transport,
        )

    def close(self):
        self._client.close()

    def fetch(self, url: str) -> RawContent:
        """Fetch ``url`` and return its HTML.

        Raises TransientFetchError (retryable) or FetchError (permanent).
        """
        try:
            resp = self._client.get(url, headers=browser_headers(self._user_agent))
        except httpx.TimeoutException as e:
            logger.warning("Listing fetch timed out: %s", e)
            raise TransientFetchError("Extraction timed out. Please try again.") from e
        except httpx.TooManyRedirects as e:
            logger.warning("Listing fetch redirected too many times: %s", e)
            raise FetchError("Listing page redirected too many times.") from e
        except httpx.HTTPError as e:
            logger.warning("Listing fetch failed: %s", e)
            raise TransientFetchError(f"Could not reach the listing site: {e}") from e

        if not resp.is_success:
            logger.warning("Listing site returned %d for %s", resp.status_code, url)
            raise classify_status(resp.status_code)

        html = resp.text
        if not html:
            raise FetchError("Listing site returned an empty page.", status_code=resp.status_code)

        logger.info(
            "Fetched listing page: status=%d size=%d bytes",
            resp.status_code,
            len(resp.content),
        )
        return RawContent(
            url=url,
            final_url=str(resp.url),
            status_code=resp.status_code,
            html=html,
            content_type=resp.headers.get("content-type", ""),
        )
