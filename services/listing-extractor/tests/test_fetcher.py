"""Tests for listing page fetching and its error taxonomy."""

import sys
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from conftest import ZILLOW_URL
from fetcher import SEARCH_REFERER, FetchError, PageFetcher, TransientFetchError, classify_status


def _fetcher(handler) -> PageFetcher:
    return PageFetcher(timeout=5, connect_timeout=2, max_redirects=3, transport=httpx.MockTransport(handler))


@pytest.fixture
def page_fetcher():
    fetcher = PageFetcher(timeout=5, connect_timeout=2)
    yield fetcher
    fetcher.close()


class TestFetch:
    def test_successful_fetch(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["headers"] = request.headers
            return httpx.Response(200, html="<html><title>x</title></html>")

        fetcher = _fetcher(handler)
        content = fetcher.fetch(ZILLOW_URL)
        fetcher.close()

        assert content.status_code == 200
        assert content.html == "<html><title>x</title></html>"
        assert content.final_url == ZILLOW_URL
        assert content.content_type.startswith("text/html")
        assert "Chrome" in seen["headers"]["user-agent"]
        assert seen["headers"]["referer"] == SEARCH_REFERER
        assert seen["headers"]["accept"].startswith("text/html")

    def test_follows_redirects(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": "https://www.zillow.com/new"})
            return httpx.Response(200, html="<html></html>")

        fetcher = _fetcher(handler)
        content = fetcher.fetch("https://www.zillow.com/old")
        fetcher.close()
        assert content.final_url == "https://www.zillow.com/new"

    def test_too_many_redirects_is_permanent(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"Location": str(request.url)})

        fetcher = _fetcher(handler)
        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch(ZILLOW_URL)
        fetcher.close()
        assert not exc_info.value.transient

    def test_empty_page(self):
        fetcher = _fetcher(lambda request: httpx.Response(200, text=""))
        with pytest.raises(FetchError, match="empty"):
            fetcher.fetch(ZILLOW_URL)
        fetcher.close()


class TestStatusClassification:
    @pytest.mark.parametrize("status", [403, 404, 410])
    def test_client_errors_are_permanent(self, status):
        fetcher = _fetcher(lambda request: httpx.Response(status))
        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch(ZILLOW_URL)
        fetcher.close()
        assert not isinstance(exc_info.value, TransientFetchError)
        assert exc_info.value.status_code == status

    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    def test_server_errors_and_rate_limits_are_transient(self, status):
        fetcher = _fetcher(lambda request: httpx.Response(status))
        with pytest.raises(TransientFetchError) as exc_info:
            fetcher.fetch(ZILLOW_URL)
        fetcher.close()
        assert exc_info.value.transient
        assert exc_info.value.status_code == status

    def test_human_readable_messages(self):
        assert "blocking" in str(classify_status(403))
        assert "not found" in str(classify_status(404))
        assert "Rate limited" in str(classify_status(429))
        assert "status 418" in str(classify_status(418))


class TestNetworkErrors:
    def test_timeout_is_transient(self, page_fetcher: PageFetcher):
        with patch.object(page_fetcher._client, "get", side_effect=httpx.ReadTimeout("timed out")):
            with pytest.raises(TransientFetchError, match="timed out"):
                page_fetcher.fetch(ZILLOW_URL)

    def test_connection_error_is_transient(self, page_fetcher: PageFetcher):
        with patch.object(page_fetcher._client, "get", side_effect=httpx.ConnectError("refused")):
            with pytest.raises(TransientFetchError, match="Could not reach"):
                page_fetcher.fetch(ZILLOW_URL)

    def test_single_attempt(self, page_fetcher: PageFetcher):
        with patch.object(page_fetcher._client, "get", side_effect=httpx.ConnectError("refused")) as mock_get:
            with pytest.raises(TransientFetchError):
                page_fetcher.fetch(ZILLOW_URL)
        assert mock_get.call_count == 1
