"""Tests for the image trust policy and relay."""

import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from image_relay import (
    ImageRelay,
    ImageTrustPolicy,
    UpstreamFetchError,
    check_image_url,
    image_url_variants,
    rejection_status,
)
from models import ImageRejection, RejectionReason, RelayedImage

PHOTO_URL = "https://photos.zillowstatic.com/fp/abc123-cc_ft_960.jpg"


@pytest.fixture
def policy() -> ImageTrustPolicy:
    return ImageTrustPolicy(trusted_hosts=frozenset({"zillowstatic.com"}))


def _relay(handler, policy: ImageTrustPolicy, try_variants: bool = True) -> ImageRelay:
    return ImageRelay(
        policy=policy,
        timeout=5,
        try_variants=try_variants,
        transport=httpx.MockTransport(handler),
    )


class TestTrustPolicy:
    @pytest.mark.parametrize(
        "url",
        [
            "https://photos.zillowstatic.com/photos/abc.jpg",
            "https://photos.zillowstatic.com/fp/abc-p_e.jpg",
            "https://zillowstatic.com/image/12345",
            "https://photos.zillowstatic.com/fp/abc.webp?size=large",
        ],
    )
    def test_image_on_trusted_host_allowed(self, policy, url):
        assert check_image_url(url, policy).allowed

    def test_listing_page_on_trusted_host_rejected(self, policy):
        result = check_image_url("https://www.zillowstatic.com/homedetails/123-Main-St/1_zpid/", policy)
        assert not result.allowed
        assert result.reason is RejectionReason.LOOKS_LIKE_LISTING_PAGE

    def test_listing_page_rejected_even_with_image_extension(self, policy):
        result = check_image_url("https://photos.zillowstatic.com/homes/for_sale/photo.jpg", policy)
        assert result.reason is RejectionReason.LOOKS_LIKE_LISTING_PAGE

    @pytest.mark.parametrize(
        "url",
        [
            "https://evil.example.com/photos/abc.jpg",
            "https://notzillowstatic.com/fp/abc.jpg",
            "https://zillowstatic.com.evil.example/fp/abc.jpg",
            "https://www.zillow.com/homedetails/123-Main-St/1_zpid/",
        ],
    )
    def test_untrusted_host_rejected(self, policy, url):
        result = check_image_url(url, policy)
        assert result.reason is RejectionReason.UNTRUSTED_HOST

    def test_not_an_image(self, policy):
        result = check_image_url("https://photos.zillowstatic.com/static/app.js", policy)
        assert result.reason is RejectionReason.NOT_AN_IMAGE_RESOURCE

    @pytest.mark.parametrize("url", ["", "not a url", "/fp/abc.jpg", "ftp://photos.zillowstatic.com/a.jpg"])
    def test_invalid_url(self, policy, url):
        assert check_image_url(url, policy).reason is RejectionReason.INVALID_URL

    def test_policy_from_settings(self):
        policy = ImageTrustPolicy.from_settings()
        assert policy.is_trusted_host("photos.zillowstatic.com")
        assert not policy.is_trusted_host("example.com")

    def test_rejection_status(self):
        assert rejection_status(RejectionReason.INVALID_URL) == 400
        assert rejection_status(RejectionReason.LOOKS_LIKE_LISTING_PAGE) == 403
        assert rejection_status(RejectionReason.UPSTREAM_FETCH_FAILED) == 502


class TestVariants:
    def test_low_resolution_tries_larger(self):
        assert image_url_variants(PHOTO_URL) == [
            PHOTO_URL,
            "https://photos.zillowstatic.com/fp/abc123.jpg",
            "https://photos.zillowstatic.com/fp/abc123-cc_ft_3840.jpg",
            "https://photos.zillowstatic.com/fp/abc123-cc_ft_1920.jpg",
        ]

    def test_high_resolution_falls_back_to_smaller(self):
        url = "https://photos.zillowstatic.com/fp/abc123-cc_ft_3840.jpg"
        assert image_url_variants(url) == [
            url,
            "https://photos.zillowstatic.com/fp/abc123.jpg",
            "https://photos.zillowstatic.com/fp/abc123-cc_ft_1920.jpg",
            "https://photos.zillowstatic.com/fp/abc123-cc_ft_960.jpg",
        ]

    def test_panorama_suffix(self):
        url = "https://photos.zillowstatic.com/fp/abc123-p_e.jpg"
        assert image_url_variants(url) == [url, "https://photos.zillowstatic.com/fp/abc123.jpg"]

    def test_plain_url(self):
        url = "https://photos.zillowstatic.com/photos/abc.jpg"
        assert image_url_variants(url) == [url]


class TestResolve:
    def test_relays_bytes_and_content_type(self, policy):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["headers"] = request.headers
            return httpx.Response(200, content=b"\xff\xd8jpeg", headers={"Content-Type": "image/webp"})

        relay = _relay(handler, policy)
        result = relay.resolve(PHOTO_URL)
        relay.close()

        assert isinstance(result, RelayedImage)
        assert result.content == b"\xff\xd8jpeg"
        assert result.content_type == "image/webp"
        assert result.cache_control == "public, max-age=31536000, immutable"
        assert seen["headers"]["referer"] == "https://www.zillow.com/"
        assert seen["headers"]["accept"].startswith("image/")

    def test_default_content_type(self, policy):
        relay = _relay(lambda request: httpx.Response(200, content=b"img"), policy)
        result = relay.resolve(PHOTO_URL)
        relay.close()
        assert result.content_type == "image/jpeg"

    def test_falls_back_to_variant(self, policy):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            if request.url.path.endswith("-cc_ft_960.jpg"):
                return httpx.Response(404)
            return httpx.Response(200, content=b"img", headers={"Content-Type": "image/jpeg"})

        relay = _relay(handler, policy)
        result = relay.resolve(PHOTO_URL)
        relay.close()

        assert isinstance(result, RelayedImage)
        assert result.source_url == "https://photos.zillowstatic.com/fp/abc123.jpg"
        assert requested == [PHOTO_URL, "https://photos.zillowstatic.com/fp/abc123.jpg"]

    def test_all_variants_fail(self, policy):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(404)

        relay = _relay(handler, policy)
        result = relay.resolve(PHOTO_URL)
        relay.close()

        assert isinstance(result, ImageRejection)
        assert result.reason is RejectionReason.UPSTREAM_FETCH_FAILED
        assert result.status_code == 404
        assert len(requested) == 4

    def test_variants_disabled(self, policy):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(503)

        relay = _relay(handler, policy, try_variants=False)
        result = relay.resolve(PHOTO_URL)
        relay.close()
        assert result.status_code == 503
        assert requested == [PHOTO_URL]

    def test_network_error_never_raises(self, policy):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        relay = _relay(handler, policy, try_variants=False)
        result = relay.resolve(PHOTO_URL)
        relay.close()
        assert result.reason is RejectionReason.UPSTREAM_FETCH_FAILED
        assert result.status_code is None

    def test_rejected_url_is_never_fetched(self, policy):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("must not fetch")

        relay = _relay(handler, policy)
        result = relay.resolve("https://www.zillowstatic.com/homedetails/1_zpid/")
        relay.close()
        assert result.reason is RejectionReason.LOOKS_LIKE_LISTING_PAGE

    def test_fetch_image_raises_upstream_error(self, policy):
        relay = _relay(lambda request: httpx.Response(403), policy)
        with pytest.raises(UpstreamFetchError) as exc_info:
            relay.fetch_image(PHOTO_URL)
        relay.close()
        assert exc_info.value.status_code == 403
