"""Image relay for marketplace listing photos.

Marketplace CDNs refuse hotlinked requests, so listing photos are fetched
server-side with a marketplace referer and passed through unchanged. The
trust policy keeps the relay from becoming an open proxy: only image
resources on trusted photo hosts are fetched, and listing/detail pages are
refused even on a trusted host. Image bytes are never decoded or logged.
"""

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx

from config import settings
from models import (
    ImageEligibility,
    ImageRejection,
    RejectionReason,
    RelayedImage,
    is_absolute_http_url,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "image/jpeg"
IMAGE_ACCEPT = "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8"

_REJECTION_STATUS = {
    RejectionReason.INVALID_URL: 400,
    RejectionReason.UNTRUSTED_HOST: 403,
    RejectionReason.LOOKS_LIKE_LISTING_PAGE: 403,
    RejectionReason.NOT_AN_IMAGE_RESOURCE: 403,
    RejectionReason.UPSTREAM_FETCH_FAILED: 502,
}

_CC_FT = re.compile(r"-cc_ft_(\d+)")


class UpstreamFetchError(Exception):
    """Image host answered with an error or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class ImageTrustPolicy:
    trusted_hosts: frozenset[str]
    image_extensions: frozenset[str] = frozenset({"jpg", "jpeg", "png", "webp", "gif", "avif"})
    image_path_segments: tuple[str, ...] = ("/photo/", "/photos/", "/image/", "/images/", "/media/", "/fp/")
    listing_path_segments: tuple[str, ...] = ("/homedetails/", "/homes/")

    @classmethod
    def from_settings(cls) -> "ImageTrustPolicy":
        return cls(trusted_hosts=frozenset(h.lower().strip(".") for h in settings.IMAGE_TRUSTED_HOSTS))

    def is_trusted_host(self, host: str) -> bool:
        host = host.lower().rstrip(".")
        return any(host == trusted or host.endswith("." + trusted) for trusted in self.trusted_hosts)


def rejection_status(reason: RejectionReason) -> int:
    return _REJECTION_STATUS[reason]


def _rejected(reason: RejectionReason, message: str) -> ImageEligibility:
    return ImageEligibility(allowed=False, reason=reason, message=message)


def check_image_url(url: str, policy: ImageTrustPolicy) -> ImageEligibility:
    """Decide whether ``url`` may be relayed.

    Checks run in a fixed order, so a listing page on an untrusted host is
    reported as ``untrusted-host``.
    """
    if not is_absolute_http_url(url):
        return _rejected(RejectionReason.INVALID_URL, "Image URL must be an absolute http(s) URL")

    parts = urlsplit(url)
    if not policy.is_trusted_host(parts.hostname or ""):
        return _rejected(RejectionReason.UNTRUSTED_HOST, f"Host {parts.hostname} is not a trusted image host")

    path = parts.path.lower()
    if any(segment in path for segment in policy.listing_path_segments):
        return _rejected(RejectionReason.LOOKS_LIKE_LISTING_PAGE, "URL points to a listing page, not an image")

    extension = re.search(r"\.([a-z0-9]+)$", path)
    if (not extension or extension.group(1) not in policy.image_extensions) and not any(
        segment in path for segment in policy.image_path_segments
    ):
        return _rejected(RejectionReason.NOT_AN_IMAGE_RESOURCE, "URL does not point to an image resource")

    return ImageEligibility(allowed=True)


def image_url_variants(url: str) -> list[str]:
    """``url`` followed by other resolutions of the same photo, best first.

    Tries the base image (without panorama or width suffixes), larger
    ``-cc_ft_`` widths for small originals, then smaller widths.
    """
    variants = [url]
    if "-p_" in url:
        variants.append(re.sub(r"-p_[a-e]\.jpg", ".jpg", url, flags=re.I))
    if "-cc_ft_" in url:
        variants.append(re.sub(r"-cc_ft_\d+\.jpg", ".jpg", url, flags=re.I))
    if "-h_g.jpg" in url:
        variants.append(re.sub(r"-h_g\.jpg", ".jpg", url, flags=re.I))

    match = _CC_FT.search(url)
    if match:
        width = int(match.group(1))
        if width < 3840:
            variants.append(_CC_FT.sub("-cc_ft_3840", url, count=1))
        if width < 1920:
            variants.append(_CC_FT.sub("-cc_ft_1920", url, count=1))
        if width >= 3840:
            variants.append(_CC_FT.sub("-cc_ft_1920", url, count=1))
            variants.append(_CC_FT.sub("-cc_ft_960", url, count=1))
        elif width >= 1920:
            variants.append(_CC_FT.sub("-cc_ft_960", url, count=1))

    unique: list[str] = []
    for variant in variants:
        if variant not in unique:
            unique.append(variant)
    return unique


class ImageRelay:
    """Fetches trusted listing photos on behalf of browsers."""

    def __init__(
        self,
        policy: ImageTrustPolicy | None = None,
        timeout: int | None = None,
        try_variants: bool | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.policy = policy or ImageTrustPolicy.from_settings()
        self._try_variants = try_variants if try_variants is not None else settings.IMAGE_TRY_VARIANTS
        read_timeout = timeout if timeout is not None else settings.IMAGE_TIMEOUT_SECONDS

        self._client = httpx.Client(
            follow_redirects=True,
            max_redirects=settings.FETCH_MAX_REDIRECTS,
            timeout=httpx.Timeout(
                connect=float(settings.FETCH_CONNECT_TIMEOUT),
                read=float(read_timeout),
                write=10.0,
                pool=10.0,
            ),
            headers={
                "Referer": settings.IMAGE_REFERER,
                "User-Agent": settings.USER_AGENT,
                "Accept": IMAGE_ACCEPT,
                "Accept-Language": "en-US,en;q=0.9",
            },
            transport=transport,
        )

    def close(self):
        self._client.close()

    def fetch_image(self, url: str) -> RelayedImage:
        """Fetch one image URL as-is.

        Raises UpstreamFetchError for non-2xx answers and network failures.
        """
        try:
            resp = self._client.get(url)
        except httpx.HTTPError as e:
            raise UpstreamFetchError(f"Could not reach image host: {e}") from e
        if not resp.is_success:
            raise UpstreamFetchError(f"Image host returned {resp.status_code}", status_code=resp.status_code)

        return RelayedImage(
            content=resp.content,
            content_type=resp.headers.get("content-type") or DEFAULT_CONTENT_TYPE,
            cache_control=settings.IMAGE_CACHE_CONTROL,
            source_url=str(resp.url),
        )

    def resolve(self, url: str) -> RelayedImage | ImageRejection:
        """Relay ``url`` or explain why not. Never raises."""
        eligibility = check_image_url(url, self.policy)
        if not eligibility.allowed:
            logger.info("Image relay rejected URL: reason=%s", eligibility.reason.value)
            return ImageRejection(reason=eligibility.reason, message=eligibility.message)

        candidates = image_url_variants(url) if self._try_variants else [url]
        last_error: UpstreamFetchError | None = None
        for candidate in candidates:
            try:
                image = self.fetch_image(candidate)
            except UpstreamFetchError as e:
                logger.debug("Image variant failed (%s): %s", e.status_code, e)
                last_error = e
                continue
            logger.info(
                "Relayed image: type=%s size=%d bytes variant=%d/%d",
                image.content_type,
                len(image.content),
                candidates.index(candidate) + 1,
                len(candidates),
            )
            return image

        logger.warning(
            "Image relay failed after %d variant(s): %s",
            len(candidates),
            last_error,
        )
        return ImageRejection(
            reason=RejectionReason.UPSTREAM_FETCH_FAILED,
            message=str(last_error) if last_error else "Image could not be fetched",
            status_code=last_error.status_code if last_error else None,
        )
