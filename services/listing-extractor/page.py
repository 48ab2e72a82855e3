"""Prepared view of a fetched listing page.

The page is parsed once and every field extractor reads the same
``ListingPage``: the BeautifulSoup tree plus the pieces most extractors
start from (meta tags, JSON-LD nodes, the marketplace's embedded property
object, visible body text). Preparation never raises for broken markup or
malformed JSON; missing pieces are simply empty.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

# (host suffix, source name); first match wins
SOURCES: tuple[tuple[str, str], ...] = (
    ("zillow.com", "zillow"),
    ("realtor.com", "realtor"),
    ("redfin.com", "redfin"),
    ("homes.com", "homes"),
    ("trulia.com", "trulia"),
    ("utahrealestate.com", "utahrealestate"),
)

REAL_ESTATE_TYPES = frozenset({
    "Product",
    "Place",
    "Residence",
    "RealEstateListing",
    "SingleFamilyResidence",
    "House",
    "Apartment",
    "Accommodation",
})

BLOCK_PAGE_MARKERS = (
    "access to this page has been denied",
    "px-captcha",
    "checking your browser",
    "please verify you are a human",
    "unusual traffic",
)

_PREFERRED_CACHE_KEYS = re.compile(r"ForSalePriorityQuery|ForSaleFullRenderQuery", re.I)
_FALLBACK_CACHE_KEYS = re.compile(r"ForSalePropertyQuery|PropertyQuery", re.I)
_PROPERTY_HINT_KEYS = ("streetAddress", "address", "responsivePhotos", "price")
_MAX_CACHE_SCAN = 500
_INVISIBLE_TAGS = {"script", "style", "noscript", "template"}
_WHITESPACE = re.compile(r"\s+")


def detect_source(url: str) -> str:
    """Marketplace name for ``url``, or ``generic``."""
    host = (urlsplit(url).hostname or "").lower()
    for suffix, name in SOURCES:
        if host == suffix or host.endswith("." + suffix):
            return name
    return "generic"


def parse_maybe_json(value: Any, passes: int = 2) -> Any:
    """Decode JSON that may itself be a JSON-encoded string.

    Marketplaces double-encode their client caches. Returns the decoded
    dict/list, or None when ``value`` is not JSON.
    """
    out = value
    for _ in range(passes):
        if not isinstance(out, str):
            break
        text = out.strip()
        if not text or text[0] not in "{[\"":
            break
        try:
            out = json.loads(text)
        except json.JSONDecodeError:
            return None
    return out if isinstance(out, (dict, list)) else None


def _types_of(node: Mapping[str, Any]) -> set[str]:
    raw = node.get("@type")
    if isinstance(raw, str):
        return {raw}
    if isinstance(raw, list):
        return {t for t in raw if isinstance(t, str)}
    return set()


def _walk_json_ld(data: Any):
    if isinstance(data, list):
        for item in data:
            yield from _walk_json_ld(item)
    elif isinstance(data, dict):
        yield data
        if "@graph" in data:
            yield from _walk_json_ld(data["@graph"])
        main_entity = data.get("mainEntity")
        if isinstance(main_entity, (dict, list)):
            yield from _walk_json_ld(main_entity)


def load_json_ld(soup: BeautifulSoup) -> tuple[dict[str, Any], ...]:
    """Real-estate typed JSON-LD nodes, in document order."""
    nodes = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        text = script.string or script.get_text() or ""
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSON-LD block (%d chars)", len(text))
            continue
        for node in _walk_json_ld(data):
            if _types_of(node) & REAL_ESTATE_TYPES:
                nodes.append(node)
    return tuple(nodes)


def _pick_property(entry: Any) -> dict[str, Any] | None:
    if not isinstance(entry, dict):
        return None
    data = entry.get("data")
    for candidate in (
        entry.get("property"),
        data.get("property") if isinstance(data, dict) else None,
        entry.get("home"),
    ):
        if isinstance(candidate, dict):
            return candidate
    return entry


def find_embedded_property(soup: BeautifulSoup) -> dict[str, Any] | None:
    """Property object from a ``__NEXT_DATA__`` client cache, if any."""
    script = soup.find("script", id="__NEXT_DATA__")
    if script is None:
        return None
    parsed = parse_maybe_json(script.string or script.get_text() or "")
    if not isinstance(parsed, dict):
        return None

    props = parsed.get("props")
    page_props = props.get("pageProps") if isinstance(props, dict) else None
    if not isinstance(page_props, dict):
        return None
    component_props = page_props.get("componentProps")
    initial_data = page_props.get("initialData")
    component_props = component_props if isinstance(component_props, dict) else {}
    initial_data = initial_data if isinstance(initial_data, dict) else {}

    cache = parse_maybe_json(
        component_props.get("gdpClientCache") or initial_data.get("gdpClientCache")
    )
    if isinstance(cache, dict) and cache:
        entries = list(cache.items())
        for pattern in (_PREFERRED_CACHE_KEYS, _FALLBACK_CACHE_KEYS):
            for key, entry in entries:
                if pattern.search(key):
                    prop = _pick_property(entry)
                    if prop:
                        return prop
        for _, entry in entries[:_MAX_CACHE_SCAN]:
            prop = _pick_property(entry)
            if prop and any(prop.get(k) for k in _PROPERTY_HINT_KEYS):
                return prop

    for legacy in (
        initial_data.get("property"),
        page_props.get("property"),
        component_props.get("property"),
    ):
        if isinstance(legacy, dict):
            return legacy
    return None


def _meta_tags(soup: BeautifulSoup) -> dict[str, str]:
    meta: dict[str, str] = {}
    for tag in soup.find_all("meta"):
        key = tag.get("property") or tag.get("name") or tag.get("itemprop")
        content = tag.get("content")
        if isinstance(key, str) and isinstance(content, str) and content.strip():
            meta.setdefault(key.strip().lower(), content.strip())
    return meta


def _visible_text(soup: BeautifulSoup) -> str:
    root = soup.body or soup
    chunks = [
        s for s in root.find_all(string=True)
        if s.parent is not None and s.parent.name not in _INVISIBLE_TAGS
    ]
    return _WHITESPACE.sub(" ", " ".join(chunks)).strip()


def looks_like_block_page(html: str) -> bool:
    """True for anti-bot interstitials and CAPTCHA walls."""
    lower = html.lower()
    if any(marker in lower for marker in BLOCK_PAGE_MARKERS):
        return True
    if "captcha" in lower and ("verify" in lower or "robot" in lower):
        return True
    if "cloudflare" in lower and "checking" in lower:
        return True
    return "blocked" in lower and ("automated" in lower or " bot " in lower)


@dataclass(frozen=True)
class ListingPage:
    url: str
    source: str
    soup: BeautifulSoup
    title: str = ""
    meta: Mapping[str, str] = field(default_factory=dict)
    json_ld: tuple[dict[str, Any], ...] = ()
    embedded: dict[str, Any] | None = None
    text: str = ""
    blocked: bool = False

    @classmethod
    def from_html(cls, html: str, url: str) -> "ListingPage":
        soup = BeautifulSoup(html or "", "html.parser")
        title_tag = soup.find("title")
        title = _WHITESPACE.sub(" ", title_tag.get_text()).strip() if title_tag else ""
        page = cls(
            url=url,
            source=detect_source(url),
            soup=soup,
            title=title,
            meta=_meta_tags(soup),
            json_ld=load_json_ld(soup),
            embedded=find_embedded_property(soup),
            text=_visible_text(soup),
            blocked=looks_like_block_page(html or ""),
        )
        logger.debug(
            "Prepared page: source=%s json_ld=%d embedded=%s meta=%d",
            page.source,
            len(page.json_ld),
            page.embedded is not None,
            len(page.meta),
        )
        return page

    def meta_content(self, *keys: str) -> str:
        """First non-empty meta content among ``keys`` (lower-case names)."""
        for key in keys:
            value = self.meta.get(key)
            if value:
                return value
        return ""
