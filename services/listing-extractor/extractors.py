"""Per-field heuristic cascades.

Each ``FieldExtractor`` owns one field and an ordered tuple of matchers.
A matcher looks at the prepared ``ListingPage`` and returns a raw candidate
(or None); the extractor normalizes it into the field's shape and stops at
the first candidate that survives normalization. Matchers only read the
page, so extractors can run in any order or concurrently.

Matcher order per field, most reliable first:
  1. the marketplace's embedded property JSON (``__NEXT_DATA__`` caches)
  2. schema.org JSON-LD
  3. Open Graph / meta tags
  4. labelled DOM regions (itemprop, data-testid, class names)
  5. visible text patterns and the URL itself
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from bs4 import Tag

from config import settings
from normalize import (
    absolutize,
    clean_text,
    humanize_enum,
    normalize_address,
    normalize_city,
    normalize_mls_id,
    normalize_state,
    normalize_zip,
    parse_area,
    parse_count,
    parse_currency,
    parse_year,
    rank_images,
    split_address_line,
    unique,
)
from page import ListingPage

logger = logging.getLogger(__name__)

Matcher = Callable[[ListingPage], Any]

# Embedded prices outside this range are placeholders or rent estimates.
MIN_EMBEDDED_PRICE = 10_000
MAX_EMBEDDED_PRICE = 50_000_000
MIN_EMBEDDED_SQFT = 100
MAX_EMBEDDED_SQFT = 50_000

_MATCHER_ERRORS = (ValueError, TypeError, KeyError, AttributeError, IndexError, ArithmeticError)


@dataclass(frozen=True)
class FieldExtractor:
    field: str
    normalize: Callable[[Any], Any]
    matchers: tuple[Matcher, ...]

    def extract(self, page: ListingPage) -> Any:
        """First normalized value found by the cascade, or None."""
        for matcher in self.matchers:
            try:
                raw = matcher(page)
                value = self.normalize(raw) if raw is not None else None
            except _MATCHER_ERRORS as e:
                logger.debug("%s: matcher %s failed: %s", self.field, matcher.__name__, e)
                continue
            if value is not None:
                logger.debug("%s: matched by %s", self.field, matcher.__name__)
                return value
        return None


# --- lookup helpers -------------------------------------------------------

def _first(*values: Any) -> Any:
    """First value that is not None/empty."""
    for value in values:
        if value is None or value == "" or value == [] or value == {}:
            continue
        return value
    return None


def _dig(data: Any, *path: Any) -> Any:
    for key in path:
        if isinstance(data, dict):
            data = data.get(key)
        elif isinstance(data, list) and isinstance(key, int):
            data = data[key] if -len(data) <= key < len(data) else None
        else:
            return None
    return data


def _embedded(page: ListingPage, *keys: str) -> Any:
    prop = page.embedded or {}
    return _first(*(prop.get(key) for key in keys))


def _embedded_address(page: ListingPage) -> dict[str, Any]:
    address = (page.embedded or {}).get("address")
    return address if isinstance(address, dict) else {}


def _reso(page: ListingPage, *keys: str) -> Any:
    facts = (page.embedded or {}).get("resoFacts")
    if not isinstance(facts, dict):
        return None
    return _first(*(facts.get(key) for key in keys))


def _json_ld(page: ListingPage, *keys: str) -> Any:
    for node in page.json_ld:
        value = _first(*(node.get(key) for key in keys))
        if value is not None:
            return value
    return None


def _json_ld_address(page: ListingPage, *keys: str) -> Any:
    for node in page.json_ld:
        address = node.get("address")
        if isinstance(address, dict):
            value = _first(*(address.get(key) for key in keys))
            if value is not None:
                return value
    return None


def _quantity(value: Any) -> Any:
    """schema.org QuantitativeValue or a bare number."""
    if isinstance(value, dict):
        return _first(value.get("value"), value.get("maxValue"))
    return value


def _select_text(page: ListingPage, *selectors: str) -> str | None:
    """Text (or ``content``) of the first element matching any selector."""
    for selector in selectors:
        for element in page.soup.select(selector):
            if not isinstance(element, Tag):
                continue
            content = element.get("content")
            text = clean_text(content if isinstance(content, str) else element.get_text(" "))
            if text:
                return text
    return None


def _search(page: ListingPage, pattern: re.Pattern) -> re.Match | None:
    return pattern.search(page.text)


def _title_address_line(page: ListingPage) -> str | None:
    """Address part of ``"123 Main St, Provo, UT 84601 | MLS #1 | Zillow"`` titles."""
    for title in (page.meta_content("og:title"), page.title):
        if not title:
            continue
        for part in title.split("|"):
            part = part.strip()
            if part and not part.startswith("$") and re.match(r"\d+\s+\S", part):
                return part
    return None


def _url_slug_tokens(page: ListingPage) -> list[str]:
    match = re.search(r"/homedetails/([^/]+)/", page.url)
    return match.group(1).split("-") if match else []


# --- address --------------------------------------------------------------

def address_from_embedded(page: ListingPage) -> Any:
    address = _embedded_address(page)
    return _first(
        address.get("streetAddress"),
        address.get("street"),
        address.get("line"),
        _embedded(page, "streetAddress"),
    )


def address_from_json_ld(page: ListingPage) -> Any:
    street = _json_ld_address(page, "streetAddress", "street")
    if street is not None:
        return street
    for node in page.json_ld:
        if isinstance(node.get("address"), str):
            return split_address_line(node["address"])[0]
    return None


def address_from_og_title(page: ListingPage) -> Any:
    og_title = page.meta_content("og:title")
    if "|" not in og_title:
        return None
    for part in og_title.split("|"):
        part = part.strip()
        if part.startswith("$") or not re.search(r"\d", part):
            continue
        if re.match(r"\d+\s+[A-Za-z0-9]", part):
            return split_address_line(part)[0]
    return None


def address_from_dom(page: ListingPage) -> Any:
    text = _select_text(
        page,
        '[itemprop="streetAddress"]',
        '[data-testid*="address"]',
        "h1",
    )
    if not text:
        return None
    return split_address_line(text.split("|")[0])[0]


def address_from_title(page: ListingPage) -> Any:
    line = _title_address_line(page)
    return split_address_line(line)[0] if line else None


def address_from_url(page: ListingPage) -> Any:
    tokens = _url_slug_tokens(page)
    if len(tokens) > 2 and re.fullmatch(r"\d{5}", tokens[-1]) and re.fullmatch(r"[A-Za-z]{2}", tokens[-2]):
        tokens = tokens[:-2]
    if not tokens:
        return None
    return " ".join(token.capitalize() for token in tokens)


# --- city / state / zip ---------------------------------------------------

def _locality_from_titles(page: ListingPage, index: int) -> Any:
    line = _title_address_line(page)
    return split_address_line(line)[index] if line else None


def city_from_embedded(page: ListingPage) -> Any:
    return _first(_embedded_address(page).get("city"), _embedded(page, "city"))


def city_from_json_ld(page: ListingPage) -> Any:
    return _json_ld_address(page, "addressLocality", "city")


def city_from_titles(page: ListingPage) -> Any:
    return _locality_from_titles(page, 1)


def city_from_dom(page: ListingPage) -> Any:
    return _select_text(page, '[itemprop="addressLocality"]')


def state_from_embedded(page: ListingPage) -> Any:
    return _first(_embedded_address(page).get("state"), _embedded(page, "state"))


def state_from_json_ld(page: ListingPage) -> Any:
    return _json_ld_address(page, "addressRegion", "region", "state")


def state_from_titles(page: ListingPage) -> Any:
    return _locality_from_titles(page, 2)


def state_from_url(page: ListingPage) -> Any:
    tokens = _url_slug_tokens(page)
    if len(tokens) > 2 and re.fullmatch(r"\d{5}", tokens[-1]):
        return tokens[-2]
    return None


def zip_from_embedded(page: ListingPage) -> Any:
    address = _embedded_address(page)
    return _first(
        address.get("zipcode"),
        address.get("zipCode"),
        address.get("postalCode"),
        _embedded(page, "zipcode", "zipCode"),
    )


def zip_from_json_ld(page: ListingPage) -> Any:
    return _json_ld_address(page, "postalCode", "postcode", "zip")


def zip_from_titles(page: ListingPage) -> Any:
    return _locality_from_titles(page, 3)


def zip_from_url(page: ListingPage) -> Any:
    tokens = _url_slug_tokens(page)
    return tokens[-1] if tokens and re.fullmatch(r"\d{5}", tokens[-1]) else None


# --- price ----------------------------------------------------------------

_LEADING_PRICE = re.compile(r"^\$\s*([\d,]+(?:\.\d{2})?)")
_PIPE_PRICE = re.compile(r"\|\s*\$\s*([\d,]+(?:\.\d{2})?)")
_LISTED_FOR = re.compile(r"listed\s+for\s+sale\s+at\s+\$?\s*([\d,]+(?:\.\d{2})?)", re.I)
_BULLET_PRICE = re.compile(r"\$\s*([\d,]+(?:\.\d{2})?)\s*[∙•·]")
_ANY_PRICE = re.compile(r"\$\s*([\d,]+(?:\.\d{2})?)")


def _in_price_range(value: Any) -> Any:
    amount = parse_currency(value)
    if amount is not None and MIN_EMBEDDED_PRICE <= amount <= MAX_EMBEDDED_PRICE:
        return amount
    return None


def price_from_embedded(page: ListingPage) -> Any:
    raw = _first(
        _embedded(page, "price", "listPrice", "unformattedPrice", "currentPrice", "askingPrice"),
        _dig(page.embedded, "adTargets", "price"),
        _dig(page.embedded, "priceHistory", 0, "price"),
    )
    if isinstance(raw, dict):
        raw = _first(raw.get("value"), raw.get("amount"), raw.get("price"), raw.get("listPrice"))
    return _in_price_range(raw)


def price_from_json_ld(page: ListingPage) -> Any:
    for node in page.json_ld:
        offers = node.get("offers")
        if isinstance(offers, list):
            offers = offers[0] if offers else None
        if isinstance(offers, dict):
            price = _first(offers.get("price"), _dig(offers, "priceSpecification", "price"))
            if price is not None:
                return price
        if node.get("price") is not None:
            return node["price"]
    return None


def price_from_og_title(page: ListingPage) -> Any:
    og_title = page.meta_content("og:title")
    match = _LEADING_PRICE.search(og_title) or _PIPE_PRICE.search(og_title)
    return match.group(1) if match else None


def price_from_og_description(page: ListingPage) -> Any:
    description = page.meta_content("og:description", "description")
    match = _LISTED_FOR.search(description) or _BULLET_PRICE.search(description)
    if match:
        return match.group(1)
    match = _ANY_PRICE.search(description)
    return _in_price_range(match.group(1)) if match else None


def price_from_dom(page: ListingPage) -> Any:
    return _select_text(
        page,
        '[itemprop="price"]',
        '[data-testid*="price"]',
        '[class*="price"]',
    )


# --- rooms and size -------------------------------------------------------

_BEDS_TEXT = re.compile(r"(\d+)\s*(?:bd|bds|beds?|bedrooms?)\b", re.I)
_STUDIO_TEXT = re.compile(r"\bstudio\b", re.I)
_BATHS_TEXT = re.compile(r"(\d+(?:\.\d+)?)\s*(?:ba|baths?|bathrooms?)\b", re.I)
_SQFT_TEXT = re.compile(r"(\d[\d,]*)\s*(?:sq\.?\s*ft\.?|sqft|square\s+feet)", re.I)


def bedrooms_from_embedded(page: ListingPage) -> Any:
    return _first(_embedded(page, "bedrooms", "beds"), _dig(page.embedded, "adTargets", "bd"))


def bedrooms_from_json_ld(page: ListingPage) -> Any:
    return _quantity(_json_ld(page, "numberOfBedrooms", "bedrooms", "numberOfRooms"))


def bedrooms_from_dom(page: ListingPage) -> Any:
    return _select_text(page, '[itemprop="numberOfBedrooms"]', '[data-testid*="bed"]')


def bedrooms_from_text(page: ListingPage) -> Any:
    match = _search(page, _BEDS_TEXT)
    if match:
        return match.group(1)
    return 0 if _search(page, _STUDIO_TEXT) else None


def bathrooms_from_embedded(page: ListingPage) -> Any:
    return _first(
        _embedded(page, "bathrooms", "bathroomsFloat", "baths"),
        _dig(page.embedded, "adTargets", "ba"),
    )


def bathrooms_from_json_ld(page: ListingPage) -> Any:
    return _quantity(_json_ld(page, "numberOfBathroomsTotal", "numberOfFullBathrooms", "bathrooms"))


def bathrooms_from_dom(page: ListingPage) -> Any:
    return _select_text(page, '[itemprop="numberOfBathroomsTotal"]', '[data-testid*="bath"]')


def bathrooms_from_text(page: ListingPage) -> Any:
    match = _search(page, _BATHS_TEXT)
    return match.group(1) if match else None


def square_feet_from_embedded(page: ListingPage) -> Any:
    raw = _first(
        _embedded(page, "livingArea", "livingAreaValue", "area"),
        _dig(page.embedded, "adTargets", "sqft"),
    )
    area = parse_area(raw)
    if area is not None and MIN_EMBEDDED_SQFT < area < MAX_EMBEDDED_SQFT:
        return area
    return None


def square_feet_from_json_ld(page: ListingPage) -> Any:
    return _quantity(_json_ld(page, "floorSize", "area"))


def square_feet_from_dom(page: ListingPage) -> Any:
    text = _select_text(page, '[itemprop="floorSize"]', '[data-testid*="sqft"]')
    if not text:
        return None
    match = _SQFT_TEXT.search(text)
    return match.group(1) if match else text


def square_feet_from_text(page: ListingPage) -> Any:
    for match in _SQFT_TEXT.finditer(page.text):
        if parse_area(match.group(1)) is not None:
            return match.group(1)
    return None


# --- identifiers and status -----------------------------------------------

_MLS_TEXT = re.compile(r"\bMLS\s*(?:#|No\.?|Number|ID)?\s*[:#]?\s*([A-Za-z]{0,4}\d[\w-]{1,19})", re.I)
_STATUS_WORDS = r"(Active|Pending|Contingent|Sold|Coming Soon|For Sale|For Rent|Off Market|Under Contract)"
_STATUS_TEXT = re.compile(r"\b(?:Listing\s+)?Status\s*:?\s*" + _STATUS_WORDS + r"\b", re.I)


def mls_id_from_embedded(page: ListingPage) -> Any:
    return _first(
        _embedded(page, "mlsId", "mlsNumber", "mls"),
        _dig(page.embedded, "attributionInfo", "mlsId"),
    )


def mls_id_from_json_ld(page: ListingPage) -> Any:
    value = _json_ld(page, "mlsId", "identifier", "productID", "sku")
    if isinstance(value, dict):
        return value.get("value")
    return value


def mls_id_from_text(page: ListingPage) -> Any:
    match = _search(page, _MLS_TEXT)
    return match.group(1) if match else None


def mls_id_from_url(page: ListingPage) -> Any:
    if page.source != "utahrealestate":
        return None
    match = re.search(r"/(\d+)/?$", page.url.split("?")[0])
    return match.group(1) if match else None


def status_from_embedded(page: ListingPage) -> Any:
    return _embedded(page, "homeStatus", "listingStatus", "status")


def status_from_dom(page: ListingPage) -> Any:
    return _select_text(page, '[data-testid*="status"]', '[class*="listing-status"]')


def status_from_text(page: ListingPage) -> Any:
    match = _search(page, _STATUS_TEXT)
    return match.group(1) if match else None


# --- description ----------------------------------------------------------

def description_from_embedded(page: ListingPage) -> Any:
    return _embedded(page, "description", "longDescription", "summary")


def description_from_json_ld(page: ListingPage) -> Any:
    return _json_ld(page, "description")


def description_from_dom(page: ListingPage) -> Any:
    return _select_text(page, '[itemprop="description"]', '[data-testid*="description"]')


def description_from_meta(page: ListingPage) -> Any:
    return page.meta_content("description", "og:description")


# --- images ---------------------------------------------------------------

def _photo_urls(photos: Any) -> list[str]:
    urls = []
    for photo in photos if isinstance(photos, list) else []:
        if isinstance(photo, str):
            urls.append(photo)
        elif isinstance(photo, dict):
            if isinstance(photo.get("url"), str):
                urls.append(photo["url"])
                continue
            jpegs = _dig(photo, "mixedSources", "jpeg")
            variants = [j["url"] for j in jpegs or [] if isinstance(j, dict) and isinstance(j.get("url"), str)]
            best = rank_images(variants, limit=1)
            if best:
                urls.append(best[0])
    return urls


def images_from_embedded(page: ListingPage) -> Any:
    urls = _photo_urls(_dig(page.embedded, "media", "photos"))
    return urls or _photo_urls(_embedded(page, "responsivePhotos", "photos")) or None


def images_from_json_ld(page: ListingPage) -> Any:
    urls = []
    for node in page.json_ld:
        images = node.get("image") or node.get("photo")
        for image in images if isinstance(images, list) else [images]:
            if isinstance(image, str):
                urls.append(image)
            elif isinstance(image, dict):
                url = _first(image.get("url"), image.get("contentUrl"))
                if isinstance(url, str):
                    urls.append(url)
    return urls or None


def images_from_dom(page: ListingPage) -> Any:
    urls = []
    og_image = page.meta_content("og:image")
    if og_image:
        urls.append(og_image)
    for element in page.soup.select("img, [data-src]"):
        src = element.get("data-src") or element.get("src")
        if isinstance(src, str):
            url = absolutize(src, page.url)
            if url:
                urls.append(url)
    return urls or None


# --- other details --------------------------------------------------------

_YEAR_TEXT = re.compile(r"(?:built\s+in|year\s+built\s*:?)\s*(\d{4})\b", re.I)
_PROPERTY_TYPES = (
    r"(Single[- ]Family(?: Residence| Home)?|Condo(?:minium)?|Townhouse|Townhome|"
    r"Multi[- ]Family|Manufactured|Mobile Home|Apartment|Duplex|Triplex|Fourplex|Land|Lot)"
)
_PROPERTY_TYPE_TEXT = re.compile(r"\b(?:property|home)\s+type\s*:?\s*" + _PROPERTY_TYPES + r"\b", re.I)
_LOT_TEXT = re.compile(
    r"\blot(?:\s+size)?\s*:?\s*([\d,.]+\s*(?:acres?|ac\b|sq\.?\s*ft\.?|sqft|square\s+feet))",
    re.I,
)
_SCHEMA_RESIDENCE_TYPES = {
    "SingleFamilyResidence": "Single Family Residence",
    "House": "House",
    "Apartment": "Apartment",
}


def year_built_from_embedded(page: ListingPage) -> Any:
    return _first(_embedded(page, "yearBuilt"), _reso(page, "yearBuilt"))


def year_built_from_json_ld(page: ListingPage) -> Any:
    return _json_ld(page, "yearBuilt")


def year_built_from_text(page: ListingPage) -> Any:
    match = _search(page, _YEAR_TEXT)
    return match.group(1) if match else None


def property_type_from_embedded(page: ListingPage) -> Any:
    return _first(_embedded(page, "homeType", "propertyType"), _reso(page, "homeType", "propertySubType"))


def property_type_from_json_ld(page: ListingPage) -> Any:
    for node in page.json_ld:
        types = node.get("@type")
        for schema_type in types if isinstance(types, list) else [types]:
            if schema_type in _SCHEMA_RESIDENCE_TYPES:
                return _SCHEMA_RESIDENCE_TYPES[schema_type]
        if isinstance(node.get("additionalType"), str):
            return node["additionalType"].rsplit("/", 1)[-1]
    return None


def property_type_from_text(page: ListingPage) -> Any:
    match = _search(page, _PROPERTY_TYPE_TEXT)
    return match.group(1) if match else None


def lot_size_from_embedded(page: ListingPage) -> Any:
    value = _first(_embedded(page, "lotAreaValue"), _embedded(page, "lotSize"))
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        units = (clean_text(_embedded(page, "lotAreaUnits")) or "sqft").lower()
        if units == "square feet":
            units = "sqft"
        number = int(value) if float(value).is_integer() else value
        return f"{number:,} {units}"
    return _reso(page, "lotSize")


def lot_size_from_text(page: ListingPage) -> Any:
    match = _search(page, _LOT_TEXT)
    return match.group(1) if match else None


def features_from_embedded(page: ListingPage) -> Any:
    features = []
    for fact in _reso(page, "atAGlanceFacts") or []:
        if isinstance(fact, dict) and fact.get("factLabel") and fact.get("factValue"):
            features.append(f"{fact['factLabel']}: {fact['factValue']}")
    for key in ("interiorFeatures", "exteriorFeatures", "appliances"):
        values = _reso(page, key)
        if isinstance(values, list):
            features.extend(v for v in values if isinstance(v, str))
    return features or None


def features_from_json_ld(page: ListingPage) -> Any:
    features = []
    amenities = _json_ld(page, "amenityFeature")
    for amenity in amenities if isinstance(amenities, list) else [amenities]:
        if isinstance(amenity, str):
            features.append(amenity)
        elif isinstance(amenity, dict) and amenity.get("name"):
            value = amenity.get("value")
            if value in (None, True, "True", "true"):
                features.append(str(amenity["name"]))
            elif value not in (False, "False", "false"):
                features.append(f"{amenity['name']}: {value}")
    return features or None


# --- normalizers bound to fields ------------------------------------------

def _normalize_bathrooms(value: Any) -> Any:
    return parse_count(value, allow_fraction=True)


def _normalize_images(value: Any) -> Any:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return None
    return rank_images(value, settings.MAX_IMAGES)


def _normalize_features(value: Any) -> Any:
    if not isinstance(value, (list, tuple)):
        return None
    return unique(value) or None


def _extractor(field: str, normalize: Callable[[Any], Any], *matchers: Matcher) -> FieldExtractor:
    return FieldExtractor(field=field, normalize=normalize, matchers=tuple(matchers))


EXTRACTORS: dict[str, FieldExtractor] = {
    e.field: e
    for e in (
        _extractor(
            "address", normalize_address,
            address_from_embedded, address_from_json_ld, address_from_og_title,
            address_from_dom, address_from_title, address_from_url,
        ),
        _extractor(
            "city", normalize_city,
            city_from_embedded, city_from_json_ld, city_from_titles, city_from_dom,
        ),
        _extractor(
            "state", normalize_state,
            state_from_embedded, state_from_json_ld, state_from_titles, state_from_url,
        ),
        _extractor(
            "zip_code", normalize_zip,
            zip_from_embedded, zip_from_json_ld, zip_from_titles, zip_from_url,
        ),
        _extractor(
            "price", parse_currency,
            price_from_embedded, price_from_json_ld, price_from_og_title,
            price_from_og_description, price_from_dom,
        ),
        _extractor(
            "bedrooms", parse_count,
            bedrooms_from_embedded, bedrooms_from_json_ld, bedrooms_from_dom, bedrooms_from_text,
        ),
        _extractor(
            "bathrooms", _normalize_bathrooms,
            bathrooms_from_embedded, bathrooms_from_json_ld, bathrooms_from_dom, bathrooms_from_text,
        ),
        _extractor(
            "square_feet", parse_area,
            square_feet_from_embedded, square_feet_from_json_ld, square_feet_from_dom,
            square_feet_from_text,
        ),
        _extractor(
            "mls_id", normalize_mls_id,
            mls_id_from_embedded, mls_id_from_json_ld, mls_id_from_text, mls_id_from_url,
        ),
        _extractor(
            "status", humanize_enum,
            status_from_embedded, status_from_dom, status_from_text,
        ),
        _extractor(
            "description", clean_text,
            description_from_embedded, description_from_json_ld, description_from_dom,
            description_from_meta,
        ),
        _extractor(
            "images", _normalize_images,
            images_from_embedded, images_from_json_ld, images_from_dom,
        ),
        _extractor(
            "year_built", parse_year,
            year_built_from_embedded, year_built_from_json_ld, year_built_from_text,
        ),
        _extractor(
            "property_type", humanize_enum,
            property_type_from_embedded, property_type_from_json_ld, property_type_from_text,
        ),
        _extractor(
            "lot_size", clean_text,
            lot_size_from_embedded, lot_size_from_text,
        ),
        _extractor(
            "features", _normalize_features,
            features_from_embedded, features_from_json_ld,
        ),
    )
}


def extractors_for(fields: Iterable[str]) -> list[FieldExtractor]:
    """Extractors for ``fields``, in the given order.

    Raises KeyError for a field without an extractor.
    """
    return [EXTRACTORS[name] for name in fields]
