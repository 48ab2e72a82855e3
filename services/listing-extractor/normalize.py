"""Value normalizers shared by the field extractors.

Every function takes whatever a matcher found (text, number, None) and
returns a value in the field's declared shape, or None when the input
cannot be read as one. None of them raise for bad input.
"""

import math
import re
from typing import Any, Iterable
from urllib.parse import urljoin

from models import is_absolute_http_url

_WHITESPACE = re.compile(r"\s+")
_DOLLARS = re.compile(r"\$\s*(\d[\d,]*(?:\.\d+)?)\s*([kKmM](?![a-zA-Z]))?")
_MONEY = re.compile(r"(\d[\d,]*(?:\.\d+)?)\s*([kKmM](?![a-zA-Z]))?")
_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_AREA = re.compile(r"(\d[\d,]*(?:\.\d+)?)")
_YEAR = re.compile(r"\b(\d{4})\b")
_ZIP = re.compile(r"\b(\d{5})(?:[-\s]?(\d{4}))?\b")
_STATE_ZIP_TAIL = re.compile(r"[\s,]+([A-Za-z]{2})\.?\s+(\d{5}(?:-\d{4})?)\s*$")

US_STATES = {
    "ALABAMA": "AL", "ALASKA": "AK", "ARIZONA": "AZ", "ARKANSAS": "AR",
    "CALIFORNIA": "CA", "COLORADO": "CO", "CONNECTICUT": "CT", "DELAWARE": "DE",
    "FLORIDA": "FL", "GEORGIA": "GA", "HAWAII": "HI", "IDAHO": "ID",
    "ILLINOIS": "IL", "INDIANA": "IN", "IOWA": "IA", "KANSAS": "KS",
    "KENTUCKY": "KY", "LOUISIANA": "LA", "MAINE": "ME", "MARYLAND": "MD",
    "MASSACHUSETTS": "MA", "MICHIGAN": "MI", "MINNESOTA": "MN", "MISSISSIPPI": "MS",
    "MISSOURI": "MO", "MONTANA": "MT", "NEBRASKA": "NE", "NEVADA": "NV",
    "NEW HAMPSHIRE": "NH", "NEW JERSEY": "NJ", "NEW MEXICO": "NM", "NEW YORK": "NY",
    "NORTH CAROLINA": "NC", "NORTH DAKOTA": "ND", "OHIO": "OH", "OKLAHOMA": "OK",
    "OREGON": "OR", "PENNSYLVANIA": "PA", "RHODE ISLAND": "RI", "SOUTH CAROLINA": "SC",
    "SOUTH DAKOTA": "SD", "TENNESSEE": "TN", "TEXAS": "TX", "UTAH": "UT",
    "VERMONT": "VT", "VIRGINIA": "VA", "WASHINGTON": "WA", "WEST VIRGINIA": "WV",
    "WISCONSIN": "WI", "WYOMING": "WY", "DISTRICT OF COLUMBIA": "DC",
}
STATE_CODES = frozenset(US_STATES.values())

_SUSPICIOUS_ADDRESS = re.compile(
    r"^\$\d|^price\b|^listing\b|^property\b|access denied|captcha|\berror\b|denied",
    re.I,
)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints too large for a float
        return False


def _whole(number: float) -> int | float:
    return int(number) if float(number).is_integer() else number


def clean_text(value: Any) -> str | None:
    """Collapse whitespace; numbers become text. Empty results are None."""
    if _is_number(value):
        value = str(_whole(value))
    if not isinstance(value, str):
        return None
    text = _WHITESPACE.sub(" ", value).strip()
    return text or None


def humanize_enum(value: Any) -> str | None:
    """``FOR_SALE`` -> ``For Sale``; ordinary text is only cleaned."""
    text = clean_text(value)
    if text and re.fullmatch(r"[A-Z0-9_]+", text) and ("_" in text or len(text) > 3):
        return text.replace("_", " ").title()
    return text


def parse_currency(value: Any) -> int | None:
    """Whole-dollar amount from ``523900``, ``"$1,575,000"`` or ``"$1.2M"``."""
    if _is_number(value):
        amount = round(value)
        return amount if amount > 0 else None
    text = clean_text(value)
    if not text:
        return None
    match = _DOLLARS.search(text) or _MONEY.search(text)
    if not match:
        return None
    number = float(match.group(1).replace(",", ""))
    suffix = (match.group(2) or "").lower()
    if suffix == "k":
        number *= 1_000
    elif suffix == "m":
        number *= 1_000_000
    if not math.isfinite(number):
        return None
    amount = round(number)
    return amount if amount > 0 else None


def parse_count(value: Any, allow_fraction: bool = False) -> int | float | None:
    """Room count from ``3``, ``"3 bd"`` or ``"2.5 baths"``."""
    if _is_number(value):
        number = float(value)
    else:
        text = clean_text(value)
        if not text:
            return None
        match = _NUMBER.search(text.replace(",", ""))
        if not match:
            return None
        number = float(match.group(0))
    if number < 0 or not math.isfinite(number):
        return None
    if not number.is_integer() and not allow_fraction:
        return None
    return _whole(number)


def parse_area(value: Any) -> int | None:
    """Square footage from ``1850``, ``"1,850 sqft"``."""
    if _is_number(value):
        number = float(value)
    else:
        text = clean_text(value)
        if not text:
            return None
        match = _AREA.search(text)
        if not match:
            return None
        number = float(match.group(1).replace(",", ""))
    if not math.isfinite(number):
        return None
    return round(number) if number > 0 else None


def parse_year(value: Any) -> int | None:
    if _is_number(value) and float(value).is_integer():
        year = int(value)
        return year if 1000 <= year <= 9999 else None
    text = clean_text(value)
    if not text:
        return None
    match = _YEAR.search(text)
    return int(match.group(1)) if match else None


def normalize_state(value: Any) -> str | None:
    """Two-letter code from ``"UT"``, ``"utah"``; None otherwise."""
    text = clean_text(value)
    if not text:
        return None
    letters = re.sub(r"[^A-Z ]", "", text.upper()).strip()
    letters = _WHITESPACE.sub(" ", letters)
    if letters in US_STATES:
        return US_STATES[letters]
    letters = letters.replace(" ", "")
    return letters if len(letters) == 2 else None


def normalize_zip(value: Any) -> str | None:
    text = clean_text(value)
    if not text:
        return None
    match = _ZIP.search(text)
    if not match:
        return None
    return f"{match.group(1)}-{match.group(2)}" if match.group(2) else match.group(1)


def normalize_city(value: Any) -> str | None:
    text = clean_text(value)
    if not text or text.isdigit() or len(text) > 50:
        return None
    return text


def normalize_address(value: Any) -> str | None:
    """Street line; rejects block-page text and strings without a house number."""
    text = clean_text(value)
    if not text or len(text) < 5:
        return None
    if _SUSPICIOUS_ADDRESS.search(text) or not re.search(r"\d", text):
        return None
    return text.rstrip(" ,")


def normalize_mls_id(value: Any) -> str | None:
    text = clean_text(value)
    if not text:
        return None
    return re.sub(r"\s+", "", text).lstrip("#:") or None


def split_address_line(text: str) -> tuple[str | None, str | None, str | None, str | None]:
    """Split ``"123 Main St, Provo, UT 84601"`` into (street, city, state, zip).

    Without commas the city cannot be told apart from the street, so only
    state and ZIP are peeled off the end.
    """
    line = clean_text(text)
    if not line:
        return None, None, None, None
    state = zip_code = None
    tail = _STATE_ZIP_TAIL.search(line)
    if tail:
        state, zip_code = tail.group(1).upper(), tail.group(2)
        line = line[: tail.start()].rstrip(" ,")
    parts = [p.strip() for p in line.split(",") if p.strip()]
    if not parts:
        return None, None, state, zip_code
    if len(parts) == 1:
        return parts[0], None, state, zip_code
    return ", ".join(parts[:-1]), parts[-1], state, zip_code


def unique(items: Iterable[Any]) -> list[str]:
    """Cleaned, de-duplicated strings in first-seen order."""
    seen: set[str] = set()
    out = []
    for item in items:
        text = clean_text(item)
        if text and text not in seen:
            seen.add(text)
            out.append(text)
    return out


# --- images ---------------------------------------------------------------

_PANORAMA = re.compile(r"-p_([a-e])\.", re.I)
_PATH_SIZE = re.compile(r"/(\d+)x(\d+)/")
_QUERY_WIDTH = re.compile(r"[?&](?:w|width)=(\d+)")
_UNDERSCORE_WIDTH = re.compile(r"_w(?:idth)?(\d+)")
_CC_FT = re.compile(r"-cc_ft_(\d+)")
_PLAIN_IMAGE = re.compile(r"\.(jpg|jpeg|png|webp)$", re.I)
_SIZE_HINT = re.compile(r"[-_](ft_|p_|thumb|small|medium|large|w\d+)", re.I)
_NOT_A_PHOTO = ("logo", "icon", "/floorplans/", "sprite", "avatar", "badge")


def resolution_score(url: str) -> float:
    """Rough quality rank of an image URL from its size hints (higher is better)."""
    panorama = _PANORAMA.search(url)
    if panorama:
        return {"e": 5000, "d": 4000, "c": 3000, "b": 2000, "a": 1000}[panorama.group(1).lower()]
    path_size = _PATH_SIZE.search(url)
    if path_size:
        return min(int(path_size.group(1)) * int(path_size.group(2)) / 100, 5000)
    query_width = _QUERY_WIDTH.search(url)
    if query_width:
        return min(int(query_width.group(1)) / 10, 5000)
    underscore_width = _UNDERSCORE_WIDTH.search(url)
    if underscore_width:
        return min(int(underscore_width.group(1)) / 10, 5000)
    cc_ft = _CC_FT.search(url)
    if cc_ft:
        width = int(cc_ft.group(1))
        if width >= 3840:
            return 5000
        if width >= 1920:
            return 4000
        if width >= 960:
            return 3000
        if width >= 640:
            return 2000
        return 1000
    if any(word in url for word in ("xlarge", "full", "hd")):
        return 4000
    if "large" in url:
        return 3000
    if "medium" in url:
        return 2000
    if "small" in url or "thumb" in url:
        return 1000
    # no size hint at all usually means the original upload
    if _PLAIN_IMAGE.search(url) and not _SIZE_HINT.search(url):
        return 6000
    return 1000


def canonical_photo(url: str) -> str:
    """Same key for every resolution variant of one photo."""
    canonical = re.sub(r"-p_[a-e]\.jpg", ".jpg", url, flags=re.I)
    canonical = re.sub(r"-cc_ft_\d+", "", canonical)
    canonical = re.sub(r"[?&](?:w|width)=\d+", "", canonical)
    canonical = re.sub(r"_w\d+", "", canonical)
    canonical = re.sub(r"/\d+x\d+/", "/", canonical)
    return canonical.split("?")[0]


def is_listing_photo(url: Any) -> bool:
    if not is_absolute_http_url(url):
        return False
    lower = url.lower()
    return not any(marker in lower for marker in _NOT_A_PHOTO)


def absolutize(url: Any, base_url: str) -> str | None:
    text = clean_text(url)
    if not text or text.startswith("data:"):
        return None
    try:
        return urljoin(base_url, text)
    except ValueError:
        return None


def rank_images(urls: Iterable[Any], limit: int) -> list[str] | None:
    """Keep the best variant of each photo, best first, at most ``limit``.

    Ties keep gallery order.
    """
    candidates = [u.strip() for u in urls if isinstance(u, str) and is_listing_photo(u.strip())]
    best: dict[str, tuple[float, int, str]] = {}
    for index, url in enumerate(candidates):
        score = resolution_score(url)
        key = canonical_photo(url)
        current = best.get(key)
        if current is None:
            best[key] = (score, index, url)
        elif score > current[0]:
            best[key] = (score, current[1], url)
    ranked = sorted(best.values(), key=lambda item: (-item[0], item[1]))
    images = [url for _, _, url in ranked[: max(limit, 0)]]
    return images or None
