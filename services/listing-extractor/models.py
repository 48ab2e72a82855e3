"""Pydantic models for listing extraction results and image relay decisions.

Everything here is frozen: a result is built once per request and handed to
the caller as-is. JSON output uses camelCase aliases (``extractedFields``,
``overallValid``) to match the consumers of the extract endpoint.
"""

import logging
import math
from enum import Enum
from typing import Any, Iterable, Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

_RESULT_CONFIG = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class FieldTier(str, Enum):
    REQUIRED = "required"
    IMPORTANT = "important"
    OPTIONAL = "optional"


class FieldShape(str, Enum):
    SCALAR = "scalar"
    NUMERIC = "numeric"
    CURRENCY = "currency"
    STRING_LIST = "list-of-string"
    URL_LIST = "list-of-url"

    @property
    def is_list(self) -> bool:
        return self in (FieldShape.STRING_LIST, FieldShape.URL_LIST)


class FieldSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    tier: FieldTier
    shape: FieldShape


def is_absolute_http_url(value: Any) -> bool:
    """True for strings like ``https://host/path``."""
    if not isinstance(value, str) or not value:
        return False
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.hostname)


class FieldValue(BaseModel):
    """A recovered value tagged with its variant (scalar or list).

    Use ``for_spec`` to build one: it refuses values that do not fit the
    field's declared shape.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["scalar", "list"]
    value: str | int | float | tuple[str, ...]

    @classmethod
    def for_spec(cls, spec: FieldSpec, value: Any) -> "FieldValue":
        shape = spec.shape
        if shape.is_list:
            if isinstance(value, str) or not isinstance(value, (list, tuple)) or not value:
                raise ValueError(f"{spec.name}: expected a non-empty list, got {value!r}")
            items = tuple(value)
            if not all(isinstance(item, str) and item.strip() for item in items):
                raise ValueError(f"{spec.name}: list items must be non-empty strings")
            if shape is FieldShape.URL_LIST and not all(is_absolute_http_url(item) for item in items):
                raise ValueError(f"{spec.name}: list items must be absolute http(s) URLs")
            return cls(kind="list", value=items)

        if shape is FieldShape.SCALAR:
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{spec.name}: expected non-empty text, got {value!r}")
        elif shape is FieldShape.CURRENCY:
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{spec.name}: expected a positive whole amount, got {value!r}")
        elif shape is FieldShape.NUMERIC:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{spec.name}: expected a number, got {value!r}")
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"{spec.name}: expected a non-negative finite number, got {value!r}")
        return cls(kind="scalar", value=value)

    def to_python(self) -> Any:
        if self.kind == "list":
            return list(self.value)  # type: ignore[arg-type]
        return self.value


class RawExtraction(BaseModel):
    """Recovered values keyed by field name; absent fields have no entry."""

    model_config = ConfigDict(frozen=True)

    values: dict[str, FieldValue] = {}

    @classmethod
    def from_values(cls, specs: Iterable[FieldSpec], found: dict[str, Any]) -> "RawExtraction":
        """Keep the values that fit their field's shape; others are dropped with a warning."""
        values: dict[str, FieldValue] = {}
        for spec in specs:
            raw = found.get(spec.name)
            if raw is None:
                continue
            try:
                values[spec.name] = FieldValue.for_spec(spec, raw)
            except ValueError as e:
                logger.warning("Discarding %s: %s", spec.name, e)
        return cls(values=values)

    def has(self, name: str) -> bool:
        return name in self.values

    def get(self, name: str) -> Any:
        field_value = self.values.get(name)
        return field_value.to_python() if field_value is not None else None


class ValidationIssue(BaseModel):
    model_config = _RESULT_CONFIG

    field: str
    severity: Literal["error", "warning", "info"]
    message: str


class ValidationReport(BaseModel):
    model_config = _RESULT_CONFIG

    overall_valid: bool
    score: int
    missing_required: tuple[str, ...]
    missing_important: tuple[str, ...]
    extracted_fields: tuple[str, ...]
    missing_fields: tuple[str, ...]
    issues: tuple[ValidationIssue, ...] = ()


class ListingRecord(BaseModel):
    """Normalized listing attributes suitable for re-publication."""

    model_config = _RESULT_CONFIG

    url: str
    source: str
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    price: int | None = None
    bedrooms: int | float | None = None
    bathrooms: int | float | None = None
    square_feet: int | float | None = None
    mls_id: str | None = None
    status: str | None = None
    description: str | None = None
    image_url: str | None = None
    images: list[str] = []
    year_built: int | float | None = None
    property_type: str | None = None
    lot_size: str | None = None
    features: list[str] = []

    @classmethod
    def from_extraction(cls, raw: RawExtraction, url: str, source: str) -> "ListingRecord":
        attrs = {name: value.to_python() for name, value in raw.values.items() if name in cls.model_fields}
        images = attrs.get("images") or []
        return cls(url=url, source=source, image_url=images[0] if images else None, **attrs)


class ExtractionResult(BaseModel):
    model_config = _RESULT_CONFIG

    success: bool
    data: ListingRecord | None = None
    error: str | None = None
    extracted_fields: tuple[str, ...] = ()
    missing_fields: tuple[str, ...] = ()
    validation: ValidationReport


class ExtractRequest(BaseModel):
    """Body of the extract endpoint. Both fields optional so the handler can answer 400 itself."""

    url: Any = None
    html: str | None = None


class RejectionReason(str, Enum):
    INVALID_URL = "invalid-url"
    UNTRUSTED_HOST = "untrusted-host"
    NOT_AN_IMAGE_RESOURCE = "not-an-image-resource"
    LOOKS_LIKE_LISTING_PAGE = "looks-like-listing-page"
    UPSTREAM_FETCH_FAILED = "upstream-fetch-failed"


class ImageEligibility(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: RejectionReason | None = None
    message: str = ""


class ImageRejection(BaseModel):
    model_config = _RESULT_CONFIG

    reason: RejectionReason
    message: str
    status_code: int | None = None


class RelayedImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: bytes
    content_type: str
    cache_control: str
    source_url: str
