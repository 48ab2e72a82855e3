"""Completeness scoring and sanity checks for a RawExtraction.

``validate`` is pure: no network, no clock, same input gives the same
report. Sanity issues are advisory and never change ``overall_valid``;
only missing required fields do.
"""

import re

from field_schema import FieldSchema
from models import FieldTier, RawExtraction, ValidationIssue, ValidationReport
from normalize import STATE_CODES

TIER_WEIGHTS = {
    FieldTier.REQUIRED: 3,
    FieldTier.IMPORTANT: 2,
    FieldTier.OPTIONAL: 1,
}

MIN_PRICE = 1_000
MAX_PRICE = 500_000_000
MAX_BEDROOMS = 20
MAX_BATHROOMS = 30
MIN_SQFT = 100
MAX_SQFT = 100_000
MIN_YEAR_BUILT = 1600
MIN_PRICE_PER_SQFT = 10
MAX_PRICE_PER_SQFT = 2_000

_ZIP_FORMAT = re.compile(r"\d{5}(?:-\d{4})?")


def _number(raw: RawExtraction, name: str) -> int | float | None:
    value = raw.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _check_values(raw: RawExtraction) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []

    def warn(field: str, message: str):
        issues.append(ValidationIssue(field=field, severity="warning", message=message))

    price = _number(raw, "price")
    if price is not None:
        if price < MIN_PRICE:
            warn("price", f"Price ${price:,} seems unusually low")
        elif price > MAX_PRICE:
            warn("price", f"Price ${price:,} seems unusually high")

    bedrooms = _number(raw, "bedrooms")
    if bedrooms is not None and bedrooms > MAX_BEDROOMS:
        warn("bedrooms", f"{bedrooms} bedrooms seems unusually high")

    bathrooms = _number(raw, "bathrooms")
    if bathrooms is not None and bathrooms > MAX_BATHROOMS:
        warn("bathrooms", f"{bathrooms} bathrooms seems unusually high")

    sqft = _number(raw, "square_feet")
    if sqft is not None:
        if sqft < MIN_SQFT:
            warn("square_feet", f"{sqft} sq ft seems unusually small")
        elif sqft > MAX_SQFT:
            warn("square_feet", f"{sqft:,} sq ft seems unusually large")

    year_built = _number(raw, "year_built")
    if year_built is not None and year_built < MIN_YEAR_BUILT:
        warn("year_built", f"Year built {year_built} seems unlikely")

    state = raw.get("state")
    if isinstance(state, str) and state.upper() not in STATE_CODES:
        warn("state", f"'{state}' is not a US state code")

    zip_code = raw.get("zip_code")
    if isinstance(zip_code, str) and not _ZIP_FORMAT.fullmatch(zip_code):
        warn("zip_code", f"'{zip_code}' is not a valid ZIP code")

    mls_id = raw.get("mls_id")
    if isinstance(mls_id, str) and not 3 <= len(mls_id) <= 20:
        warn("mls_id", f"MLS id '{mls_id}' has an unusual length")

    if price is not None and sqft:
        per_sqft = price / sqft
        if per_sqft < MIN_PRICE_PER_SQFT or per_sqft > MAX_PRICE_PER_SQFT:
            issues.append(ValidationIssue(
                field="price",
                severity="info",
                message=f"Price per sq ft (${per_sqft:,.0f}) is outside the usual range",
            ))

    return issues


def validate(raw: RawExtraction, schema: FieldSchema) -> ValidationReport:
    """Score ``raw`` against ``schema``."""
    extracted = tuple(spec.name for spec in schema if raw.has(spec.name))
    missing = tuple(spec.name for spec in schema if not raw.has(spec.name))
    missing_required = tuple(n for n in schema.names_in_tier(FieldTier.REQUIRED) if not raw.has(n))
    missing_important = tuple(n for n in schema.names_in_tier(FieldTier.IMPORTANT) if not raw.has(n))

    total = sum(TIER_WEIGHTS[spec.tier] for spec in schema)
    earned = sum(TIER_WEIGHTS[spec.tier] for spec in schema if raw.has(spec.name))
    score = round(100 * earned / total) if total else 0

    return ValidationReport(
        overall_valid=not missing_required,
        score=score,
        missing_required=missing_required,
        missing_important=missing_important,
        extracted_fields=extracted,
        missing_fields=missing,
        issues=tuple(_check_values(raw)),
    )
