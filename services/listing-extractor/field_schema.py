"""Catalogue of extractable listing fields.

Declaration order is significant: extracted/missing field lists are always
reported in this order. Tiers are configuration (see ``FIELD_TIERS``); only
the shapes and the set of names are fixed.
"""

from typing import Iterator, Mapping

from config import settings
from models import FieldShape, FieldSpec, FieldTier

_CATALOGUE: tuple[tuple[str, FieldTier, FieldShape], ...] = (
    ("address", FieldTier.REQUIRED, FieldShape.SCALAR),
    ("city", FieldTier.IMPORTANT, FieldShape.SCALAR),
    ("state", FieldTier.IMPORTANT, FieldShape.SCALAR),
    ("zip_code", FieldTier.IMPORTANT, FieldShape.SCALAR),
    ("price", FieldTier.REQUIRED, FieldShape.CURRENCY),
    ("bedrooms", FieldTier.REQUIRED, FieldShape.NUMERIC),
    ("bathrooms", FieldTier.REQUIRED, FieldShape.NUMERIC),
    ("square_feet", FieldTier.OPTIONAL, FieldShape.NUMERIC),
    ("mls_id", FieldTier.IMPORTANT, FieldShape.SCALAR),
    ("status", FieldTier.OPTIONAL, FieldShape.SCALAR),
    ("description", FieldTier.IMPORTANT, FieldShape.SCALAR),
    ("images", FieldTier.IMPORTANT, FieldShape.URL_LIST),
    ("year_built", FieldTier.OPTIONAL, FieldShape.NUMERIC),
    ("property_type", FieldTier.OPTIONAL, FieldShape.SCALAR),
    ("lot_size", FieldTier.OPTIONAL, FieldShape.SCALAR),
    ("features", FieldTier.OPTIONAL, FieldShape.STRING_LIST),
)

FIELD_NAMES: tuple[str, ...] = tuple(name for name, _, _ in _CATALOGUE)


class FieldSchema:
    """Ordered, immutable set of FieldSpecs with unique names."""

    def __init__(self, specs: tuple[FieldSpec, ...]):
        names = [spec.name for spec in specs]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate field names in schema: {', '.join(duplicates)}")
        self._specs = tuple(specs)
        self._by_name = {spec.name: spec for spec in self._specs}

    def __iter__(self) -> Iterator[FieldSpec]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __getitem__(self, name: str) -> FieldSpec:
        return self._by_name[name]

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self._specs)

    def names_in_tier(self, tier: FieldTier) -> tuple[str, ...]:
        return tuple(spec.name for spec in self._specs if spec.tier is tier)


def build_schema(tier_overrides: Mapping[str, str] | None = None) -> FieldSchema:
    """Build the field schema, applying ``{field: tier}`` overrides.

    Raises ValueError for unknown field names or tier values.
    """
    overrides = dict(tier_overrides or {})
    unknown = sorted(set(overrides) - set(FIELD_NAMES))
    if unknown:
        raise ValueError(f"Unknown fields in tier overrides: {', '.join(unknown)}")

    specs = []
    for name, tier, shape in _CATALOGUE:
        if name in overrides:
            tier = FieldTier(overrides[name])
        specs.append(FieldSpec(name=name, tier=tier, shape=shape))
    return FieldSchema(tuple(specs))


def default_schema() -> FieldSchema:
    """Schema built from the ``FIELD_TIERS`` setting."""
    return build_schema(settings.FIELD_TIERS)
