"""Tests for the field catalogue and tagged field values."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from field_schema import FIELD_NAMES, FieldSchema, build_schema
from models import FieldShape, FieldSpec, FieldTier, FieldValue, ListingRecord, RawExtraction


class TestSchema:
    def test_default_tiers(self):
        schema = build_schema()
        assert schema.names_in_tier(FieldTier.REQUIRED) == ("address", "price", "bedrooms", "bathrooms")
        assert "mls_id" in schema.names_in_tier(FieldTier.IMPORTANT)
        assert "square_feet" in schema.names_in_tier(FieldTier.OPTIONAL)

    def test_declaration_order(self):
        assert build_schema().names == FIELD_NAMES
        assert FIELD_NAMES[0] == "address"

    def test_tier_override(self):
        schema = build_schema({"square_feet": "required", "images": "optional"})
        assert schema["square_feet"].tier is FieldTier.REQUIRED
        assert schema["images"].tier is FieldTier.OPTIONAL

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="garage"):
            build_schema({"garage": "required"})

    def test_unknown_tier_rejected(self):
        with pytest.raises(ValueError):
            build_schema({"price": "critical"})

    def test_duplicate_names_rejected(self):
        spec = FieldSpec(name="price", tier=FieldTier.REQUIRED, shape=FieldShape.CURRENCY)
        with pytest.raises(ValueError, match="Duplicate"):
            FieldSchema((spec, spec))


class TestFieldValue:
    def _spec(self, shape: FieldShape) -> FieldSpec:
        return FieldSpec(name="f", tier=FieldTier.OPTIONAL, shape=shape)

    def test_scalar(self):
        value = FieldValue.for_spec(self._spec(FieldShape.SCALAR), "123 Main St")
        assert value.kind == "scalar"
        assert value.to_python() == "123 Main St"

    def test_currency_requires_positive_int(self):
        spec = self._spec(FieldShape.CURRENCY)
        assert FieldValue.for_spec(spec, 350000).value == 350000
        for bad in (0, -1, 1.5, "350000", True):
            with pytest.raises(ValueError):
                FieldValue.for_spec(spec, bad)

    def test_numeric(self):
        spec = self._spec(FieldShape.NUMERIC)
        assert FieldValue.for_spec(spec, 2.5).value == 2.5
        assert FieldValue.for_spec(spec, 0).value == 0
        for bad in (-1, float("nan"), "3"):
            with pytest.raises(ValueError):
                FieldValue.for_spec(spec, bad)

    def test_url_list(self):
        spec = self._spec(FieldShape.URL_LIST)
        value = FieldValue.for_spec(spec, ["https://photos.zillowstatic.com/fp/a.jpg"])
        assert value.kind == "list"
        assert value.to_python() == ["https://photos.zillowstatic.com/fp/a.jpg"]
        with pytest.raises(ValueError):
            FieldValue.for_spec(spec, ["/relative.jpg"])
        with pytest.raises(ValueError):
            FieldValue.for_spec(spec, [])

    def test_string_list_rejects_plain_string(self):
        with pytest.raises(ValueError):
            FieldValue.for_spec(self._spec(FieldShape.STRING_LIST), "Garage")


class TestRecord:
    def test_from_extraction(self):
        schema = build_schema()
        raw = RawExtraction.from_values(schema, {
            "address": "123 Main St",
            "zip_code": "84601",
            "price": 525000,
            "images": ["https://photos.zillowstatic.com/fp/a.jpg", "https://photos.zillowstatic.com/fp/b.jpg"],
            "square_feet": None,
        })
        assert not raw.has("square_feet")

        record = ListingRecord.from_extraction(raw, url="https://www.zillow.com/x", source="zillow")
        assert record.address == "123 Main St"
        assert record.image_url == "https://photos.zillowstatic.com/fp/a.jpg"
        assert record.square_feet is None

        dumped = record.model_dump(by_alias=True)
        assert dumped["zipCode"] == "84601"
        assert dumped["imageUrl"] == "https://photos.zillowstatic.com/fp/a.jpg"

    def test_misfit_values_are_dropped(self):
        schema = build_schema()
        raw = RawExtraction.from_values(schema, {
            "address": "123 Main St",
            "price": -5,
            "images": ["/relative/photo.jpg"],
            "features": "Garage",
        })
        assert raw.has("address")
        assert not raw.has("price")
        assert not raw.has("images")
        assert not raw.has("features")
