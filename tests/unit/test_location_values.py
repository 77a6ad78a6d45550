from geo_correlation.geo.location_values import (
    RawLocation,
    StructuredLocation,
    as_location_value,
    extract_department,
    extract_location_field,
    extract_municipality,
)


def test_as_location_value_tags_strings_and_objects():
    assert as_location_value("Mixco") == RawLocation("Mixco")
    assert as_location_value({"municipality": "Mixco"}) == StructuredLocation({"municipality": "Mixco"})
    assert as_location_value(12) is None
    assert as_location_value(None) is None


def test_plain_string_is_trimmed():
    assert extract_municipality("  Mixco ") == "Mixco"
    assert extract_department("   ") is None


def test_structured_value_reads_requested_field():
    value = {"department": "Guatemala", "municipality": "Mixco", "formatted_address": "Mixco, Guatemala"}
    assert extract_department(value) == "Guatemala"
    assert extract_municipality(value) == "Mixco"


def test_present_but_blank_field_does_not_fall_back():
    value = {"department": "Guatemala", "municipality": "", "formatted_address": "Zona 1, Guatemala"}
    assert extract_municipality(value) is None


def test_missing_fields_fall_back_to_formatted_address_first_segment():
    value = {"formatted_address": "Esquipulas, Chiquimula, Guatemala", "name": "Basílica"}
    assert extract_municipality(value) == "Esquipulas"


def test_fallback_uses_name_then_label():
    assert extract_department({"name": " Petén "}) == "Petén"
    assert extract_department({"label": "Izabal"}) == "Izabal"
    assert extract_department({"lat": 14.6, "lng": -90.5}) is None


def test_non_string_field_value_counts_as_empty():
    assert extract_location_field({"municipio": 7, "name": "Mixco"}, ("municipio",)) is None
