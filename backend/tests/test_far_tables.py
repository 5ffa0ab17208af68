"""Tests for FAR lookup tables."""

from __future__ import annotations

import pytest

from app.zoning_engine.far_tables import (
    COMMERCIAL_RESIDENTIAL_EQUIVALENTS,
    RESIDENTIAL_FAR,
    get_max_residential_far,
    is_contextual,
    normalize_district_code,
    normalize_district_profile,
    normalize_street_width,
)


class TestResidentialFAR:
    """Tabulated maximum residential FAR by district."""

    def test_r1_low_density(self):
        lookup = get_max_residential_far("R1")
        assert lookup.far == 0.50
        assert lookup.assumption is None

    def test_r4b(self):
        assert get_max_residential_far("R4B").far == 0.90

    def test_r6b_contextual(self):
        lookup = get_max_residential_far("R6B")
        assert lookup.far == 2.0
        assert lookup.contextual is True
        assert lookup.profile == "R6B"

    def test_r10(self):
        assert get_max_residential_far("R10").far == 10.0

    def test_lowercase_and_whitespace(self):
        assert get_max_residential_far("  r7a ").far == 4.0

    def test_city_of_yes_high_density(self):
        assert RESIDENTIAL_FAR["R11"] == 12.0
        assert RESIDENTIAL_FAR["R12"] == 15.0


class TestStreetWidthFAR:
    """Quality Housing FAR that depends on street width."""

    def test_r6_defaults_to_narrow(self):
        lookup = get_max_residential_far("R6")
        assert lookup.far == 2.2
        assert "narrow" in lookup.assumption

    def test_r6_wide(self):
        assert get_max_residential_far("R6", "wide").far == 3.0

    def test_r7_2_profile_is_r7(self):
        lookup = get_max_residential_far("R7-2")
        assert lookup.far == 3.44
        assert lookup.profile == "R7"
        assert lookup.contextual is False

    def test_r8_wide(self):
        assert get_max_residential_far("R8", "wide").far == 7.2

    def test_width_is_case_insensitive(self):
        lookup = get_max_residential_far("R6", " WIDE ")
        assert lookup.far == 3.0
        assert "wide street assumed" in lookup.assumption

    def test_unknown_width_rejected(self):
        with pytest.raises(ValueError, match="street width"):
            get_max_residential_far("R6", "sideways")

    @pytest.mark.parametrize("value,expected", [
        (None, "narrow"), ("narrow", "narrow"), ("Wide", "wide"), (" NARROW ", "narrow"),
    ])
    def test_normalize(self, value, expected):
        assert normalize_street_width(value) == expected


class TestCommercialEquivalents:

    def test_c4_3_uses_r7_1(self):
        assert COMMERCIAL_RESIDENTIAL_EQUIVALENTS["C4-3"] == "R7-1"
        lookup = get_max_residential_far("C4-3")
        assert lookup.far == 3.44
        assert "residential equivalent" in lookup.assumption

    def test_c6_4_uses_r10(self):
        assert get_max_residential_far("C6-4").far == 10.0

    def test_commercial_profile_not_collapsed(self):
        assert get_max_residential_far("C4-4A").profile == "C4-4A"

    @pytest.mark.parametrize("district", ["C8-1", "M1-1", "C1-2", "C3"])
    def test_no_residential_allowance(self, district):
        assert get_max_residential_far(district) is None


class TestFallbacks:

    def test_unknown_variant_uses_base_district(self):
        lookup = get_max_residential_far("R5-3")
        assert lookup.far == 1.25
        assert lookup.profile == "R5"
        assert "base R5" in lookup.assumption

    def test_none_and_blank(self):
        assert get_max_residential_far(None) is None
        assert get_max_residential_far("   ") is None

    def test_unrecognized_code(self):
        assert get_max_residential_far("PARK") is None


class TestNormalization:

    @pytest.mark.parametrize("district,expected", [
        ("R7-2", "R7"),
        ("R3-1", "R3"),
        ("r7-1", "R7"),
        ("R6B", "R6B"),
        ("C4-3", "C4-3"),
        ("R10", "R10"),
    ])
    def test_profile(self, district, expected):
        assert normalize_district_profile(district) == expected

    def test_profile_none(self):
        assert normalize_district_profile(None) is None
        assert normalize_district_profile("") is None

    def test_code(self):
        assert normalize_district_code(" r6a ") == "R6A"
        assert normalize_district_code(42) is None

    def test_contextual_suffixes(self):
        assert is_contextual("R7X")
        assert is_contextual("R9D")
        assert not is_contextual("R7-2")
        assert not is_contextual("R10")

    @pytest.mark.parametrize("district", ["R1-2A", "R2X", "R3A", "R4B", "R5D"])
    def test_low_density_letter_districts_not_contextual(self, district):
        assert not is_contextual(district)
        assert get_max_residential_far(district).contextual is False

    def test_contextual_lowercase(self):
        assert is_contextual("r6b")
