"""Tests for dwelling unit factor rounding and assemblage density candidates."""

from __future__ import annotations

import pytest

from app.models.schemas import ParcelAttributes
from app.zoning_engine.density import (
    CANDIDATE_DUF_APPLIES,
    CANDIDATE_DUF_NOT_APPLICABLE,
    METHOD_COMBINED,
    METHOD_PER_LOT,
    DensityRules,
    LotDensityInput,
    compute_assemblage_density,
    is_duf_applicable,
    lot_dwelling_unit_cap,
    round_dwelling_units,
)


# ──────────────────────────────────────────────────────────────────
# HELPERS
# ──────────────────────────────────────────────────────────────────

def _make_lot(
    index: int,
    lotarea: float = 2000.0,
    max_far: float | None = 2.0,
    review: bool = False,
    **parcel_fields,
) -> LotDensityInput:
    fields = {"bbl": f"30123400{index + 1:02d}", "block": 1234, "bldgclass": "C0", "unitsres": 4}
    fields.update(parcel_fields)
    buildable = max_far * lotarea if max_far is not None and lotarea > 0 else None
    return LotDensityInput(
        child_index=index,
        bbl=fields["bbl"],
        lotarea=lotarea,
        max_far=max_far,
        lot_buildable_sqft=buildable,
        far_requires_manual_review=review,
        parcel=ParcelAttributes(**fields),
    )


# ──────────────────────────────────────────────────────────────────
# ROUNDING
# ──────────────────────────────────────────────────────────────────

class TestRounding:

    def test_fraction_below_threshold_rounds_down(self):
        assert round_dwelling_units(1000) == (1.47, 1)

    def test_fraction_at_threshold_rounds_up(self):
        assert round_dwelling_units(1190) == (1.75, 2)

    def test_exact_multiple(self):
        assert round_dwelling_units(6800) == (10.0, 10)

    def test_custom_factor(self):
        assert round_dwelling_units(1000, dwelling_unit_factor=500) == (2.0, 2)

    def test_non_positive_factor(self):
        with pytest.raises(ValueError):
            round_dwelling_units(1000, dwelling_unit_factor=0)


class TestApplicability:

    def test_multiple_dwelling_class(self):
        assert is_duf_applicable(ParcelAttributes(bldgclass="D1"))

    def test_unit_count_over_two(self):
        assert is_duf_applicable(ParcelAttributes(bldgclass="A1", unitsres=3))

    def test_two_family(self):
        assert not is_duf_applicable(ParcelAttributes(bldgclass="B1", unitsres=2))

    def test_missing_parcel(self):
        assert not is_duf_applicable(None)


class TestLotCap:

    def test_cap(self):
        cap = lot_dwelling_unit_cap(ParcelAttributes(bldgclass="C0"), 5000.0)
        assert cap["units_raw"] == 7.35
        assert cap["max_dwelling_units"] == 7
        assert cap["duf_applicable"] is True

    def test_zero_cap_is_none(self):
        cap = lot_dwelling_unit_cap(ParcelAttributes(bldgclass="C0"), 300.0)
        assert cap["max_dwelling_units"] is None

    def test_no_buildable_area(self):
        cap = lot_dwelling_unit_cap(ParcelAttributes(bldgclass="C0"), None)
        assert cap["units_raw"] is None
        assert cap["max_dwelling_units"] is None


# ──────────────────────────────────────────────────────────────────
# ASSEMBLAGE
# ──────────────────────────────────────────────────────────────────

class TestAssemblageDensity:

    def test_shared_district_uses_combined_area(self):
        # 2 x 1190 sq ft: combined 2380 / 680 = 3.5 → 3; per lot 2 + 2 = 4
        lots = [_make_lot(0, lotarea=595.0), _make_lot(1, lotarea=595.0)]
        result = compute_assemblage_density(lots, "shared_district")
        default = result.default_candidate
        assert default.id == CANDIDATE_DUF_APPLIES
        assert default.method_used == METHOD_COMBINED
        assert default.max_dwelling_units == 3
        assert default.max_res_floor_area_sqft == 2380.0
        assert result.requires_manual_review is False

    def test_per_lot_sum_when_far_method_differs(self):
        lots = [_make_lot(0, lotarea=595.0), _make_lot(1, lotarea=595.0)]
        result = compute_assemblage_density(lots, "per_lot_sum")
        default = result.default_candidate
        assert default.method_used == METHOD_PER_LOT
        assert default.max_dwelling_units == 4
        assert result.requires_manual_review is True
        assert any("per-lot" in a for a in result.assumptions)

    def test_overlay_forces_per_lot(self):
        lots = [_make_lot(0), _make_lot(1, overlay1="C2-4")]
        result = compute_assemblage_density(lots, "shared_district")
        assert result.flags["default_method"] == METHOD_PER_LOT
        assert result.candidates[0].per_lot_breakdown[1]["requires_manual_review"] is True

    def test_lot_requiring_review_forces_per_lot(self):
        lots = [_make_lot(0), _make_lot(1, review=True)]
        result = compute_assemblage_density(lots, "shared_district")
        assert result.flags["default_method"] == METHOD_PER_LOT
        assert "multiple zoning districts" in result.candidates[0].per_lot_breakdown[1]["notes"]

    def test_always_two_candidates(self):
        result = compute_assemblage_density([_make_lot(0), _make_lot(1)], "shared_district")
        assert [c.id for c in result.candidates] == [
            CANDIDATE_DUF_APPLIES, CANDIDATE_DUF_NOT_APPLICABLE,
        ]
        alternative = result.candidates[1]
        assert alternative.duf_applicable is False
        assert alternative.max_dwelling_units is None
        assert alternative.requires_manual_review is True

    def test_all_lots_excluded_reports_none_not_zero(self):
        lots = [_make_lot(0, lotarea=0.0), _make_lot(1, max_far=None)]
        result = compute_assemblage_density(lots, "per_lot_sum")
        default = result.candidates[0]
        assert default.max_dwelling_units is None
        assert result.flags["density_missing_inputs"] is True
        assert result.flags["density_computed"] is False
        assert default.notes is not None

    def test_partial_total_excludes_missing_lot(self):
        lots = [_make_lot(0, lotarea=595.0), _make_lot(1, lotarea=0.0)]
        result = compute_assemblage_density(lots, "per_lot_sum")
        breakdown = result.candidates[0].per_lot_breakdown
        assert breakdown[1]["missing_inputs"] is True
        assert breakdown[1]["units_rounded"] is None
        assert result.candidates[0].max_dwelling_units == 2

    def test_not_applicable_defaults_to_alternative(self):
        lots = [
            _make_lot(0, bldgclass="A1", unitsres=1),
            _make_lot(1, bldgclass="B2", unitsres=2),
        ]
        result = compute_assemblage_density(lots, "shared_district")
        assert result.default_candidate_id == CANDIDATE_DUF_NOT_APPLICABLE
        assert result.candidates[0].max_dwelling_units is None
        assert result.candidates[0].max_res_floor_area_sqft is None

    def test_custom_rules(self):
        rules = DensityRules(dwelling_unit_factor=1000, round_up_fraction=0.5)
        result = compute_assemblage_density([_make_lot(0), _make_lot(1)], "shared_district", rules)
        assert result.duf_value == 1000
        assert result.default_candidate.max_dwelling_units == 8

    def test_breakdown_preserves_lot_order(self):
        lots = [_make_lot(i) for i in range(3)]
        result = compute_assemblage_density(lots, "shared_district")
        assert [r["child_index"] for r in result.candidates[0].per_lot_breakdown] == [0, 1, 2]
