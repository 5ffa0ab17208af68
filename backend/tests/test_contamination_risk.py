"""Tests for assemblage contamination (approval) risk."""

from __future__ import annotations

import pytest

from app.models.schemas import ParcelAttributes
from app.zoning_engine.contamination_risk import (
    CONTAMINATION_NOTES,
    compute_contamination_risk,
    normalize_landmark,
)


def _clean_lot(lot: int = 1, **fields) -> ParcelAttributes:
    base = {
        "bbl": f"301234{lot:04d}",
        "block": 1234,
        "lot": lot,
        "borough": "BK",
        "landmark": None,
        "histdist": None,
        "spdist1": None,
        "overlay1": None,
    }
    base.update(fields)
    return ParcelAttributes(**base)


class TestNormalizeLandmark:

    @pytest.mark.parametrize("value", ["Y", "yes", "LANDMARK", " landmark ", 1, True, "1"])
    def test_true(self, value):
        assert normalize_landmark(value) is True

    @pytest.mark.parametrize("value", ["N", "no", "", "  ", None, 0, False, "0"])
    def test_false(self, value):
        assert normalize_landmark(value) is False

    @pytest.mark.parametrize("value", ["INDIVIDUAL", "maybe", 2])
    def test_unrecognized(self, value):
        assert normalize_landmark(value) is None


class TestRiskLevel:

    def test_clean_lots(self):
        result = compute_contamination_risk([_clean_lot(1), _clean_lot(2)])
        assert result.summary.contamination_risk == "none"
        assert result.summary.confidence == "high"
        assert result.summary.requires_manual_review is False

    def test_historic_district_is_moderate(self):
        result = compute_contamination_risk([_clean_lot(1), _clean_lot(2, histdist="X")])
        assert result.summary.contamination_risk == "moderate"
        assert result.summary.any_historic_district is True
        assert result.summary.requires_manual_review is True
        assert result.lots[1]["flags"]["historic_district_name"] == "X"

    def test_landmark_is_high(self):
        result = compute_contamination_risk([_clean_lot(1), _clean_lot(2, landmark="Y")])
        assert result.summary.contamination_risk == "high"
        assert result.summary.requires_manual_review is True
        assert result.summary.counts["landmark_lots"] == 1

    def test_overlay_and_special_district(self):
        result = compute_contamination_risk([
            _clean_lot(1, overlay1="C2-4"),
            _clean_lot(2, spdist1="MX-2"),
        ])
        assert result.summary.contamination_risk == "moderate"
        assert result.summary.any_overlay is True
        assert result.summary.any_special_district is True
        assert result.summary.counts["overlay_lots"] == 1
        assert result.summary.counts["special_district_lots"] == 1


class TestConfidence:

    def test_one_lot_missing_data(self):
        result = compute_contamination_risk([_clean_lot(1), None])
        assert result.summary.confidence == "medium"
        assert result.summary.requires_manual_review is True

    def test_two_lots_missing_data(self):
        result = compute_contamination_risk([_clean_lot(1), None, ParcelAttributes()])
        assert result.summary.confidence == "low"

    def test_all_lots_missing_data(self):
        result = compute_contamination_risk([None, None])
        assert result.summary.confidence == "low"
        assert result.summary.contamination_risk == "none"

    def test_lot_without_key_fields(self):
        bare = ParcelAttributes(bbl="3012340002", block=1234, lot=2, zonedist1="R6B")
        result = compute_contamination_risk([_clean_lot(1), bare])
        assert result.summary.confidence == "medium"

    def test_unrecognized_landmark(self):
        result = compute_contamination_risk([_clean_lot(1), _clean_lot(2, landmark="MAYBE")])
        assert result.summary.contamination_risk == "none"
        assert result.summary.confidence == "medium"
        assert result.lots[1]["flags"]["is_landmarked"] is None


class TestNotes:

    def test_static_notes(self):
        result = compute_contamination_risk([_clean_lot(1), _clean_lot(2)])
        assert result.notes == list(CONTAMINATION_NOTES)

    def test_notes_not_shared(self):
        first = compute_contamination_risk([_clean_lot(1)])
        first.notes.append("edited")
        second = compute_contamination_risk([_clean_lot(1)])
        assert "edited" not in second.notes

    def test_idempotent(self):
        lots = [_clean_lot(1, landmark="MAYBE"), None, _clean_lot(3, histdist="Park Slope")]
        assert (
            compute_contamination_risk(lots).to_dict()
            == compute_contamination_risk(lots).to_dict()
        )
