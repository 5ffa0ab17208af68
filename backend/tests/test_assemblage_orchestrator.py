"""Tests for the assemblage report pipeline."""

from __future__ import annotations

import pytest

from app.orchestration import generate_assemblage_report
from app.orchestration.assemblage import (
    PER_LOT_SUM,
    SHARED_DISTRICT,
    select_far_method,
    validate_addresses,
)
from app.zoning_engine.density import METHOD_COMBINED, METHOD_PER_LOT
from fakes import (
    FakeGeoservice,
    FakeZola,
    PassthroughGeoservice,
    PassthroughZola,
    make_extract,
    make_parcel,
)

ADDRESSES = ["120 Flatbush Ave, Brooklyn", "122 Flatbush Ave, Brooklyn", "124 Flatbush Ave, Brooklyn"]
BBLS = ["3011200001", "3011200002", "3011200003"]


# ──────────────────────────────────────────────────────────────────
# HELPERS
# ──────────────────────────────────────────────────────────────────

def _make_providers(n: int = 2, parcel_overrides: dict[int, dict] | None = None,
                    missing_parcels: tuple[int, ...] = (), extracts: dict | None = None):
    parcel_overrides = parcel_overrides or {}
    if extracts is None:
        extracts = {ADDRESSES[i]: make_extract(BBLS[i]) for i in range(n)}
    parcels = {
        BBLS[i]: make_parcel(BBLS[i], **parcel_overrides.get(i, {}))
        for i in range(n) if i not in missing_parcels
    }
    return {"geoservice": FakeGeoservice(extracts), "zola": FakeZola(parcels)}


async def _generate(store, providers, n: int = 2, addresses=None):
    return await generate_assemblage_report(
        addresses if addresses is not None else ADDRESSES[:n],
        "org-1", "user-1", store=store, providers=providers,
    )


# ──────────────────────────────────────────────────────────────────
# VALIDATION
# ──────────────────────────────────────────────────────────────────

class TestValidation:

    @pytest.mark.parametrize("addresses", [
        ["120 Flatbush Ave"],
        ["a", "b", "c", "d"],
        [],
    ])
    def test_lot_count(self, addresses):
        with pytest.raises(ValueError, match="2 to 3 addresses"):
            validate_addresses(addresses)

    def test_blank_address(self):
        with pytest.raises(ValueError, match="Address 2"):
            validate_addresses(["120 Flatbush Ave", "  "])

    def test_not_a_list(self):
        with pytest.raises(ValueError):
            validate_addresses("120 Flatbush Ave")

    def test_trims(self):
        assert validate_addresses([" a ", "b"]) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_invalid_input_creates_no_report(self, store):
        providers = _make_providers()
        with pytest.raises(ValueError):
            await _generate(store, providers, addresses=ADDRESSES[:1])
        assert store._reports == {}
        assert providers["geoservice"].calls == []


class TestFarMethod:

    def test_same_profile(self):
        assert select_far_method(["R6B", "R6B"], [False, False]) == SHARED_DISTRICT

    def test_different_profiles(self):
        assert select_far_method(["R6B", "R7A"], [False, False]) == PER_LOT_SUM

    def test_review_flag(self):
        assert select_far_method(["R6B", "R6B"], [False, True]) == PER_LOT_SUM

    def test_unknown_profile(self):
        assert select_far_method([None, None], [False, False]) == PER_LOT_SUM


# ──────────────────────────────────────────────────────────────────
# PIPELINE
# ──────────────────────────────────────────────────────────────────

class TestHappyPath:

    @pytest.mark.asyncio
    async def test_shared_district(self, store):
        outcome = await _generate(store, _make_providers())
        assert outcome.status == "ready"
        assert outcome.far_method == SHARED_DISTRICT
        assert outcome.requires_manual_review is False
        assert outcome.combined_lot_area_sqft == 4000.0
        assert outcome.total_buildable_sqft == 8000.0
        assert outcome.flags == {"missing_lot_area": False, "partial_total": False}

    @pytest.mark.asyncio
    async def test_density_uses_combined_area(self, store):
        outcome = await _generate(store, _make_providers())
        # 8000 / 680 = 11.76 -> 12
        default = outcome.density["candidates"][0]
        assert default["method_used"] == METHOD_COMBINED
        assert default["max_dwelling_units"] == 12
        assert outcome.density["duf_value"] == 680

    @pytest.mark.asyncio
    async def test_records_in_pipeline_order(self, store):
        outcome = await _generate(store, _make_providers())
        records = await store.get_results(outcome.report_id)
        assert [(r.source_key, r.lot_index) for r in records] == [
            ("assemblage_input", None),
            ("geoservice", 0),
            ("geoservice", 1),
            ("zola", 0),
            ("zola", 1),
            ("assemblage_zoning_consistency", None),
            ("assemblage_contamination_risk", None),
            ("assemblage_aggregation", None),
        ]
        assert [r.sequence for r in records] == list(range(1, 9))

    @pytest.mark.asyncio
    async def test_input_record(self, store):
        outcome = await _generate(store, _make_providers())
        records = await store.get_results(outcome.report_id)
        assert records[0].data["addresses"] == ADDRESSES[:2]
        assert records[0].data["version"] == "v1"
        assert "requested_at" in records[0].data

    @pytest.mark.asyncio
    async def test_per_lot_records_carry_child_index(self, store):
        outcome = await _generate(store, _make_providers(n=3), n=3)
        records = await store.get_results(outcome.report_id)
        geo = [r for r in records if r.source_key == "geoservice"]
        assert [(r.data["child_index"], r.data["address"]) for r in geo] == [
            (i, ADDRESSES[i]) for i in range(3)
        ]

    @pytest.mark.asyncio
    async def test_report_header(self, store):
        outcome = await _generate(store, _make_providers())
        report = await store.get_report(outcome.report_id)
        assert report.report_type == "assemblage"
        assert report.address == "; ".join(ADDRESSES[:2])
        assert report.addresses == ADDRESSES[:2]
        assert report.status == "ready"

    @pytest.mark.asyncio
    async def test_lot_rows_in_input_order(self, store):
        outcome = await _generate(store, _make_providers(n=3), n=3)
        assert [lot["child_index"] for lot in outcome.lots] == [0, 1, 2]
        assert [lot["bbl"] for lot in outcome.lots] == BBLS


class TestGeoserviceFailure:

    @pytest.mark.asyncio
    async def test_failure_on_second_lot_stops(self, store):
        extracts = {ADDRESSES[0]: make_extract(BBLS[0]), ADDRESSES[2]: make_extract(BBLS[2])}
        providers = _make_providers(n=3, extracts=extracts)
        outcome = await _generate(store, providers, n=3)

        assert outcome.status == "failed"
        assert outcome.error.startswith("Geoservice failed for address 2:")
        assert providers["geoservice"].calls == ADDRESSES[:2]
        assert providers["zola"].calls == []

        records = await store.get_results(outcome.report_id)
        assert [(r.source_key, r.status) for r in records] == [
            ("assemblage_input", "succeeded"),
            ("geoservice", "succeeded"),
            ("geoservice", "failed"),
        ]
        assert (await store.get_report(outcome.report_id)).status == "failed"

    @pytest.mark.asyncio
    async def test_missing_bbl(self, store):
        no_bbl = make_extract(BBLS[1])
        no_bbl["bbl"] = None
        extracts = {ADDRESSES[0]: make_extract(BBLS[0]), ADDRESSES[1]: no_bbl}
        outcome = await _generate(store, _make_providers(extracts=extracts))
        assert outcome.status == "failed"
        assert outcome.error == "Geoservice did not return BBL for address 2"


class TestPartialData:

    @pytest.mark.asyncio
    async def test_zola_failure_isolated_to_one_lot(self, store):
        outcome = await _generate(store, _make_providers(missing_parcels=(1,)))
        assert outcome.status == "ready"

        records = await store.get_results(outcome.report_id)
        zola = [(r.lot_index, r.status) for r in records if r.source_key == "zola"]
        assert zola == [(0, "succeeded"), (1, "failed")]

        assert outcome.lots[1]["status"] == "missing_lotarea"
        assert outcome.lots[1]["lotarea"] == 0.0
        assert outcome.lots[1]["max_far"] is None
        assert outcome.combined_lot_area_sqft == 2000.0
        assert outcome.flags["partial_total"] is True
        assert outcome.far_method == PER_LOT_SUM
        assert outcome.zoning_consistency["summary"]["confidence"] == "low"

    @pytest.mark.asyncio
    async def test_invalid_lot_area_treated_as_missing(self, store):
        overrides = {1: {"lotarea": -50.0}}
        outcome = await _generate(store, _make_providers(parcel_overrides=overrides))
        assert outcome.lots[1]["status"] == "missing_lotarea"
        assert outcome.lots[1]["lotarea"] == 0.0
        assert outcome.combined_lot_area_sqft == 2000.0
        assert outcome.total_buildable_sqft == 4000.0

    @pytest.mark.asyncio
    async def test_all_lots_excluded_density_is_none(self, store):
        overrides = {0: {"lotarea": 0.0}, 1: {"lotarea": 0.0}}
        outcome = await _generate(store, _make_providers(parcel_overrides=overrides))
        assert outcome.status == "ready"
        assert outcome.combined_lot_area_sqft == 0.0
        assert outcome.density["candidates"][0]["max_dwelling_units"] is None
        assert outcome.density["flags"]["density_missing_inputs"] is True


class TestUpstreamPayloads:
    """Raw provider payloads are parsed inside their per-lot stage."""

    @pytest.mark.asyncio
    async def test_placeholder_lot_area_sets_missing_flag(self, store):
        providers = _make_providers()
        providers["zola"] = PassthroughZola({
            BBLS[0]: make_parcel(BBLS[0]),
            BBLS[1]: make_parcel(BBLS[1], lotarea="N/A"),
        })
        outcome = await _generate(store, providers)

        assert outcome.status == "ready"
        assert outcome.flags["missing_lot_area"] is True
        assert outcome.flags["partial_total"] is True
        assert outcome.lots[1]["status"] == "missing_lotarea"
        assert outcome.combined_lot_area_sqft == 2000.0

    @pytest.mark.asyncio
    async def test_malformed_parcel_treated_as_absent(self, store):
        providers = _make_providers()
        providers["zola"] = PassthroughZola({
            BBLS[0]: make_parcel(BBLS[0]),
            BBLS[1]: make_parcel(BBLS[1], zonedist1={"code": "R6B"}),
        })
        outcome = await _generate(store, providers)

        assert outcome.status == "ready"
        records = await store.get_results(outcome.report_id)
        zola = [r for r in records if r.source_key == "zola"]
        assert [(r.lot_index, r.status) for r in zola] == [(0, "succeeded"), (1, "failed")]
        assert zola[1].data == {"child_index": 1, "address": ADDRESSES[1]}
        assert outcome.lots[1]["max_far"] is None
        assert outcome.flags["partial_total"] is True

    @pytest.mark.asyncio
    async def test_malformed_extract_returns_failed_outcome(self, store):
        bad = make_extract(BBLS[1])
        bad["bbl"] = ["3011200002"]
        providers = _make_providers()
        providers["geoservice"] = PassthroughGeoservice(
            {ADDRESSES[0]: make_extract(BBLS[0]), ADDRESSES[1]: bad}
        )
        outcome = await _generate(store, providers)

        assert outcome.status == "failed"
        assert outcome.error.startswith("Geoservice failed for address 2:")
        assert providers["zola"].calls == []
        records = await store.get_results(outcome.report_id)
        assert [(r.source_key, r.status) for r in records] == [
            ("assemblage_input", "succeeded"),
            ("geoservice", "succeeded"),
            ("geoservice", "failed"),
        ]

class TestReviewFlags:

    @pytest.mark.asyncio
    async def test_different_districts(self, store):
        overrides = {1: {"zonedist1": "R7A"}}
        outcome = await _generate(store, _make_providers(parcel_overrides=overrides))
        assert outcome.far_method == PER_LOT_SUM
        assert outcome.requires_manual_review is True
        assert outcome.density["flags"]["default_method"] == METHOD_PER_LOT
        assert outcome.zoning_consistency["summary"]["confidence"] == "low"

    @pytest.mark.asyncio
    async def test_flags_stay_independent(self, store):
        overrides = {1: {"landmark": "Y"}}
        outcome = await _generate(store, _make_providers(parcel_overrides=overrides))
        assert outcome.requires_manual_review is False
        assert outcome.density["flags"]["requires_manual_review"] is False
        assert outcome.zoning_consistency["summary"]["requires_manual_review"] is False
        assert outcome.contamination_risk["summary"]["requires_manual_review"] is True
        assert outcome.contamination_risk["summary"]["contamination_risk"] == "high"


class TestUnexpectedError:

    @pytest.mark.asyncio
    async def test_missing_geoservice_marks_failed_and_raises(self, store):
        with pytest.raises(RuntimeError):
            await _generate(store, {})
        (report,) = store._reports.values()
        assert report.status == "failed"
