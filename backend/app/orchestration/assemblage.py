"""
Assemblage report pipeline (2-3 adjacent lots combined into one site).

  1. create report (type "assemblage") and record the literal input
  2. geoservice per lot, in address order          CRITICAL
  3. zola per lot                                   NON_CRITICAL, isolated per lot
  4. per-lot controlling FAR
  5. combined lot area (partial when a lot has no usable area)
  6. assemblage FAR method: shared_district / per_lot_sum
  7. dwelling unit factor caps
  8. zoning consistency and contamination risk      each isolated
  9. assemblage_aggregation record, report → ready

Per-lot records carry ``lot_index`` and ``child_index`` so readers can
rebuild address order. Lots in every output list keep input order.

Four manual-review flags are reported side by side and never merged:
the aggregation (FAR method) flag, density, zoning consistency and
contamination risk.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Mapping, Optional

from app.config import settings
from app.models.schemas import ParcelAttributes
from app.orchestration.single_lot import (
    extract_geoservice,
    extract_parcel,
    validate_geoservice_payload,
    validate_parcel_payload,
)
from app.orchestration.stages import (
    CriticalStageFailed,
    Stage,
    StagePolicy,
    computation,
    mark_failed,
    run_stage,
)
from app.providers import GEOSERVICE, ZOLA, BaseProvider, require_provider
from app.services.report_store import ResultStore
from app.zoning_engine.contamination_risk import compute_contamination_risk
from app.zoning_engine.density import (
    DensityRules,
    LotDensityInput,
    compute_assemblage_density,
)
from app.zoning_engine.far_resolver import (
    FarCandidate,
    resolve_controlling_far,
    valid_lot_area,
)
from app.zoning_engine.far_tables import normalize_district_profile, normalize_street_width
from app.zoning_engine.zoning_consistency import compute_zoning_consistency

logger = logging.getLogger(__name__)

ASSEMBLAGE_VERSION = "v1"

SHARED_DISTRICT = "shared_district"
PER_LOT_SUM = "per_lot_sum"

INPUT_STAGE = Stage("assemblage_input", StagePolicy.NON_CRITICAL)
GEOSERVICE_STAGE = Stage(GEOSERVICE, StagePolicy.CRITICAL)
ZOLA_STAGE = Stage(ZOLA, StagePolicy.NON_CRITICAL)
AGGREGATION_STAGE = Stage("assemblage_aggregation", StagePolicy.NON_CRITICAL)
CONSISTENCY_STAGE = Stage("assemblage_zoning_consistency", StagePolicy.NON_CRITICAL)
CONTAMINATION_STAGE = Stage("assemblage_contamination_risk", StagePolicy.NON_CRITICAL)


@dataclass
class LotContext:
    """One lot of an assemblage as it moves through the pipeline."""
    child_index: int
    address: str
    bbl: str
    normalized_address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    parcel: Optional[ParcelAttributes] = None


@dataclass
class AssemblageOutcome:
    report_id: str
    status: str
    combined_lot_area_sqft: Optional[float] = None
    total_buildable_sqft: Optional[float] = None
    far_method: Optional[str] = None
    requires_manual_review: Optional[bool] = None
    lots: list[dict] = field(default_factory=list)
    flags: dict = field(default_factory=dict)
    density: Optional[dict] = None
    zoning_consistency: Optional[dict] = None
    contamination_risk: Optional[dict] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def validate_addresses(addresses) -> list[str]:
    """Trimmed address list; ValueError unless 2-3 non-blank strings."""
    min_lots = settings.assemblage_min_lots
    max_lots = settings.assemblage_max_lots
    if not isinstance(addresses, (list, tuple)):
        raise ValueError("addresses must be a list of strings")
    if not min_lots <= len(addresses) <= max_lots:
        raise ValueError(
            f"Assemblage requires {min_lots} to {max_lots} addresses, got {len(addresses)}"
        )
    cleaned = []
    for i, address in enumerate(addresses):
        if not isinstance(address, str) or not address.strip():
            raise ValueError(f"Address {i + 1} must be a non-empty string")
        cleaned.append(address.strip())
    return cleaned


# ──────────────────────────────────────────────────────────────────
# AGGREGATION
# ──────────────────────────────────────────────────────────────────

def _lot_row(ctx: LotContext, far: FarCandidate) -> dict:
    raw_area = ctx.parcel.lotarea if ctx.parcel is not None else None
    area = valid_lot_area(raw_area)
    buildable = far.max_far * area if far.max_far is not None and area is not None else None
    return {
        "child_index": ctx.child_index,
        "address": ctx.address,
        "normalized_address": ctx.normalized_address,
        "bbl": ctx.bbl,
        "lotarea": area if area is not None else 0.0,
        "zonedist1": ctx.parcel.zonedist1 if ctx.parcel is not None else None,
        "status": "ok" if area is not None else "missing_lotarea",
        "max_far": far.max_far,
        "lot_buildable_sqft": buildable,
        "far_method": far.far_method,
        "requires_manual_review": far.requires_manual_review,
        "zoning_district_candidates": far.zoning_district_candidates,
        "far_candidates": far.far_candidates,
        "assumptions": far.assumptions,
    }


def select_far_method(profiles: list[Optional[str]], review_flags: list[bool]) -> str:
    """shared_district only when every lot has the same profile and none needs review."""
    same_profile = (
        len(profiles) >= 2
        and all(p is not None and p == profiles[0] for p in profiles)
    )
    if same_profile and not any(review_flags):
        return SHARED_DISTRICT
    return PER_LOT_SUM


def aggregate_lots(
    lots: list[LotContext],
    street_width: str = "narrow",
    rules: DensityRules | None = None,
) -> dict:
    """Combined area, FAR method and density candidates for the assemblage."""
    rows = []
    profiles = []
    review_flags = []
    density_inputs = []
    combined_lot_area = 0.0
    total_buildable = 0.0
    missing_lot_area = False

    for ctx in lots:
        far = resolve_controlling_far(ctx.parcel, street_width)
        row = _lot_row(ctx, far)
        rows.append(row)
        profiles.append(far.profile)
        review_flags.append(far.requires_manual_review)

        if row["status"] == "ok":
            combined_lot_area += row["lotarea"]
        else:
            missing_lot_area = True
        if row["lot_buildable_sqft"] is not None:
            total_buildable += row["lot_buildable_sqft"]

        density_inputs.append(LotDensityInput(
            child_index=ctx.child_index,
            bbl=ctx.bbl,
            lotarea=row["lotarea"],
            max_far=far.max_far,
            lot_buildable_sqft=row["lot_buildable_sqft"],
            far_requires_manual_review=far.requires_manual_review,
            parcel=ctx.parcel,
        ))

    far_method = select_far_method(profiles, review_flags)
    density = compute_assemblage_density(density_inputs, far_method, rules)

    return {
        "lots": rows,
        "combined_lot_area_sqft": combined_lot_area,
        "total_buildable_sqft": total_buildable,
        "far_method": far_method,
        "requires_manual_review": far_method == PER_LOT_SUM,
        "density": density.to_dict(),
        "assumptions": list(density.assumptions),
        "flags": {
            "missing_lot_area": missing_lot_area,
            "partial_total": missing_lot_area,
        },
    }


# ──────────────────────────────────────────────────────────────────
# PIPELINE
# ──────────────────────────────────────────────────────────────────

async def generate_assemblage_report(
    addresses: list[str],
    organization_id: str,
    user_id: str,
    client_id: str | None = None,
    *,
    store: ResultStore,
    providers: Mapping[str, BaseProvider],
    street_width: str | None = None,
    rules: DensityRules | None = None,
) -> AssemblageOutcome:
    """Run the assemblage pipeline for 2-3 addresses.

    Raises ValueError before creating a report when the address list or
    street width is invalid. Any lot's geoservice failure returns a ``failed`` outcome
    without raising.
    """
    address_list = validate_addresses(addresses)
    street_width = normalize_street_width(street_width or settings.default_street_width)
    rules = rules or DensityRules.from_settings()

    report = None
    try:
        report = await store.create_report(
            address="; ".join(address_list),
            addresses=address_list,
            name="Assemblage",
            report_type="assemblage",
            organization_id=organization_id,
            created_by=user_id,
            client_id=client_id,
        )
        logger.info("Assemblage report %s created for %d lots", report.id, len(address_list))

        await run_stage(
            store, report.id, INPUT_STAGE,
            computation(lambda: {
                "addresses": address_list,
                "requested_at": datetime.now(timezone.utc).isoformat(),
                "version": ASSEMBLAGE_VERSION,
            }),
        )

        geoservice = require_provider(providers, GEOSERVICE)
        lots: list[LotContext] = []

        for i, address in enumerate(address_list):
            try:
                geo_result = await run_stage(
                    store, report.id, GEOSERVICE_STAGE,
                    lambda: geoservice.execute({"address": address}, report.id),
                    lot_index=i,
                    context={"child_index": i, "address": address},
                    validate=validate_geoservice_payload,
                )
                extract = extract_geoservice(geo_result)
                if extract is None or not extract.bbl:
                    raise CriticalStageFailed(
                        GEOSERVICE_STAGE,
                        f"Geoservice did not return BBL for address {i + 1}",
                        result=geo_result, lot_index=i,
                    )
            except CriticalStageFailed as e:
                await store.update_status(report.id, "failed")
                error = str(e)
                if e.result is not None and not e.result.succeeded:
                    error = f"Geoservice failed for address {i + 1}: {e}"
                logger.warning("Assemblage report %s failed: %s", report.id, error)
                return AssemblageOutcome(report_id=report.id, status="failed", error=error)

            lots.append(LotContext(
                child_index=i,
                address=address,
                bbl=extract.bbl,
                normalized_address=extract.normalized_address or address,
                lat=extract.lat,
                lng=extract.lng,
            ))

        zola = providers.get(ZOLA)
        for ctx in lots:
            if zola is None:
                continue
            zola_result = await run_stage(
                store, report.id, ZOLA_STAGE,
                lambda: zola.execute(
                    {
                        "address": ctx.address,
                        "bbl": ctx.bbl,
                        "normalized_address": ctx.normalized_address,
                        "location": {"lat": ctx.lat, "lng": ctx.lng},
                    },
                    report.id,
                ),
                lot_index=ctx.child_index,
                context={"child_index": ctx.child_index, "address": ctx.address},
                validate=validate_parcel_payload,
            )
            ctx.parcel = extract_parcel(zola_result)

        parcels = [ctx.parcel for ctx in lots]

        consistency = await run_stage(
            store, report.id, CONSISTENCY_STAGE,
            computation(
                lambda: compute_zoning_consistency(parcels, normalize_district_profile).to_dict()
            ),
        )
        contamination = await run_stage(
            store, report.id, CONTAMINATION_STAGE,
            computation(lambda: compute_contamination_risk(parcels).to_dict()),
        )
        aggregation = await run_stage(
            store, report.id, AGGREGATION_STAGE,
            computation(aggregate_lots, lots, street_width, rules),
        )

        await store.update_status(report.id, "ready")

        payload = aggregation.data if aggregation.succeeded else {}
        logger.info(
            "Assemblage report %s ready: combined_lot_area_sqft=%s total_buildable_sqft=%s",
            report.id, payload.get("combined_lot_area_sqft"), payload.get("total_buildable_sqft"),
        )

        return AssemblageOutcome(
            report_id=report.id,
            status="ready",
            combined_lot_area_sqft=payload.get("combined_lot_area_sqft"),
            total_buildable_sqft=payload.get("total_buildable_sqft"),
            far_method=payload.get("far_method"),
            requires_manual_review=payload.get("requires_manual_review"),
            lots=payload.get("lots", []),
            flags=payload.get("flags", {}),
            density=payload.get("density"),
            zoning_consistency=consistency.data if consistency.succeeded else None,
            contamination_risk=contamination.data if contamination.succeeded else None,
        )
    except Exception:
        logger.exception("Error in assemblage orchestration for %s", address_list)
        if report is not None:
            await mark_failed(store, report.id)
        raise
