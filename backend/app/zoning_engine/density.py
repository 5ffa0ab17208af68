"""
Dwelling unit factor (DUF) density caps.

ZR 23-52: the maximum number of dwelling units is the residential floor area
divided by the dwelling unit factor (680 sq ft). Fractions ≥ 0.75 round UP
to one more unit; smaller fractions are dropped.

The DUF applies to standard multiple-dwelling housing. Qualifying affordable,
senior and conversion projects are exempt, so every assemblage result is
returned as a two-candidate toggle:

  - duf_applies:         standard scenario, unit cap from the DUF
  - duf_not_applicable:  affordable/senior/conversion, no DUF cap

Assemblage methods:
  - combined_area_then_duf: sum buildable area across lots, divide once.
    Only valid when the lots share one zoning profile, no lot needs manual
    review, no lot carries an overlay or special district, and no lot is
    missing inputs.
  - per_lot_duf_sum: divide each lot separately, then sum. Used for every
    other case, and always flagged for manual review.

A cap of zero is never reported; lots that were all excluded yield None.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Optional

from app.models.schemas import ParcelAttributes
from app.zoning_engine.far_resolver import (
    BUILDING_MULTIPLE_DWELLING,
    determine_building_type,
)

DWELLING_UNIT_FACTOR = 680
ROUND_UP_FRACTION = 0.75
ROUNDING_RULE = "Fractions >= 0.75 round up; otherwise round down"
DUF_SOURCE_URL = "https://zr.planning.nyc.gov/article-ii/chapter-3#23-52"
DUF_SOURCE_SECTION = "ZR §23-52"

METHOD_COMBINED = "combined_area_then_duf"
METHOD_PER_LOT = "per_lot_duf_sum"

CANDIDATE_DUF_APPLIES = "duf_applies"
CANDIDATE_DUF_NOT_APPLICABLE = "duf_not_applicable"


@dataclass
class DensityRules:
    """Configurable DUF divisor and rounding threshold."""
    dwelling_unit_factor: int = DWELLING_UNIT_FACTOR
    round_up_fraction: float = ROUND_UP_FRACTION

    @classmethod
    def from_settings(cls) -> "DensityRules":
        from app.config import settings
        return cls(
            dwelling_unit_factor=settings.dwelling_unit_factor,
            round_up_fraction=settings.du_round_up_fraction,
        )


def round_dwelling_units(
    floor_area_sqft: float,
    dwelling_unit_factor: int = DWELLING_UNIT_FACTOR,
    round_up_fraction: float = ROUND_UP_FRACTION,
) -> tuple[float, int]:
    """Apply the DUF to a floor area.

    Returns (units_raw rounded to 2 decimals, units_rounded), e.g.
    1,000 sq ft → (1.47, 1) and 1,190 sq ft → (1.75, 2).
    """
    if dwelling_unit_factor <= 0:
        raise ValueError("Dwelling unit factor must be positive")
    raw = floor_area_sqft / dwelling_unit_factor
    whole = int(raw)
    if raw - whole >= round_up_fraction:
        whole += 1
    return round(raw, 2), whole


def is_duf_applicable(parcel: ParcelAttributes | None) -> bool:
    """A lot counts toward DUF housing if it is a multiple dwelling or has 3+ units."""
    if parcel is None:
        return False
    building_type, _ = determine_building_type(parcel.bldgclass)
    if building_type == BUILDING_MULTIPLE_DWELLING:
        return True
    return parcel.unitsres is not None and parcel.unitsres > 2


def lot_dwelling_unit_cap(
    parcel: ParcelAttributes | None,
    buildable_sqft: float | None,
    rules: DensityRules | None = None,
) -> dict:
    """DUF cap for a single lot (single-lot reports)."""
    rules = rules or DensityRules()
    units_raw = None
    units_rounded = None
    if buildable_sqft is not None and buildable_sqft > 0:
        units_raw, units_rounded = round_dwelling_units(
            buildable_sqft, rules.dwelling_unit_factor, rules.round_up_fraction,
        )
    return {
        "duf_applicable": is_duf_applicable(parcel),
        "duf_value": rules.dwelling_unit_factor,
        "units_raw": units_raw,
        "max_dwelling_units": units_rounded or None,
        "rounding_rule": ROUNDING_RULE,
        "source_section": DUF_SOURCE_SECTION,
    }


# ──────────────────────────────────────────────────────────────────
# ASSEMBLAGE DENSITY
# ──────────────────────────────────────────────────────────────────

@dataclass
class LotDensityInput:
    """Per-lot figures the assemblage density step consumes."""
    child_index: int
    bbl: Optional[str]
    lotarea: float
    max_far: Optional[float]
    lot_buildable_sqft: Optional[float]
    far_requires_manual_review: bool
    parcel: Optional[ParcelAttributes] = None


@dataclass
class DensityCandidate:
    id: str
    label: str
    duf_applicable: bool
    method_used: Optional[str]
    max_dwelling_units: Optional[int]
    max_res_floor_area_sqft: Optional[float]
    per_lot_breakdown: list[dict]
    rounding_rule: Optional[str]
    source_url: str
    source_section: str
    notes: Optional[str]
    requires_manual_review: bool


@dataclass
class DensityResult:
    duf_value: int
    default_candidate_id: str
    candidates: list[DensityCandidate]
    flags: dict
    assumptions: list[str] = field(default_factory=list)
    kind: str = "toggle"

    @property
    def default_candidate(self) -> DensityCandidate:
        return next(c for c in self.candidates if c.id == self.default_candidate_id)

    @property
    def requires_manual_review(self) -> bool:
        return self.flags["requires_manual_review"]

    def to_dict(self) -> dict:
        return asdict(self)


def _breakdown_row(lot: LotDensityInput, rules: DensityRules) -> dict:
    parcel = lot.parcel
    has_overlay = bool(parcel and parcel.overlays)
    has_special = bool(parcel and parcel.special_districts)
    missing_inputs = lot.lotarea <= 0 or lot.max_far is None

    buildable = (
        lot.lot_buildable_sqft
        if lot.lot_buildable_sqft is not None and lot.lot_buildable_sqft > 0
        else None
    )
    units_raw = None
    units_rounded = None
    if buildable is not None:
        units_raw, units_rounded = round_dwelling_units(
            buildable, rules.dwelling_unit_factor, rules.round_up_fraction,
        )

    notes = None
    if missing_inputs:
        notes = "Missing lot area or max FAR; excluded from density numeric total."
    elif lot.far_requires_manual_review:
        notes = "FAR required manual review (e.g. multiple zoning districts)."

    return {
        "bbl": lot.bbl,
        "child_index": lot.child_index,
        "lotarea": lot.lotarea,
        "max_far": lot.max_far,
        "buildable_sqft": buildable,
        "units_raw": units_raw,
        "units_rounded": units_rounded,
        "missing_inputs": missing_inputs,
        "has_overlay_or_special_district": has_overlay or has_special,
        "requires_manual_review": (
            lot.far_requires_manual_review or has_overlay or has_special
        ),
        "notes": notes,
    }


def compute_assemblage_density(
    lots: list[LotDensityInput],
    assemblage_far_method: str,
    rules: DensityRules | None = None,
) -> DensityResult:
    """Dwelling unit caps across an assemblage, as a two-candidate toggle."""
    rules = rules or DensityRules()

    breakdown = [_breakdown_row(lot, rules) for lot in lots]
    duf_applicable = any(is_duf_applicable(lot.parcel) for lot in lots)
    missing_inputs = any(row["missing_inputs"] for row in breakdown)
    any_overlay_or_special = any(
        row["has_overlay_or_special_district"] for row in breakdown
    )
    none_require_review = all(not lot.far_requires_manual_review for lot in lots)

    total_buildable = sum(
        lot.lot_buildable_sqft for lot in lots
        if lot.lot_buildable_sqft is not None and lot.lot_buildable_sqft > 0
    )

    # Method 1: combined area, DUF applied once
    units_combined = None
    if total_buildable > 0:
        _, units_combined = round_dwelling_units(
            total_buildable, rules.dwelling_unit_factor, rules.round_up_fraction,
        )

    # Method 2: DUF per lot, then summed
    units_per_lot = sum(
        row["units_rounded"] for row in breakdown
        if row["units_rounded"] is not None and not row["missing_inputs"]
    )

    use_combined = (
        assemblage_far_method == "shared_district"
        and none_require_review
        and not any_overlay_or_special
        and not missing_inputs
    )
    default_method = METHOD_COMBINED if use_combined else METHOD_PER_LOT
    requires_review = not use_combined

    assumptions = []
    if not use_combined and duf_applicable:
        assumptions.append(
            "DUF computed using per-lot method due to mixed zoning or "
            "manual-review flags."
        )
    if missing_inputs:
        assumptions.append(
            "Lots with missing lot area or max FAR excluded from numeric cap; "
            "partial total shown."
        )

    # Zero caps come from excluded lots; report them as unknown
    effective_combined = units_combined if units_combined else None
    effective_per_lot = units_per_lot if units_per_lot > 0 else None
    if not duf_applicable:
        display_units = None
    elif default_method == METHOD_COMBINED:
        display_units = effective_combined
    else:
        display_units = effective_per_lot

    candidates = [
        DensityCandidate(
            id=CANDIDATE_DUF_APPLIES,
            label="Standard (DUF applies)",
            duf_applicable=duf_applicable,
            method_used=default_method,
            max_dwelling_units=display_units,
            max_res_floor_area_sqft=total_buildable if duf_applicable else None,
            per_lot_breakdown=breakdown,
            rounding_rule=ROUNDING_RULE,
            source_url=DUF_SOURCE_URL,
            source_section=DUF_SOURCE_SECTION,
            notes=(
                "Some lots excluded due to missing inputs; see per-lot breakdown."
                if missing_inputs else None
            ),
            requires_manual_review=requires_review,
        ),
        DensityCandidate(
            id=CANDIDATE_DUF_NOT_APPLICABLE,
            label="Affordable/Senior/Conversion (DUF not applicable)",
            duf_applicable=False,
            method_used=None,
            max_dwelling_units=None,
            max_res_floor_area_sqft=None,
            per_lot_breakdown=breakdown,
            rounding_rule=None,
            source_url=DUF_SOURCE_URL,
            source_section=DUF_SOURCE_SECTION,
            notes="No DUF-based unit cap; unit count governed by other constraints.",
            requires_manual_review=True,
        ),
    ]

    return DensityResult(
        duf_value=rules.dwelling_unit_factor,
        default_candidate_id=(
            CANDIDATE_DUF_APPLIES if duf_applicable else CANDIDATE_DUF_NOT_APPLICABLE
        ),
        candidates=candidates,
        flags={
            "density_missing_inputs": missing_inputs,
            "density_computed": duf_applicable and (
                units_combined is not None or units_per_lot > 0
            ),
            "default_method": default_method,
            "requires_manual_review": requires_review,
        },
        assumptions=assumptions,
    )
