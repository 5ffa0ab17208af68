"""
Per-lot FAR resolution.

Turns one lot's MapPLUTO zoning attributes into a controlling FAR and the
derived planning values shown on a single-lot report.

Controlling FAR rules:
  - One zoning district: that district's tabulated maximum residential FAR.
  - Two or more districts on one lot: the MINIMUM of the candidate FARs.
    The applicable portion of each district depends on lot geometry, so
    the result is always flagged for manual review.
  - No district, or no district with a residential allowance: FAR unknown,
    manual review required.

Lot coverage (ZR 23-361 / 23-362), building type and lot type follow the
conservative defaults used across the engine: lot type is assumed
interior/through, unrecognized building classes are treated as
single/two-family.

The single-lot payload also carries the height envelope of zonedist1
(see height.py).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, asdict
from typing import Optional

from app.models.schemas import ParcelAttributes
from app.zoning_engine.far_tables import (
    get_max_residential_far,
    normalize_district_code,
)
from app.zoning_engine.height import resolve_height

FAR_SINGLE_DISTRICT = "single_district"
FAR_MULTI_DISTRICT_MIN = "multi_district_min"
FAR_UNKNOWN = "unknown"

LOT_TYPE_INTERIOR_OR_THROUGH = "interior_or_through"
LOT_TYPE_CORNER = "corner"

BUILDING_SINGLE_OR_TWO_FAMILY = "single_or_two_family"
BUILDING_MULTIPLE_DWELLING = "multiple_dwelling"
BUILDING_UNKNOWN = "unknown"


@dataclass
class FarCandidate:
    """Controlling FAR derived for one lot."""
    max_far: Optional[float] = None
    far_method: str = FAR_UNKNOWN
    requires_manual_review: bool = True
    far_candidates: list[dict] = field(default_factory=list)
    zoning_district_candidates: list[str] = field(default_factory=list)
    assumptions: list[str] = field(default_factory=list)

    @property
    def profile(self) -> Optional[str]:
        """Normalized zoning profile, only defined for single-district lots."""
        if self.far_method == FAR_SINGLE_DISTRICT and len(self.far_candidates) == 1:
            return self.far_candidates[0]["profile"]
        return None

    def to_dict(self) -> dict:
        return asdict(self)


# ──────────────────────────────────────────────────────────────────
# CONTROLLING FAR
# ──────────────────────────────────────────────────────────────────

def resolve_controlling_far(
    parcel: ParcelAttributes | None,
    street_width: str = "narrow",
) -> FarCandidate:
    """Derive the controlling FAR for one lot from its zoning districts."""
    districts = parcel.zoning_districts if parcel is not None else []
    result = FarCandidate(zoning_district_candidates=list(districts))

    if not districts:
        result.assumptions.append("No zoning district available for lot")
        return result

    for district in districts:
        lookup = get_max_residential_far(district, street_width)
        if lookup is None:
            result.assumptions.append(
                f"No residential FAR tabulated for district {district}"
            )
            continue
        result.far_candidates.append({
            "district": lookup.district,
            "far": lookup.far,
            "profile": lookup.profile,
            "contextual": lookup.contextual,
        })
        if lookup.assumption:
            result.assumptions.append(lookup.assumption)

    if not result.far_candidates:
        return result

    if len(districts) == 1:
        result.max_far = result.far_candidates[0]["far"]
        result.far_method = FAR_SINGLE_DISTRICT
        result.requires_manual_review = False
        return result

    result.max_far = min(c["far"] for c in result.far_candidates)
    result.far_method = FAR_MULTI_DISTRICT_MIN
    result.requires_manual_review = True
    result.assumptions.append(
        "Lot spans multiple zoning districts; lowest FAR used pending "
        "review of district boundaries"
    )
    return result


def valid_lot_area(value) -> float | None:
    """Return the lot area when it is a positive number, else None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        area = float(value)
    except (TypeError, ValueError):
        return None
    if area != area or area <= 0:  # NaN or non-positive
        return None
    return area


def lot_buildable_sqft(max_far: float | None, lot_area) -> float | None:
    area = valid_lot_area(lot_area)
    if max_far is None or area is None:
        return None
    return max_far * area


# ──────────────────────────────────────────────────────────────────
# BUILDING TYPE / LOT TYPE
# ──────────────────────────────────────────────────────────────────

def determine_building_type(bldgclass: str | None) -> tuple[str, str | None]:
    """Classify a DOF building class as single/two-family or multiple dwelling.

    Returns (building_type, assumption).
    """
    if not bldgclass or not isinstance(bldgclass, str) or not bldgclass.strip():
        return (
            BUILDING_UNKNOWN,
            "Building class unknown; defaulting to single/two-family for "
            "lot coverage rules",
        )

    code = bldgclass.strip().upper()
    prefix = code[0]
    if prefix in ("A", "B"):
        return BUILDING_SINGLE_OR_TWO_FAMILY, None
    if prefix in ("C", "D"):
        return BUILDING_MULTIPLE_DWELLING, None

    return (
        BUILDING_SINGLE_OR_TWO_FAMILY,
        f"Building class {code} not recognized; defaulting to single/two-family",
    )


def determine_lot_type(parcel: ParcelAttributes | None) -> tuple[str, str]:
    # PLUTO carries no reliable corner-lot indicator
    return (
        LOT_TYPE_INTERIOR_OR_THROUGH,
        "Lot type unknown; assumed interior/through",
    )


# ──────────────────────────────────────────────────────────────────
# LOT COVERAGE (ZR 23-361, 23-362)
# ──────────────────────────────────────────────────────────────────

# Single- or two-family residences, (interior, corner)
_LOW_DENSITY_COVERAGE = {
    "R1": (0.4, 0.8),
    "R2": (0.4, 0.8),
    "R3": (0.5, 0.8),
    "R4": (0.6, 0.8),
    "R5": (0.6, 0.8),
}

_YARD_BASED_COVERAGE = {"R2X", "R3A", "R3X"}


def calculate_max_lot_coverage(
    district: str | None,
    lot_type: str,
    building_type: str,
) -> dict:
    """Maximum lot coverage as a fraction of lot area.

    Returns {"max_lot_coverage": float|None, "assumption": str|None,
    "eligible_site_not_evaluated": bool}.
    """
    code = normalize_district_code(district)
    result = {
        "max_lot_coverage": None,
        "assumption": None,
        "eligible_site_not_evaluated": False,
    }
    if code is None:
        result["assumption"] = "Zoning district not available"
        return result
    if not code.startswith("R"):
        result["assumption"] = (
            f"Non-residential district {code}; lot coverage not evaluated"
        )
        return result

    is_corner = lot_type == LOT_TYPE_CORNER

    low = re.match(r"^(R[1-5])(?!\d)", code)
    if low:
        if code in _YARD_BASED_COVERAGE:
            result["assumption"] = (
                "Yard-based lot coverage (Section 23-361 exception); not evaluated"
            )
            return result
        if building_type == BUILDING_MULTIPLE_DWELLING:
            result["max_lot_coverage"] = 1.0 if is_corner else 0.8
            result["assumption"] = "Multiple dwelling in R1-R5 (Section 23-361(b))"
            return result
        interior, corner = _LOW_DENSITY_COVERAGE[low.group(1)]
        result["max_lot_coverage"] = corner if is_corner else interior
        result["assumption"] = (
            f"Single- or two-family in {low.group(1)} (Section 23-361(a))"
        )
        return result

    if re.match(r"^(R[6-9]|R1[0-2])", code):
        result["max_lot_coverage"] = 1.0 if is_corner else 0.8
        result["assumption"] = (
            "Standard lot in R6-R12 (Section 23-362(a)); eligible site rules "
            "not evaluated"
        )
        result["eligible_site_not_evaluated"] = True
        return result

    result["assumption"] = (
        f"District {code} not supported for lot coverage calculation"
    )
    return result


def calculate_derived_values(
    max_far: float | None,
    lot_area: float | None,
    bldgarea: float | None,
    max_lot_coverage: float | None,
) -> dict:
    derived: dict = {}
    area = valid_lot_area(lot_area)

    if max_far is not None and area is not None:
        derived["max_buildable_floor_area_sqft"] = max_far * area

    if "max_buildable_floor_area_sqft" in derived and bldgarea is not None:
        remaining = max(0.0, derived["max_buildable_floor_area_sqft"] - bldgarea)
        derived["remaining_buildable_floor_area_sqft"] = remaining
        if remaining == 0:
            derived["remaining_floor_area_message"] = "FAR limit reached already"

    if max_lot_coverage is not None and area is not None:
        derived["max_building_footprint_sqft"] = max_lot_coverage * area

    return derived


# ──────────────────────────────────────────────────────────────────
# SINGLE-LOT ZONING RESOLUTION
# ──────────────────────────────────────────────────────────────────

def resolve_lot_zoning(
    parcel: ParcelAttributes,
    street_width: str = "narrow",
) -> dict:
    """Full zoning resolution payload for a single-lot report.

    Raises ValueError when no parcel data is available.
    """
    if parcel is None or not parcel.has_data:
        raise ValueError(
            "Parcel attribute data not found; zoning resolution requires "
            "the parcel lookup to succeed first."
        )

    flags = {
        "has_overlay": bool(parcel.overlays),
        "has_special_district": bool(parcel.special_districts),
        "multi_district_lot": len(parcel.zoning_districts) > 1,
    }
    district = normalize_district_code(parcel.zonedist1)

    if district is None:
        flags["district_not_found"] = True
        return {
            "district": None,
            "max_far": None,
            "far_method": FAR_UNKNOWN,
            "max_lot_coverage": None,
            "requires_manual_review": True,
            "height": None,
            "assumptions": [
                "District not found in parcel data; zonedist1 is missing or null."
            ],
            "flags": flags,
        }

    far = resolve_controlling_far(parcel, street_width)
    if not far.far_candidates:
        flags["non_residential"] = True

    lot_type, lot_type_assumption = determine_lot_type(parcel)
    building_type, building_assumption = determine_building_type(parcel.bldgclass)
    coverage = calculate_max_lot_coverage(district, lot_type, building_type)
    derived = calculate_derived_values(
        far.max_far, parcel.lotarea, parcel.bldgarea, coverage["max_lot_coverage"],
    )

    height = resolve_height(district, street_width)

    assumptions = list(far.assumptions)
    for note in (lot_type_assumption, building_assumption, coverage["assumption"]):
        if note:
            assumptions.append(note)
    assumptions.extend(height.assumptions)

    flags.update({
        "lot_type_inferred": True,
        "building_type_inferred": building_assumption is not None,
        "eligible_site_not_evaluated": coverage["eligible_site_not_evaluated"],
        "height_requires_manual_review": height.requires_manual_review,
    })

    return {
        "district": district,
        "profile": far.profile,
        "contextual": far.far_candidates[0]["contextual"] if far.profile else None,
        "lot_type": lot_type,
        "building_type": building_type,
        "max_far": far.max_far,
        "far_method": far.far_method,
        "far_candidates": far.far_candidates,
        "zoning_district_candidates": far.zoning_district_candidates,
        "max_lot_coverage": coverage["max_lot_coverage"],
        "derived": derived,
        "height": height.to_dict(),
        "requires_manual_review": (
            far.requires_manual_review
            or flags["has_overlay"]
            or flags["has_special_district"]
        ),
        "assumptions": assumptions,
        "flags": flags,
    }
