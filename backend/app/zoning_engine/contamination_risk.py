"""
Assemblage contamination risk.

Flags whether any lot in a multi-lot assemblage introduces extra approval
risk: an individual landmark, a historic district, a special district or a
zoning overlay. One "contaminated" lot affects the whole assemblage, so the
scoring is conservative: flag rather than guess.

Risk level:
  - high:      any lot is landmarked
  - moderate:  any lot in a historic district, special district or overlay
  - none:      otherwise

Confidence:
  - low:     2+ lots missing parcel data, or all lots missing it
  - medium:  exactly 1 lot missing data, a lot with data but none of the key
             risk fields present, or an unrecognized landmark value
  - high:    otherwise

requires_manual_review = risk is not "none" OR confidence is not "high".
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Optional

from app.models.schemas import ParcelAttributes
from app.services.geocoding import to_borough_letter

CONTAMINATION_NOTES = (
    "Landmark designation typically triggers LPC review and can materially "
    "affect feasibility and timelines.",
    "Historic district and Special District rules may override base zoning; "
    "verify applicable district rules.",
    "Overlays can change use, parking, or bulk rules; manual review "
    "recommended when present.",
)

KEY_RISK_FIELDS = frozenset({
    "landmark", "histdist", "spdist1", "spdist2", "spdist3", "overlay1", "overlay2",
})

_LANDMARK_TRUE = {"Y", "YES", "LANDMARK", "1"}
_LANDMARK_FALSE = {"", "N", "NO", "0"}


def normalize_landmark(value: Any) -> Optional[bool]:
    """Normalize a MapPLUTO landmark value.

    Accepts booleans, numeric 0/1 and case-insensitive strings.
    Returns True (landmarked), False (not landmarked) or None when the
    value is not recognized.
    """
    if value is None or value is False:
        return False
    if value is True:
        return True
    if isinstance(value, (int, float)):
        if value == 1:
            return True
        if value == 0:
            return False
        return None
    text = str(value).strip().upper()
    if text in _LANDMARK_FALSE:
        return False
    if text in _LANDMARK_TRUE:
        return True
    return None


@dataclass
class ContaminationSummary:
    any_landmark: bool
    any_historic_district: bool
    any_special_district: bool
    any_overlay: bool
    contamination_risk: str
    requires_manual_review: bool
    confidence: str
    counts: dict


@dataclass
class ContaminationResult:
    lots: list[dict]
    summary: ContaminationSummary
    notes: list[str] = field(default_factory=lambda: list(CONTAMINATION_NOTES))

    def to_dict(self) -> dict:
        return asdict(self)


def _risk_level(landmark: bool, historic: bool, special: bool, overlay: bool) -> str:
    if landmark:
        return "high"
    if historic or special or overlay:
        return "moderate"
    return "none"


def _confidence(
    total_lots: int,
    lots_missing_data: int,
    lots_missing_key_fields: int,
    landmark_unrecognized: bool,
) -> str:
    if lots_missing_data >= 2 or (total_lots > 0 and lots_missing_data >= total_lots):
        return "low"
    if lots_missing_data == 1 or lots_missing_key_fields >= 1 or landmark_unrecognized:
        return "medium"
    return "high"


def compute_contamination_risk(
    parcels: list[ParcelAttributes | None] | None,
) -> ContaminationResult:
    """Score landmark / historic / special district / overlay exposure across lots.

    A lot whose parcel lookup failed is passed as None (or an empty
    ParcelAttributes); the computation still runs with lower confidence.
    """
    parcels = list(parcels or [])
    lots = []
    counts = {
        "landmark_lots": 0,
        "historic_district_lots": 0,
        "special_district_lots": 0,
        "overlay_lots": 0,
    }
    lots_missing_data = 0
    lots_missing_key_fields = 0
    landmark_unrecognized = False

    for parcel in parcels:
        parcel = parcel or ParcelAttributes()
        has_data = parcel.has_data
        if not has_data:
            lots_missing_data += 1
        elif not (KEY_RISK_FIELDS & parcel.model_fields_set):
            lots_missing_key_fields += 1

        is_landmarked = normalize_landmark(parcel.landmark)
        if is_landmarked is None and str(parcel.landmark).strip() != "":
            landmark_unrecognized = True
        if is_landmarked:
            counts["landmark_lots"] += 1

        histdist = parcel.histdist.strip() if parcel.histdist and parcel.histdist.strip() else None
        if histdist:
            counts["historic_district_lots"] += 1

        special_districts = parcel.special_districts
        if special_districts:
            counts["special_district_lots"] += 1

        overlays = parcel.overlays
        if overlays:
            counts["overlay_lots"] += 1

        lots.append({
            "bbl": parcel.bbl or "",
            "block": parcel.block,
            "lot": parcel.lot,
            "borough": to_borough_letter(
                parcel.borough if parcel.borough is not None else parcel.borocode
            ),
            "flags": {
                "is_landmarked": is_landmarked,
                "historic_district_name": histdist,
                "has_special_district": bool(special_districts),
                "special_districts": special_districts,
                "has_overlay": bool(overlays),
                "overlays": overlays,
            },
        })

    any_landmark = counts["landmark_lots"] > 0
    any_historic = counts["historic_district_lots"] > 0
    any_special = counts["special_district_lots"] > 0
    any_overlay = counts["overlay_lots"] > 0

    risk = _risk_level(any_landmark, any_historic, any_special, any_overlay)
    confidence = _confidence(
        len(parcels), lots_missing_data, lots_missing_key_fields, landmark_unrecognized,
    )

    return ContaminationResult(
        lots=lots,
        summary=ContaminationSummary(
            any_landmark=any_landmark,
            any_historic_district=any_historic,
            any_special_district=any_special,
            any_overlay=any_overlay,
            contamination_risk=risk,
            requires_manual_review=risk != "none" or confidence != "high",
            confidence=confidence,
            counts=counts,
        ),
    )
