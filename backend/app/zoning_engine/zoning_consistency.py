"""
Assemblage zoning consistency.

Evaluates whether the lots of a multi-lot assemblage are compatible from a
zoning standpoint: same primary district, same normalized district profile,
same tax block. Pure function over the per-lot parcel attributes.

Confidence decision table (first match wins):

  | Condition                                               | confidence | review |
  |---------------------------------------------------------|------------|--------|
  | any lot missing a primary district                      | low        | yes    |
  | same primary district, no overlay / special district,   | high       | no     |
  |   no lot with secondary districts                       |            |        |
  | same profile but primary differs, or overlay / special  | medium     | yes    |
  | otherwise                                               | low        | yes    |
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Callable, Optional

from app.models.schemas import ParcelAttributes
from app.services.geocoding import to_borough_letter
from app.zoning_engine.far_tables import normalize_district_profile

NOTE_DISTRICTS_DIFFER = (
    "If districts differ across lots, assemblage calculations should use "
    "per-lot method and require manual review."
)
NOTE_OVERLAYS = (
    "Overlays or Special Districts can change applicable rules; verify on "
    "NYC Zoning Map / ZR."
)
NOTE_BLOCK_MISSING = (
    "Block is missing for at least one lot; same-block check could not be "
    "confirmed."
)


@dataclass
class ConsistencySummary:
    primary_districts: list[Optional[str]]
    normalized_profiles: list[Optional[str]]
    same_primary_district: bool
    same_normalized_profile: bool
    same_block: bool
    has_any_overlay: bool
    has_any_special_district: bool
    multi_district_lots_count: int
    confidence: str
    requires_manual_review: bool


@dataclass
class ConsistencyResult:
    lots: list[dict]
    summary: ConsistencySummary
    notes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _all_same(values: list) -> bool:
    return len(values) > 0 and all(values) and all(v == values[0] for v in values)


def _confidence(
    primary_districts: list[Optional[str]],
    same_primary: bool,
    same_profile: bool,
    has_overlay: bool,
    has_special: bool,
    multi_district_lots: int,
) -> tuple[str, bool]:
    if any(p is None for p in primary_districts):
        return "low", True
    if same_primary and not has_overlay and not has_special and multi_district_lots == 0:
        return "high", False
    if same_profile and (not same_primary or has_overlay or has_special):
        return "medium", True
    return "low", True


def compute_zoning_consistency(
    parcels: list[ParcelAttributes | None],
    normalize_profile: Callable[[str], Optional[str]] = normalize_district_profile,
) -> ConsistencyResult:
    """Compare zoning attributes across the lots of an assemblage.

    Args:
        parcels: per-lot parcel attributes in lot order; None for a lot
            whose parcel lookup failed.
        normalize_profile: maps a district code to its profile
            (e.g. "R7-2" → "R7").
    """
    lots = []
    primary_districts: list[Optional[str]] = []
    normalized_profiles: list[Optional[str]] = []
    blocks: list[Optional[int]] = []
    has_any_overlay = False
    has_any_special = False
    multi_district_lots = 0

    for parcel in parcels:
        parcel = parcel or ParcelAttributes()
        zonedist = [
            str(d).strip() if d is not None else None
            for d in (parcel.zonedist1, parcel.zonedist2, parcel.zonedist3, parcel.zonedist4)
        ]
        primary = zonedist[0] or None
        profile = normalize_profile(primary) if primary else None
        overlays = parcel.overlays
        special_districts = parcel.special_districts

        has_any_overlay = has_any_overlay or bool(overlays)
        has_any_special = has_any_special or bool(special_districts)
        if any(zonedist[1:]):
            multi_district_lots += 1

        primary_districts.append(primary)
        normalized_profiles.append(profile)
        blocks.append(parcel.block)

        lots.append({
            "bbl": parcel.bbl,
            "block": parcel.block,
            "lot": parcel.lot,
            "borough": to_borough_letter(
                parcel.borough if parcel.borough is not None else parcel.borocode
            ),
            "zonedist": zonedist,
            "primary_district": primary,
            "normalized_profile": profile,
            "overlays": overlays,
            "special_districts": special_districts,
            "flags": {
                "missing_zonedist1": primary is None,
                "has_overlay": bool(overlays),
                "has_special_district": bool(special_districts),
            },
        })

    same_primary = _all_same(primary_districts)
    same_profile = _all_same(normalized_profiles)
    any_block_missing = any(b is None for b in blocks)
    same_block = (
        not any_block_missing
        and len(blocks) > 1
        and all(b == blocks[0] for b in blocks)
    )

    notes = []
    if not same_primary or not same_profile:
        notes.append(NOTE_DISTRICTS_DIFFER)
    if has_any_overlay or has_any_special:
        notes.append(NOTE_OVERLAYS)
    if any_block_missing:
        notes.append(NOTE_BLOCK_MISSING)

    confidence, requires_review = _confidence(
        primary_districts, same_primary, same_profile,
        has_any_overlay, has_any_special, multi_district_lots,
    )

    return ConsistencyResult(
        lots=lots,
        summary=ConsistencySummary(
            primary_districts=primary_districts,
            normalized_profiles=normalized_profiles,
            same_primary_district=same_primary,
            same_normalized_profile=same_profile,
            same_block=same_block,
            has_any_overlay=has_any_overlay,
            has_any_special_district=has_any_special,
            multi_district_lots_count=multi_district_lots,
            confidence=confidence,
            requires_manual_review=requires_review,
        ),
        notes=notes,
    )
