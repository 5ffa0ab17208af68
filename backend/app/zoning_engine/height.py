"""
NYC Zoning Resolution height envelope for the single-lot zoning payload.

Updated to reflect City of Yes for Housing Opportunity (adopted Dec 5, 2024).

Quality Housing districts have a fixed envelope: a street wall that rises
between the minimum and maximum base height, a setback, then a maximum
building height (ZR 23-432). Several districts use different values on wide
(75 ft+) and narrow streets; those are reported for the assumed street width
with both widths listed as candidates.

Non-contextual R6-R10 may instead build under Height Factor, where a sky
exposure plane replaces the height cap (ZR 23-44). The payload reports the
Quality Housing envelope and lists the sky exposure plane as the alternative.

R1-R5 districts carry a building height cap (ZR 23-424); their minimum base
height is not a single value and is left to the cited section.

Sources:
  - ZR Section 23-421, 23-422 (Low density base heights)
  - ZR Section 23-424 (Low density height limits)
  - ZR Section 23-432 (Quality Housing height limits)
  - ZR Section 23-44 (Sky Exposure Plane)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from app.zoning_engine.far_tables import (
    COMMERCIAL_RESIDENTIAL_EQUIVALENTS,
    STREET_WIDTHS,
    normalize_district_code,
    normalize_street_width,
)

KIND_FIXED = "fixed"
KIND_CONDITIONAL = "conditional"
KIND_SEE_SECTION = "see_section"
KIND_UNSUPPORTED = "unsupported"

# ──────────────────────────────────────────────────────────────────
# QUALITY HOUSING ENVELOPES (ZR 23-432)
# (min base height, max base height, max building height) in feet
# ──────────────────────────────────────────────────────────────────

QH_ENVELOPES: dict[str, dict[str, tuple[int, int, int]]] = {
    # R6 non-contextual QH option: narrow follows R6B-like limits
    "R6":   {"narrow": (30, 45, 65),   "wide": (40, 65, 75)},
    "R6A":  {"narrow": (40, 65, 75),   "wide": (40, 65, 75)},
    "R6B":  {"narrow": (30, 45, 55),   "wide": (30, 45, 55)},
    "R6D":  {"narrow": (30, 45, 65),   "wide": (30, 45, 65)},
    "R7-1": {"narrow": (40, 65, 75),   "wide": (40, 75, 85)},
    "R7-2": {"narrow": (40, 65, 75),   "wide": (40, 75, 85)},
    "R7A":  {"narrow": (40, 65, 75),   "wide": (40, 75, 85)},
    "R7B":  {"narrow": (40, 60, 75),   "wide": (40, 65, 75)},
    "R7D":  {"narrow": (60, 85, 105),  "wide": (60, 85, 105)},
    "R7X":  {"narrow": (60, 85, 105),  "wide": (60, 95, 125)},
    "R8":   {"narrow": (60, 85, 115),  "wide": (60, 95, 125)},
    "R8A":  {"narrow": (60, 85, 115),  "wide": (60, 95, 125)},
    "R8B":  {"narrow": (55, 65, 75),   "wide": (55, 65, 75)},
    "R8X":  {"narrow": (60, 85, 135),  "wide": (60, 95, 155)},
    "R9":   {"narrow": (60, 95, 135),  "wide": (60, 105, 145)},
    "R9A":  {"narrow": (60, 95, 135),  "wide": (60, 105, 145)},
    "R9D":  {"narrow": (60, 95, 155),  "wide": (60, 125, 175)},
    "R9X":  {"narrow": (60, 95, 165),  "wide": (105, 125, 175)},
    "R10":  {"narrow": (60, 125, 185), "wide": (125, 155, 215)},
    "R10A": {"narrow": (60, 125, 185), "wide": (125, 155, 215)},
    "R10X": {"narrow": (60, 125, 185), "wide": (60, 155, 215)},
    # City of Yes high-density districts
    "R11":  {"narrow": (60, 155, 255), "wide": (60, 155, 255)},
    "R11A": {"narrow": (60, 155, 255), "wide": (60, 155, 255)},
    "R12":  {"narrow": (60, 155, 325), "wide": (60, 155, 325)},
}

# ──────────────────────────────────────────────────────────────────
# HEIGHT FACTOR ALTERNATIVE (ZR 23-44)
# (height where the sky exposure plane starts, rise:run slope)
# ──────────────────────────────────────────────────────────────────

SKY_EXPOSURE_PLANE: dict[str, dict[str, tuple[int, float]]] = {
    "R6":   {"narrow": (60, 2.7), "wide": (85, 5.6)},
    "R7-1": {"narrow": (60, 2.7), "wide": (85, 5.6)},
    "R7-2": {"narrow": (60, 2.7), "wide": (85, 5.6)},
    "R8":   {"narrow": (60, 2.7), "wide": (85, 5.6)},
    "R9":   {"narrow": (60, 2.7), "wide": (85, 5.6)},
    "R10":  {"narrow": (60, 5.6), "wide": (85, 5.6)},
}

# ──────────────────────────────────────────────────────────────────
# LOW DENSITY (ZR 23-424)
# ──────────────────────────────────────────────────────────────────

LOW_DENSITY_MAX_HEIGHT: dict[str, int] = {
    "R1": 35, "R1-1": 35, "R1-2": 35, "R1-2A": 35,
    "R2": 35, "R2A": 35, "R2X": 35,
    "R3": 35, "R3-1": 35, "R3-2": 35, "R3A": 35, "R3X": 35,
    "R4": 35, "R4-1": 35, "R4A": 35, "R4B": 24,
    "R5": 40, "R5A": 25, "R5B": 33, "R5D": 40,
}

# Districts whose low density base height rules sit in 23-422; the rest in 23-421
_SECTION_23_422 = {"R3-2", "R4", "R4B", "R5", "R5B", "R5D"}


@dataclass
class HeightResolution:
    min_base_height: dict
    envelope: dict
    assumptions: list[str] = field(default_factory=list)

    @property
    def requires_manual_review(self) -> bool:
        return bool(
            self.min_base_height["requires_manual_review"]
            or self.envelope["requires_manual_review"]
        )

    def to_dict(self) -> dict:
        return {"min_base_height": self.min_base_height, "envelope": self.envelope}


def _unsupported(code: Optional[str], what: str) -> dict:
    notes = (
        "District not provided" if code is None
        else f"District {code} not supported for {what} lookup"
    )
    return {
        "kind": KIND_UNSUPPORTED,
        "source_section": None,
        "notes": notes,
        "requires_manual_review": False,
    }


def _min_base_height(code: str, width: str) -> dict:
    if code in LOW_DENSITY_MAX_HEIGHT:
        section = "ZR 23-422" if code in _SECTION_23_422 else "ZR 23-421"
        return {
            "kind": KIND_SEE_SECTION,
            "value_ft": None,
            "candidates": None,
            "source_section": section,
            "notes": "Min base height not a single value for this district; see ZR section",
            "requires_manual_review": True,
        }

    by_width = QH_ENVELOPES[code]
    values = {w: by_width[w][0] for w in STREET_WIDTHS}
    conditional = values["narrow"] != values["wide"]
    return {
        "kind": KIND_CONDITIONAL if conditional else KIND_FIXED,
        "value_ft": values[width],
        "candidates": [
            {"value_ft": values[w], "when": f"{w} street"} for w in STREET_WIDTHS
        ] if conditional else None,
        "source_section": "ZR 23-432",
        "notes": "Depends on street width" if conditional else None,
        "requires_manual_review": conditional,
    }


def _envelope(code: str, width: str) -> dict:
    if code in LOW_DENSITY_MAX_HEIGHT:
        return {
            "kind": KIND_FIXED,
            "street_width": width,
            "max_base_height_ft": None,
            "max_building_height_ft": LOW_DENSITY_MAX_HEIGHT[code],
            "candidates": None,
            "sky_exposure_plane": None,
            "source_section": "ZR 23-424",
            "notes": None,
            "requires_manual_review": False,
        }

    by_width = QH_ENVELOPES[code]
    conditional = by_width["narrow"][1:] != by_width["wide"][1:]
    _, base_max, max_height = by_width[width]

    sky_exposure_plane = None
    if code in SKY_EXPOSURE_PLANE:
        start, slope = SKY_EXPOSURE_PLANE[code][width]
        sky_exposure_plane = {
            "program": "height_factor",
            "start_height_ft": start,
            "slope": slope,
            "source_section": "ZR 23-44",
        }

    return {
        "kind": KIND_CONDITIONAL if conditional else KIND_FIXED,
        "street_width": width,
        "max_base_height_ft": base_max,
        "max_building_height_ft": max_height,
        "candidates": [
            {
                "when": f"{w} street",
                "max_base_height_ft": by_width[w][1],
                "max_building_height_ft": by_width[w][2],
            }
            for w in STREET_WIDTHS
        ] if conditional else None,
        "sky_exposure_plane": sky_exposure_plane,
        "source_section": "ZR 23-432",
        "notes": "Depends on street width" if conditional else None,
        "requires_manual_review": conditional,
    }


def resolve_height(
    district: str | None,
    street_width: str = "narrow",
) -> HeightResolution:
    """Minimum base height and height envelope for one district.

    Commercial districts use the envelope of their residential equivalent.
    Districts with no tabulated envelope (manufacturing, C1-C3, C7, C8,
    unknown codes) come back ``unsupported``.
    """
    width = normalize_street_width(street_width)
    code = normalize_district_code(district)
    assumptions: list[str] = []

    lookup = code
    equivalent = COMMERCIAL_RESIDENTIAL_EQUIVALENTS.get(code) if code else None
    if equivalent:
        lookup = equivalent
        assumptions.append(
            f"Commercial district {code} uses residential equivalent {equivalent} height limits"
        )

    if lookup not in QH_ENVELOPES and lookup not in LOW_DENSITY_MAX_HEIGHT:
        if code is not None:
            assumptions.append(f"Height limits not tabulated for district {code}")
        return HeightResolution(
            min_base_height={"value_ft": None, "candidates": None,
                             **_unsupported(code, "minimum base height")},
            envelope={"street_width": width, "max_base_height_ft": None,
                      "max_building_height_ft": None, "candidates": None,
                      "sky_exposure_plane": None,
                      **_unsupported(code, "height envelope")},
            assumptions=assumptions,
        )

    min_base = _min_base_height(lookup, width)
    envelope = _envelope(lookup, width)

    if min_base["kind"] == KIND_SEE_SECTION:
        assumptions.append(
            f"Min base height for {code} not a single value; see {min_base['source_section']}"
        )
    elif min_base["kind"] == KIND_CONDITIONAL:
        assumptions.append(
            f"Minimum base height for {code} depends on street width; {width} street assumed"
        )
    if envelope["kind"] == KIND_CONDITIONAL:
        assumptions.append(
            f"Height limits for {code} depend on street width; {width} street assumed"
        )
    if envelope["sky_exposure_plane"] is not None:
        assumptions.append(
            f"Quality Housing envelope shown for {code}; Height Factor "
            f"alternative (sky exposure plane) not evaluated"
        )

    return HeightResolution(min_base_height=min_base, envelope=envelope, assumptions=assumptions)
