"""
NYC Zoning Resolution maximum residential FAR tables.

Updated to reflect City of Yes for Housing Opportunity (adopted Dec 5, 2024).

The feasibility report needs one number per district: the tabulated maximum
residential FAR. For non-contextual R6-R10 districts that is the Quality
Housing value; where Quality Housing FAR depends on street width (R6, R7-1,
R7-2, R8) the caller picks the width, and reports default to the narrow
street value.

Commercial districts permit residential floor area at the FAR of their
residential equivalent (C4-C6). C1-C3, C7, C8 and manufacturing districts
carry no residential FAR here.

Sources:
  - ZR Section 23-22 (Floor Area Regulations in R6-R12 Districts)
  - ZR Section 35-23 (Residential bulk in Commercial Districts)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

# ──────────────────────────────────────────────────────────────────
# RESIDENTIAL DISTRICTS (ZR 23-22)
# ──────────────────────────────────────────────────────────────────

RESIDENTIAL_FAR: dict[str, float] = {
    # Low density
    "R1": 0.50, "R1-1": 0.50, "R1-2": 0.50, "R1-2A": 0.50,
    "R2": 0.50, "R2A": 0.50, "R2X": 0.50,
    "R3": 0.50, "R3-1": 0.50, "R3-2": 0.50, "R3A": 0.50, "R3X": 0.50,
    "R4": 0.75, "R4-1": 0.75, "R4A": 0.75, "R4B": 0.90,
    "R5": 1.25, "R5A": 1.10, "R5B": 1.35, "R5D": 2.00,

    # Contextual medium/high density
    "R6A": 3.0, "R6B": 2.0, "R6D": 2.5,
    "R7A": 4.0, "R7B": 3.0, "R7D": 4.66, "R7X": 5.0,
    "R8A": 6.02, "R8B": 4.0, "R8X": 6.02,
    "R9": 7.52, "R9A": 7.52, "R9D": 9.0, "R9X": 9.0,
    "R10": 10.0, "R10A": 10.0, "R10X": 10.0,

    # City of Yes high-density districts
    "R11": 12.0, "R12": 15.0,
}

# Quality Housing FAR that depends on street width (ZR 23-22 as amended).
# R7 is listed for lookups by profile; R7-1 and R7-2 share identical bulk.
STREET_WIDTH_FAR: dict[str, dict[str, float]] = {
    "R6":   {"wide": 3.0, "narrow": 2.2},
    "R7":   {"wide": 4.0, "narrow": 3.44},
    "R7-1": {"wide": 4.0, "narrow": 3.44},
    "R7-2": {"wide": 4.0, "narrow": 3.44},
    "R8":   {"wide": 7.2, "narrow": 6.02},
}

# ──────────────────────────────────────────────────────────────────
# COMMERCIAL DISTRICTS → RESIDENTIAL EQUIVALENT
# ──────────────────────────────────────────────────────────────────

_RESIDENTIAL_EQUIVALENT_GROUPS: dict[str, list[str]] = {
    "R5":   ["C4-1", "C4-4L"],
    "R6":   ["C4-2"],
    "R6A":  ["C4-2A", "C4-3A"],
    "R7-1": ["C4-3"],
    "R7-2": ["C6-1"],
    "R7A":  ["C4-2F", "C4-4A", "C4-5A", "C6-1A", "C6-1G"],
    "R7D":  ["C4-4D", "C4-5D"],
    "R7X":  ["C4-5X"],
    "R8":   ["C4-4", "C6-2", "C6-2M"],
    "R8A":  ["C4-6A", "C6-2A", "C6-2G"],
    "R9":   ["C4-5", "C6-3", "C6-3D"],
    "R9A":  ["C6-3A"],
    "R9X":  ["C6-3X"],
    "R10":  [
        "C4-6", "C4-7", "C5-1", "C5-2", "C5-2.5", "C5-3", "C5-5", "C5-P",
        "C6-4", "C6-4.5", "C6-4M", "C6-4X", "C6-5", "C6-5.5", "C6-6",
        "C6-6.5", "C6-7", "C6-7T", "C6-9",
    ],
    "R10A": ["C6-4A"],
}

COMMERCIAL_RESIDENTIAL_EQUIVALENTS: dict[str, str] = {
    commercial: residential
    for residential, commercials in _RESIDENTIAL_EQUIVALENT_GROUPS.items()
    for commercial in commercials
}

# Contextual (Quality Housing) districts in the medium and high density
# range. Low density letter districts (R1-2A, R3X, R4B, R5D, ...) have their
# own bulk rules and are not contextual in this sense.
CONTEXTUAL_DISTRICTS: frozenset[str] = frozenset({
    "R6A", "R6B", "R6D",
    "R7A", "R7B", "R7D", "R7X",
    "R8A", "R8B", "R8X",
    "R9A", "R9D", "R9X",
    "R10A", "R10X",
    "R11A",
})

STREET_WIDTHS = ("narrow", "wide")

_VARIANT_SUFFIX = re.compile(r"^(R\d+)-\d+$")
_BASE_DISTRICT = re.compile(r"^(R\d+)")


@dataclass
class FarLookup:
    """Maximum residential FAR resolved for one district code."""
    district: str
    far: float
    profile: str
    contextual: bool
    assumption: Optional[str] = None


def normalize_district_code(district: str | None) -> str | None:
    if not district or not isinstance(district, str):
        return None
    code = district.strip().upper()
    return code or None


def normalize_district_profile(district: str | None) -> str | None:
    """Collapse numbered variants of a residential district onto one profile.

    "R7-2" → "R7", "R3-1" → "R3". Contextual and commercial codes are
    returned unchanged (upper-cased).
    """
    code = normalize_district_code(district)
    if code is None:
        return None
    match = _VARIANT_SUFFIX.match(code)
    if match:
        return match.group(1)
    return code


def is_contextual(district: str) -> bool:
    return normalize_district_code(district) in CONTEXTUAL_DISTRICTS


def normalize_street_width(street_width: str | None) -> str:
    """"wide" or "narrow" in any case; None means the narrow default.

    Raises ValueError for anything else so a typo never silently becomes
    the narrow street FAR.
    """
    if street_width is None:
        return "narrow"
    width = str(street_width).strip().lower()
    if width not in STREET_WIDTHS:
        raise ValueError(
            f"Unknown street width {street_width!r}; expected 'narrow' or 'wide'"
        )
    return width


def _residential_far(code: str, street_width: str) -> float | None:
    if code in RESIDENTIAL_FAR:
        return RESIDENTIAL_FAR[code]
    by_width = STREET_WIDTH_FAR.get(code)
    if by_width is not None:
        return by_width[street_width]
    return None


def get_max_residential_far(
    district: str | None,
    street_width: str = "narrow",
) -> FarLookup | None:
    """Look up the tabulated maximum residential FAR for a district.

    Returns None for districts with no residential allowance (C1-C3, C7,
    C8, manufacturing) or codes that are not recognized.
    """
    street_width = normalize_street_width(street_width)
    code = normalize_district_code(district)
    if code is None:
        return None

    assumption = None
    if code in STREET_WIDTH_FAR:
        assumption = (
            f"Quality Housing FAR for {code} depends on street width; "
            f"{street_width} street assumed"
        )

    far = _residential_far(code, street_width)
    if far is not None:
        return FarLookup(
            district=code,
            far=far,
            profile=normalize_district_profile(code),
            contextual=is_contextual(code),
            assumption=assumption,
        )

    equivalent = COMMERCIAL_RESIDENTIAL_EQUIVALENTS.get(code)
    if equivalent:
        return FarLookup(
            district=code,
            far=_residential_far(equivalent, street_width),
            profile=code,
            contextual=is_contextual(equivalent),
            assumption=(
                f"Commercial district {code} uses residential equivalent "
                f"{equivalent} FAR"
            ),
        )

    base_match = _BASE_DISTRICT.match(code)
    if base_match:
        base = base_match.group(1)
        base_far = _residential_far(base, street_width)
        if base_far is not None:
            return FarLookup(
                district=code,
                far=base_far,
                profile=base,
                contextual=False,
                assumption=f"District {code} not in lookup; using base {base} FAR",
            )

    return None
