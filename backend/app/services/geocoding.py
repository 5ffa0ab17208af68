"""
NYC address geocoding and BBL resolution.

Sources (in order of priority):
  1. NYC Planning Labs Geosearch API (free, no auth)
  2. NYC Geoservice Function 1B
  3. NYC Geoservice Function 1A (fallback)

Handles:
  - Full addresses: "123 Main St, Brooklyn, NY 11201"
  - Abbreviated boroughs: "123 Main St, BK"
  - No borough: "123 Main St" (tries Geosearch which doesn't need borough)
  - BBL input: "3046220022", "3-04622-0022", "3/04622/0022"
"""

from __future__ import annotations

import logging
import re

import httpx

from app.config import settings
from app.models.schemas import BBLResponse
from app.services.cache import get_cached_geocode, set_cached_geocode

logger = logging.getLogger(__name__)

GEOSEARCH_URL = "https://geosearch.planninglabs.nyc/v2/search"
GEOSERVICE_1B_URL = "https://geoservice.planning.nyc.gov/geoservice/geoservice.svc/Function_1B"
GEOSERVICE_1A_URL = "https://geoservice.planning.nyc.gov/geoservice/geoservice.svc/Function_1A"

# Borough name/abbreviation → code mapping
BOROUGH_MAP = {
    "manhattan": 1, "mn": 1, "mh": 1, "new york": 1, "ny": 1,
    "bronx": 2, "bx": 2, "the bronx": 2,
    "brooklyn": 3, "bk": 3, "bklyn": 3, "kings": 3,
    "queens": 4, "qn": 4, "qns": 4,
    "staten island": 5, "si": 5, "richmond": 5,
}

BOROUGH_CODE_TO_NAME = {
    1: "MANHATTAN", 2: "BRONX", 3: "BROOKLYN", 4: "QUEENS", 5: "STATEN ISLAND",
}

BOROUGH_NAME_TO_CODE = {
    "manhattan": 1, "bronx": 2, "brooklyn": 3, "queens": 4, "staten island": 5,
}

# MapPLUTO borough letters
BOROUGH_CODE_TO_LETTER = {1: "MN", 2: "BX", 3: "BK", 4: "QN", 5: "SI"}


def to_borough_letter(value) -> str | None:
    """Normalize a borough code or letter to the MapPLUTO two-letter form.

    1 / "1" → "MN", "bk" → "BK". Unrecognized values are returned
    upper-cased; empty values give None.
    """
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip().upper()
    if not text:
        return None
    if text in BOROUGH_CODE_TO_LETTER.values():
        return text
    try:
        code = int(float(text))
    except ValueError:
        return text
    return BOROUGH_CODE_TO_LETTER.get(code, text)


# ──────────────────────────────────────────────────────────────────
# BBL PARSING
# ──────────────────────────────────────────────────────────────────

def parse_bbl(raw: str) -> str | None:
    """Parse a BBL from various formats.

    Accepts:
      - "3046220022" (10-digit)
      - "3-04622-0022" (dash-separated)
      - "3/04622/0022" (slash-separated)

    Returns 10-digit BBL string or None if invalid.
    """
    cleaned = raw.strip().replace("-", "").replace("/", "").replace(" ", "")
    if re.match(r"^[1-5]\d{9}$", cleaned):
        return cleaned
    return None


def validate_bbl(bbl: str) -> bool:
    """Validate a 10-digit BBL string."""
    if not bbl or len(bbl) != 10:
        return False
    try:
        borough = int(bbl[0])
        block = int(bbl[1:6])
        lot = int(bbl[6:10])
        return 1 <= borough <= 5 and block > 0 and lot > 0
    except ValueError:
        return False


def bbl_to_response(
    bbl: str,
    latitude: float | None = None,
    longitude: float | None = None,
    normalized_address: str | None = None,
) -> BBLResponse:
    """Convert a validated BBL string to BBLResponse."""
    return BBLResponse(
        bbl=bbl,
        borough=int(bbl[0]),
        block=int(bbl[1:6]),
        lot=int(bbl[6:10]),
        latitude=latitude,
        longitude=longitude,
        normalized_address=normalized_address,
    )


# ──────────────────────────────────────────────────────────────────
# ADDRESS PARSING
# ──────────────────────────────────────────────────────────────────

def parse_address(address: str) -> tuple[str, str, int | None]:
    """Parse a NYC address into house number, street name, and borough code.

    Handles:
      - "123 Main St Brooklyn" (no comma)
      - "123 Main Street, Brooklyn, NY 11201" (full format)
      - "123 Main St, BK" (abbreviated borough)
      - "123 Main St" (no borough, returns None for borough)
    """
    address = address.strip()
    addr_lower = address.lower()
    borough_code = None

    # "123 Main St, Brooklyn, NY 11201" → "123 Main St, Brooklyn"
    # but not "120 Broadway, New York", where "New York" is the borough
    state_zip = re.search(r',?\s*(?:ny|nyc)\s*(?:,?\s*(?:ny))?\s*(\d{5})?\s*$', addr_lower)
    if state_zip:
        zipcode = state_zip.group(1)
        address = address[:state_zip.start()]
        addr_lower = address.lower()
        if zipcode:
            borough_code = _zip_to_borough(zipcode)

    # "Brooklyn, New York 11201" (state name + zip)
    if not borough_code:
        state_name_zip = re.search(r',?\s*new\s+york\s*,?\s*(\d{5})\s*$', addr_lower)
        if state_name_zip:
            zipcode = state_name_zip.group(1)
            address = address[:state_name_zip.start()]
            addr_lower = address.lower()
            borough_code = _zip_to_borough(zipcode)

    if not borough_code:
        # Longest first so "staten island" matches before "si"
        sorted_boroughs = sorted(BOROUGH_MAP.items(), key=lambda x: -len(x[0]))
        for boro_name, code in sorted_boroughs:
            pattern = re.compile(r',?\s*' + re.escape(boro_name) + r'\s*$', re.IGNORECASE)
            match = pattern.search(addr_lower)
            if match:
                borough_code = code
                address = address[:match.start()].rstrip(", ")
                break

    address = address.strip().rstrip(",").strip()
    parts = address.split(" ", 1)
    if len(parts) == 2 and _is_house_number(parts[0]):
        house_number = parts[0]
        street_name = parts[1].strip()
    else:
        house_number = ""
        street_name = address

    return house_number, street_name, borough_code


def _is_house_number(s: str) -> bool:
    """Check if string looks like a house number (e.g., '123', '12-34')."""
    return bool(re.match(r'^[\d][\d\-]*[\d]?$', s))


def _zip_to_borough(zipcode: str) -> int | None:
    """Map NYC zipcode to borough code."""
    try:
        z = int(zipcode)
    except ValueError:
        return None
    if 10001 <= z <= 10282:
        return 1  # Manhattan
    if 10451 <= z <= 10475:
        return 2  # Bronx
    if 11201 <= z <= 11256:
        return 3  # Brooklyn
    if 11001 <= z <= 11109 or 11351 <= z <= 11697:
        return 4  # Queens
    if 10301 <= z <= 10314:
        return 5  # Staten Island
    return None


def _to_float(value) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# ──────────────────────────────────────────────────────────────────
# GEOCODING
# ──────────────────────────────────────────────────────────────────

async def geocode_address(address: str) -> BBLResponse:
    """Geocode a NYC address to get BBL, coordinates and a normalized address.

    Uses NYC Planning Geosearch API (free, no auth) as primary,
    with Geoservice as fallback.

    Raises ValueError with a clear message if geocoding fails.
    """
    bbl = parse_bbl(address)
    if bbl:
        return bbl_to_response(bbl, normalized_address=address.strip())

    cached = await get_cached_geocode(address)
    if cached:
        return BBLResponse(**cached)

    result = await _geocode_uncached(address)
    await set_cached_geocode(address, result.model_dump())
    return result


async def _geocode_uncached(address: str) -> BBLResponse:
    errors = []

    try:
        result = await _geocode_geosearch(address)
        if result:
            return result
    except httpx.TimeoutException:
        errors.append(f"Geosearch API timeout (>{settings.provider_timeout_seconds:g}s)")
    except httpx.ConnectError:
        errors.append("Geosearch API connection failed, check internet connectivity")
    except (httpx.HTTPError, ValueError) as e:
        errors.append(f"Geosearch API error: {type(e).__name__}: {e}")

    if errors:
        logger.warning("Geosearch failed for %r: %s", address, errors[-1])

    house_number, street_name, borough_code = parse_address(address)

    if not borough_code:
        detail = (
            f"Could not geocode '{address}'. "
            "The NYC Geosearch API did not find a match, and no borough could "
            "be determined for fallback. Please include the borough "
            "(e.g., 'Brooklyn', 'Manhattan') or a NYC zipcode."
        )
        if errors:
            detail += f" Errors: {'; '.join(errors)}"
        raise ValueError(detail)

    borough_name = BOROUGH_CODE_TO_NAME[borough_code]

    for label, url in (("1B", GEOSERVICE_1B_URL), ("1A", GEOSERVICE_1A_URL)):
        try:
            result = await _geocode_geoservice(url, house_number, street_name, borough_name)
            if result:
                return result
        except httpx.TimeoutException:
            errors.append(f"Geoservice {label} timeout")
        except (httpx.HTTPError, ValueError) as e:
            errors.append(f"Geoservice {label}: {type(e).__name__}")

    detail = (
        f"Could not geocode address: '{address}'. "
        f"Parsed as: {house_number} {street_name}, {borough_name}. "
        "The address may not exist in NYC's database, or it may be a new/unmapped lot."
    )
    if errors:
        detail += f" Service errors: {'; '.join(errors)}"
    raise ValueError(detail)


async def _geocode_geosearch(address: str) -> BBLResponse | None:
    """Geocode using NYC Planning Labs Geosearch API (Pelias).

    Returns BBL, coordinates, borough and the matched address label.
    """
    async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
        resp = await client.get(GEOSEARCH_URL, params={"text": address})
        if resp.status_code != 200:
            return None
        data = resp.json()

    return parse_geosearch_response(data)


def parse_geosearch_response(data: dict) -> BBLResponse | None:
    features = data.get("features", [])
    if not features:
        return None

    feat = features[0]
    props = feat.get("properties", {})
    coords = feat.get("geometry", {}).get("coordinates", [None, None])

    borough = props.get("borough")
    if borough and borough.lower() not in BOROUGH_NAME_TO_CODE:
        return None  # Not in NYC

    pad = props.get("addendum", {}).get("pad", {})
    bbl = pad.get("bbl", "")
    if not bbl or len(bbl) < 10:
        return None

    lat = coords[1] if len(coords) >= 2 and coords[1] else None
    lng = coords[0] if len(coords) >= 2 and coords[0] else None

    return bbl_to_response(
        bbl,
        latitude=lat,
        longitude=lng,
        normalized_address=props.get("label") or props.get("name"),
    )


async def _geocode_geoservice(
    url: str, house_number: str, street_name: str, borough: str
) -> BBLResponse | None:
    """Geocode using NYC Geoservice (Function 1B or 1A)."""
    params = {
        "Borough": borough,
        "AddressNo": house_number,
        "StreetName": street_name,
        "Key": "",
    }

    async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
        resp = await client.get(url, params=params)
        resp.raise_for_status()
        data = resp.json()

    return parse_geoservice_response(data, f"{house_number} {street_name}".strip())


def parse_geoservice_response(data: dict, fallback_address: str | None = None) -> BBLResponse | None:
    display = data.get("display", {})
    if not display:
        return None

    bbl = display.get("out_bbl", "").strip()
    if not bbl or len(bbl) < 10:
        return None

    house = (display.get("out_hnd") or "").strip()
    street = (display.get("out_stname1") or "").strip()
    normalized = f"{house} {street}".strip() if street else fallback_address

    return bbl_to_response(
        bbl,
        latitude=_to_float(display.get("out_latitude")),
        longitude=_to_float(display.get("out_longitude")),
        normalized_address=normalized,
    )
