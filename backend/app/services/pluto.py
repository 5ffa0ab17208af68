"""
MapPLUTO parcel attributes from NYC Open Data (Socrata).

Socrata omits null columns from a record, so only the keys present in the
upstream row are passed to ParcelAttributes. Downstream risk scoring relies
on that to tell "field absent" apart from "field empty".
"""

from __future__ import annotations

import logging

import httpx

from app.config import settings
from app.models.schemas import ParcelAttributes, to_float, to_int
from app.services.cache import get_cached_pluto, set_cached_pluto

logger = logging.getLogger(__name__)

PLUTO_SOCRATA_URL = "https://data.cityofnewyork.us/resource/64uk-42ks.json"

_STR_FIELDS = [
    "bbl", "address", "borough", "zonedist1", "zonedist2", "zonedist3", "zonedist4",
    "overlay1", "overlay2", "spdist1", "spdist2", "spdist3",
    "histdist", "bldgclass", "landuse", "zipcode",
]
_INT_FIELDS = ["borocode", "block", "lot", "unitsres", "yearbuilt"]
_FLOAT_FIELDS = [
    "lotarea", "lotfront", "lotdepth", "bldgarea", "numfloors",
    "builtfar", "residfar", "commfar", "facilfar",
]
# Kept raw; the source mixes booleans, 0/1 and free text
_RAW_FIELDS = ["landmark"]

PLUTO_FIELDS = _STR_FIELDS + _INT_FIELDS + _FLOAT_FIELDS + _RAW_FIELDS


async def fetch_pluto_data(bbl: str, app_token: str | None = None) -> ParcelAttributes | None:
    """Fetch MapPLUTO attributes for a BBL. Returns None when no row matches."""
    cached = await get_cached_pluto(bbl)
    if cached is not None:
        return parse_pluto_record(cached)

    app_token = settings.socrata_app_token if app_token is None else app_token
    headers = {}
    if app_token:
        headers["X-App-Token"] = app_token

    async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
        resp = await client.get(PLUTO_SOCRATA_URL, params={"bbl": bbl}, headers=headers)
        resp.raise_for_status()
        data = resp.json()

    if not data:
        logger.info("No MapPLUTO row for BBL %s", bbl)
        return None

    record = data[0]
    await set_cached_pluto(bbl, record)
    return parse_pluto_record(record)


def _str(val):
    if val is None:
        return None
    # Socrata serializes BBL as "3046220022.00000000"
    if isinstance(val, float) and val.is_integer():
        return str(int(val))
    return str(val)


def parse_pluto_record(record: dict) -> ParcelAttributes:
    """Parse a raw MapPLUTO Socrata record, keeping only the keys it carries."""
    fields: dict = {}
    for name in _STR_FIELDS:
        if name in record:
            fields[name] = _str(record[name])
    for name in _INT_FIELDS:
        if name in record:
            fields[name] = to_int(record[name])
    for name in _FLOAT_FIELDS:
        if name in record:
            fields[name] = to_float(record[name])
    for name in _RAW_FIELDS:
        if name in record:
            fields[name] = record[name]

    bbl = fields.get("bbl")
    if bbl and "." in bbl:
        fields["bbl"] = bbl.split(".", 1)[0]

    return ParcelAttributes(**fields)
