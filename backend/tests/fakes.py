"""Fake providers and canned MapPLUTO / geoservice data for pipeline tests."""

from __future__ import annotations

from app.models.schemas import GeoserviceExtract, ParcelAttributes
from app.providers import BaseProvider, ZoningResolutionProvider


class FakeGeoservice(BaseProvider):
    """Maps addresses to canned extracts; unknown addresses raise."""

    def __init__(self, extracts: dict[str, dict] | None = None):
        super().__init__("Fake Geoservice", "geoservice")
        self.extracts = extracts or {}
        self.calls: list[str] = []

    async def fetch_data(self, request: dict, report_id: str) -> dict:
        address = request["address"]
        self.calls.append(address)
        if address not in self.extracts:
            raise ValueError(f"Could not geocode address: '{address}'")
        extracted = GeoserviceExtract(**self.extracts[address])
        return {"address": address, "extracted": extracted.model_dump()}


class FakeZola(BaseProvider):
    """Serves canned MapPLUTO attributes by BBL; unknown BBLs raise."""

    def __init__(self, parcels: dict[str, dict] | None = None):
        super().__init__("Fake ZoLa", "zola")
        self.parcels = parcels or {}
        self.calls: list[str] = []

    async def fetch_data(self, request: dict, report_id: str) -> dict:
        bbl = request["bbl"]
        self.calls.append(bbl)
        if bbl not in self.parcels:
            raise ValueError(f"No MapPLUTO data for BBL {bbl}")
        parcel = ParcelAttributes(**self.parcels[bbl])
        return {"bbl": bbl, "attributes": parcel.model_dump(exclude_unset=True)}


class RecordingZoningResolution(ZoningResolutionProvider):

    def __init__(self):
        super().__init__()
        self.calls = 0

    async def fetch_data(self, request: dict, report_id: str) -> dict:
        self.calls += 1
        return await super().fetch_data(request, report_id)


def make_extract(bbl: str, address: str | None = None) -> dict:
    return {
        "bbl": bbl,
        "normalized_address": address or f"{bbl[-4:]} TEST STREET",
        "lat": 40.68,
        "lng": -73.97,
        "borough": int(bbl[0]),
        "block": int(bbl[1:6]),
        "lot": int(bbl[6:10]),
    }


def make_parcel(bbl: str, **overrides) -> dict:
    fields = {
        "bbl": bbl,
        "borough": "BK",
        "borocode": int(bbl[0]),
        "block": int(bbl[1:6]),
        "lot": int(bbl[6:10]),
        "zonedist1": "R6B",
        "lotarea": 2000.0,
        "bldgarea": 1500.0,
        "bldgclass": "C0",
        "unitsres": 3,
        "landmark": None,
        "histdist": None,
    }
    fields.update(overrides)
    return fields


class PassthroughZola(FakeZola):
    """Returns canned attributes unvalidated, as a raw upstream row would arrive."""

    async def fetch_data(self, request: dict, report_id: str) -> dict:
        bbl = request["bbl"]
        self.calls.append(bbl)
        if bbl not in self.parcels:
            raise ValueError(f"No MapPLUTO data for BBL {bbl}")
        return {"bbl": bbl, "attributes": dict(self.parcels[bbl])}


class PassthroughGeoservice(FakeGeoservice):
    """Returns canned extracts unvalidated."""

    async def fetch_data(self, request: dict, report_id: str) -> dict:
        address = request["address"]
        self.calls.append(address)
        if address not in self.extracts:
            raise ValueError(f"Could not geocode address: '{address}'")
        return {"address": address, "extracted": dict(self.extracts[address])}
