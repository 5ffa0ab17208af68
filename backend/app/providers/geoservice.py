from __future__ import annotations

from app.config import settings
from app.models.schemas import GeoserviceExtract
from app.providers.base import BaseProvider
from app.services.geocoding import geocode_address


class GeoserviceProvider(BaseProvider):
    """Resolves an address to a BBL, coordinates and a normalized address."""

    def __init__(self):
        super().__init__("Geoservice", "geoservice", timeout=settings.provider_timeout_seconds)

    async def fetch_data(self, request: dict, report_id: str) -> dict:
        address = (request.get("address") or "").strip()
        if not address:
            raise ValueError("Address is required for geoservice lookup")

        result = await geocode_address(address)
        extracted = GeoserviceExtract(
            bbl=result.bbl,
            normalized_address=result.normalized_address or address,
            lat=result.latitude,
            lng=result.longitude,
            borough=result.borough,
            block=result.block,
            lot=result.lot,
        )
        return {"address": address, "extracted": extracted.model_dump()}
