from __future__ import annotations

from app.config import settings
from app.providers.base import BaseProvider
from app.services.pluto import fetch_pluto_data


class ZolaProvider(BaseProvider):
    """MapPLUTO parcel attributes for a BBL, as shown on ZoLa.

    ``data["attributes"]`` holds only the fields present upstream so
    ``ParcelAttributes.model_validate`` restores the same set of fields.
    """

    def __init__(self):
        super().__init__("ZoLa", "zola", timeout=settings.provider_timeout_seconds)

    async def fetch_data(self, request: dict, report_id: str) -> dict:
        bbl = request.get("bbl")
        if not bbl:
            raise ValueError("BBL is required for parcel lookup")

        parcel = await fetch_pluto_data(str(bbl))
        if parcel is None:
            raise ValueError(f"No MapPLUTO data for BBL {bbl}")

        return {"bbl": str(bbl), "attributes": parcel.model_dump(exclude_unset=True)}
