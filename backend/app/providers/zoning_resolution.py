from __future__ import annotations

from app.config import settings
from app.models.schemas import ParcelAttributes
from app.providers.base import BaseProvider
from app.zoning_engine.density import DensityRules, lot_dwelling_unit_cap
from app.zoning_engine.far_resolver import resolve_lot_zoning
from app.zoning_engine.far_tables import normalize_street_width


class ZoningResolutionProvider(BaseProvider):
    """Controlling FAR, lot coverage and DUF cap for one lot.

    Pure derivation over the parcel attributes fetched by the zola stage;
    no network access.
    """

    def __init__(self, rules: DensityRules | None = None):
        super().__init__("Zoning Resolution", "zoning_resolution")
        self.rules = rules

    async def fetch_data(self, request: dict, report_id: str) -> dict:
        parcel = request.get("parcel")
        if isinstance(parcel, dict):
            parcel = ParcelAttributes.model_validate(parcel)
        if parcel is None or not parcel.has_data:
            raise ValueError(
                "Parcel attribute data not found; zoning resolution requires "
                "the parcel lookup to succeed first."
            )

        street_width = normalize_street_width(
            request.get("street_width") or settings.default_street_width
        )
        zoning = resolve_lot_zoning(parcel, street_width)
        derived = zoning.get("derived", {})
        zoning["density"] = lot_dwelling_unit_cap(
            parcel,
            derived.get("max_buildable_floor_area_sqft"),
            self.rules or DensityRules.from_settings(),
        )
        zoning["bbl"] = parcel.bbl
        zoning["street_width"] = street_width
        return zoning
