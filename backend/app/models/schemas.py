from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

ReportStatus = Literal["pending", "ready", "failed"]
ReportType = Literal["single", "assemblage"]
ResultStatus = Literal["succeeded", "failed"]


def to_float(val) -> float | None:
    """Parse an upstream numeric; unparseable values (e.g. "N/A", "") become None."""
    if val is None:
        return None
    try:
        return float(val)
    except (ValueError, TypeError):
        return None


def to_int(val) -> int | None:
    if val is None:
        return None
    try:
        return int(float(val))
    except (ValueError, TypeError, OverflowError):
        return None


class BBLResponse(BaseModel):
    bbl: str
    borough: int
    block: int
    lot: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    normalized_address: Optional[str] = None


# ──────────────────────────────────────────────────────────────────
# PROVIDER PAYLOADS
# ──────────────────────────────────────────────────────────────────

class GeoserviceExtract(BaseModel):
    """Fields the geoservice provider extracts for one address."""
    bbl: Optional[str] = None
    normalized_address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    borough: Optional[int] = None
    block: Optional[int] = None
    lot: Optional[int] = None

    @field_validator("lat", "lng", mode="before")
    @classmethod
    def coerce_float(cls, v):
        return to_float(v)

    @field_validator("borough", "block", "lot", mode="before")
    @classmethod
    def coerce_int(cls, v):
        return to_int(v)


class ParcelAttributes(BaseModel):
    """MapPLUTO / ZoLa parcel attributes for one tax lot.

    Only the keys present in the upstream record are set, so
    ``model_fields_set`` tells an absent field apart from an explicit null.
    ``landmark`` is kept raw because the source mixes booleans, 0/1 and
    free text.
    """
    bbl: Optional[str] = None
    address: Optional[str] = None
    borough: Optional[str] = None
    borocode: Optional[int] = None
    block: Optional[int] = None
    lot: Optional[int] = None
    zonedist1: Optional[str] = None
    zonedist2: Optional[str] = None
    zonedist3: Optional[str] = None
    zonedist4: Optional[str] = None
    overlay1: Optional[str] = None
    overlay2: Optional[str] = None
    spdist1: Optional[str] = None
    spdist2: Optional[str] = None
    spdist3: Optional[str] = None
    landmark: Any = None
    histdist: Optional[str] = None
    bldgclass: Optional[str] = None
    landuse: Optional[str] = None
    unitsres: Optional[int] = None
    lotarea: Optional[float] = None
    lotfront: Optional[float] = None
    lotdepth: Optional[float] = None
    bldgarea: Optional[float] = None
    numfloors: Optional[float] = None
    builtfar: Optional[float] = None
    residfar: Optional[float] = None
    commfar: Optional[float] = None
    facilfar: Optional[float] = None
    yearbuilt: Optional[int] = None
    zipcode: Optional[str] = None

    # Upstream numerics arrive as strings and sometimes as placeholders ("N/A")
    @field_validator(
        "lotarea", "lotfront", "lotdepth", "bldgarea", "numfloors",
        "builtfar", "residfar", "commfar", "facilfar",
        mode="before",
    )
    @classmethod
    def coerce_float(cls, v):
        return to_float(v)

    @field_validator("borocode", "block", "lot", "unitsres", "yearbuilt", mode="before")
    @classmethod
    def coerce_int(cls, v):
        return to_int(v)

    @property
    def has_data(self) -> bool:
        return self.bbl is not None or self.block is not None

    @property
    def zoning_districts(self) -> list[str]:
        return _non_empty(self.zonedist1, self.zonedist2, self.zonedist3, self.zonedist4)

    @property
    def overlays(self) -> list[str]:
        return _non_empty(self.overlay1, self.overlay2)

    @property
    def special_districts(self) -> list[str]:
        return _non_empty(self.spdist1, self.spdist2, self.spdist3)


def _non_empty(*values: Optional[str]) -> list[str]:
    return [str(v).strip() for v in values if v is not None and str(v).strip()]


class ProviderResult(BaseModel):
    """Uniform result of a provider adapter's ``execute`` call."""
    status: ResultStatus
    data: Optional[dict] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, data: dict | None) -> "ProviderResult":
        return cls(status="succeeded", data=data, error=None)

    @classmethod
    def failure(cls, error: str, data: dict | None = None) -> "ProviderResult":
        return cls(status="failed", data=data, error=error)

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


# ──────────────────────────────────────────────────────────────────
# REPORTS AND RESULT RECORDS
# ──────────────────────────────────────────────────────────────────

class Report(BaseModel):
    id: str
    address: str
    addresses: list[str] = []
    name: Optional[str] = None
    report_type: ReportType = "single"
    status: ReportStatus = "pending"
    organization_id: Optional[str] = None
    created_by: Optional[str] = None
    client_id: Optional[str] = None
    bbl: Optional[str] = None
    normalized_address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_at: datetime
    updated_at: datetime


class ResultRecord(BaseModel):
    """Append-only fact attached to a report."""
    report_id: str
    sequence: int
    source_key: str
    lot_index: Optional[int] = None
    status: ResultStatus
    data: Optional[dict] = None
    error: Optional[str] = None
    created_at: datetime


# ──────────────────────────────────────────────────────────────────
# API REQUESTS
# ──────────────────────────────────────────────────────────────────

class ReportRequest(BaseModel):
    address: str
    organization_id: str
    user_id: str
    client_id: Optional[str] = None


class AssemblageReportRequest(BaseModel):
    addresses: list[str] = Field(default_factory=list)
    organization_id: str
    user_id: str
    client_id: Optional[str] = None
