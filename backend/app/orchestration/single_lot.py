"""
Single-lot report pipeline.

  1. create report (pending)
  2. geoservice         CRITICAL      address → BBL, coordinates
  3. record parcel fields on the report
  4. zola               NON_CRITICAL  MapPLUTO attributes by BBL
  5. zoning_resolution  NON_CRITICAL  FAR / coverage / DUF over the attributes
  6. report → ready

Stages run sequentially since each consumes the previous one's output.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from typing import Mapping, Optional

from app.config import settings
from app.models.schemas import GeoserviceExtract, ParcelAttributes, ProviderResult
from app.orchestration.stages import (
    CriticalStageFailed,
    Stage,
    StagePolicy,
    mark_failed,
    run_stage,
)
from app.providers import (
    GEOSERVICE,
    ZOLA,
    ZONING_RESOLUTION,
    BaseProvider,
    require_provider,
)
from app.services.report_store import ResultStore
from app.zoning_engine.far_tables import normalize_street_width

logger = logging.getLogger(__name__)

GEOSERVICE_STAGE = Stage(GEOSERVICE, StagePolicy.CRITICAL)
ZOLA_STAGE = Stage(ZOLA, StagePolicy.NON_CRITICAL)
ZONING_RESOLUTION_STAGE = Stage(ZONING_RESOLUTION, StagePolicy.NON_CRITICAL)


@dataclass
class ReportOutcome:
    report_id: str
    status: str
    bbl: Optional[str] = None
    normalized_address: Optional[str] = None
    agent_results: list[dict] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def validate_geoservice_payload(data: dict) -> None:
    extracted = data.get("extracted")
    if extracted:
        GeoserviceExtract.model_validate(extracted)


def validate_parcel_payload(data: dict) -> None:
    attributes = data.get("attributes")
    if attributes is not None:
        ParcelAttributes.model_validate(attributes)


def extract_geoservice(result: ProviderResult) -> GeoserviceExtract | None:
    extracted = (result.data or {}).get("extracted")
    if not result.succeeded or not extracted:
        return None
    return GeoserviceExtract.model_validate(extracted)


def extract_parcel(result: ProviderResult | None) -> ParcelAttributes | None:
    """Typed parcel attributes from a zola record; None when the lookup failed."""
    if result is None or not result.succeeded:
        return None
    attributes = (result.data or {}).get("attributes")
    if attributes is None:
        return None
    return ParcelAttributes.model_validate(attributes)


async def generate_report(
    address: str,
    organization_id: str,
    user_id: str,
    client_id: str | None = None,
    *,
    store: ResultStore,
    providers: Mapping[str, BaseProvider],
    street_width: str | None = None,
) -> ReportOutcome:
    """Run the single-lot pipeline for one address.

    A critical failure returns an outcome with status ``failed`` and an
    ``error``; it does not raise. Unexpected errors (store unavailable,
    provider missing from the registry) mark the report failed and are
    re-raised.
    """
    address = (address or "").strip()
    if not address:
        raise ValueError("Address is required")
    street_width = normalize_street_width(street_width or settings.default_street_width)

    report = None
    try:
        report = await store.create_report(
            address=address,
            addresses=[address],
            name=address,
            report_type="single",
            organization_id=organization_id,
            created_by=user_id,
            client_id=client_id,
        )
        logger.info("Report %s created for %r", report.id, address)

        agent_results: list[dict] = []
        geoservice = require_provider(providers, GEOSERVICE)

        try:
            geo_result = await run_stage(
                store, report.id, GEOSERVICE_STAGE,
                lambda: geoservice.execute({"address": address}, report.id),
                validate=validate_geoservice_payload,
            )
            agent_results.append({"agent": GEOSERVICE, "status": geo_result.status})
            extract = extract_geoservice(geo_result)
            if extract is None or not extract.bbl:
                raise CriticalStageFailed(
                    GEOSERVICE_STAGE, "Geoservice did not return a BBL", result=geo_result,
                )
        except CriticalStageFailed as e:
            if e.result is not None and not agent_results:
                agent_results.append({"agent": GEOSERVICE, "status": e.result.status})
            await store.update_status(report.id, "failed")
            logger.warning("Report %s failed: %s", report.id, e)
            return ReportOutcome(
                report_id=report.id,
                status="failed",
                agent_results=agent_results,
                error=f"Geoservice failed: {e}",
            )

        await store.update_parcel_fields(
            report.id,
            bbl=extract.bbl,
            normalized_address=extract.normalized_address,
            lat=extract.lat,
            lng=extract.lng,
        )

        parcel = None
        zola = providers.get(ZOLA)
        if zola is not None:
            zola_result = await run_stage(
                store, report.id, ZOLA_STAGE,
                lambda: zola.execute(
                    {
                        "address": address,
                        "bbl": extract.bbl,
                        "normalized_address": extract.normalized_address,
                        "location": {"lat": extract.lat, "lng": extract.lng},
                    },
                    report.id,
                ),
                validate=validate_parcel_payload,
            )
            agent_results.append({"agent": ZOLA, "status": zola_result.status})
            parcel = extract_parcel(zola_result)

        zoning = providers.get(ZONING_RESOLUTION)
        if zoning is not None:
            zoning_result = await run_stage(
                store, report.id, ZONING_RESOLUTION_STAGE,
                lambda: zoning.execute(
                    {
                        "bbl": extract.bbl,
                        "parcel": parcel,
                        "street_width": street_width,
                    },
                    report.id,
                ),
            )
            agent_results.append({"agent": ZONING_RESOLUTION, "status": zoning_result.status})

        await store.update_status(report.id, "ready")
        logger.info("Report %s ready (BBL %s)", report.id, extract.bbl)

        return ReportOutcome(
            report_id=report.id,
            status="ready",
            bbl=extract.bbl,
            normalized_address=extract.normalized_address,
            agent_results=agent_results,
        )
    except Exception:
        logger.exception("Error generating report for %r", address)
        if report is not None:
            await mark_failed(store, report.id)
        raise
