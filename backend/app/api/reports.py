"""Report endpoints: generate single-lot and assemblage reports, fetch results."""
from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException

from app.models.schemas import AssemblageReportRequest, ReportRequest
from app.orchestration import generate_assemblage_report, generate_report
from app.providers import BaseProvider, get_default_providers
from app.services.report_store import ReportNotFound, ResultStore, get_result_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["reports"])


@lru_cache(maxsize=1)
def get_providers() -> dict[str, BaseProvider]:
    return get_default_providers()


# ── POST /reports/generate ──
@router.post("/reports/generate")
async def generate_report_endpoint(
    req: ReportRequest,
    store: ResultStore = Depends(get_result_store),
    providers: dict[str, BaseProvider] = Depends(get_providers),
):
    """Generate a single-lot zoning report. Runs to completion before returning."""
    try:
        outcome = await generate_report(
            req.address,
            req.organization_id,
            req.user_id,
            req.client_id,
            store=store,
            providers=providers,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return outcome.to_dict()


# ── POST /assemblage-reports/generate ──
@router.post("/assemblage-reports/generate")
async def generate_assemblage_report_endpoint(
    req: AssemblageReportRequest,
    store: ResultStore = Depends(get_result_store),
    providers: dict[str, BaseProvider] = Depends(get_providers),
):
    """Generate an assemblage report for 2-3 addresses."""
    try:
        outcome = await generate_assemblage_report(
            req.addresses,
            req.organization_id,
            req.user_id,
            req.client_id,
            store=store,
            providers=providers,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return outcome.to_dict()


# ── GET /reports/{report_id} ──
@router.get("/reports/{report_id}")
async def get_report(report_id: str, store: ResultStore = Depends(get_result_store)):
    """Report header plus its result records in append order."""
    try:
        report = await store.get_report(report_id)
        results = await store.get_results(report_id)
    except ReportNotFound:
        raise HTTPException(status_code=404, detail="Report not found")

    return {
        "report": report.model_dump(mode="json"),
        "results": [r.model_dump(mode="json") for r in results],
    }
