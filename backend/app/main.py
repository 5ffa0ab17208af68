from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.reports import router as reports_router
from app.database import create_tables

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the report tables on startup when reports live in Postgres."""
    if settings.report_store == "sql":
        await create_tables()
        logger.info("Report tables ready")
    yield


app = FastAPI(
    title="NYC Zoning Feasibility Reports",
    description=(
        "Generate zoning feasibility reports for a NYC lot or a 2-3 lot "
        "assemblage: controlling FAR, buildable area, dwelling unit caps, "
        "zoning consistency and approval-risk flags."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins + ["http://localhost:8000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(reports_router)


@app.get("/")
async def root():
    return {
        "name": "NYC Zoning Feasibility Reports",
        "version": "1.0.0",
        "endpoints": {
            "api_docs": "/docs",
            "health": "/health",
            "generate": "POST /api/v1/reports/generate",
            "generate_assemblage": "POST /api/v1/assemblage-reports/generate",
            "report": "GET /api/v1/reports/{report_id}",
        },
    }


@app.get("/health")
async def health():
    """Health check with dependency status."""
    status = {"status": "healthy", "version": "1.0.0", "report_store": settings.report_store}

    try:
        from app.services.cache import get_redis
        r = await get_redis()
        if r:
            await r.ping()
            status["redis"] = "connected"
        else:
            status["redis"] = "not configured"
    except Exception as e:
        status["redis"] = f"error: {e}"

    return status
