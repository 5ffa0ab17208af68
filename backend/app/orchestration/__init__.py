from __future__ import annotations

from app.orchestration.assemblage import AssemblageOutcome, generate_assemblage_report
from app.orchestration.single_lot import ReportOutcome, generate_report

__all__ = [
    "AssemblageOutcome",
    "ReportOutcome",
    "generate_assemblage_report",
    "generate_report",
]
