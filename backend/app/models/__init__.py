from __future__ import annotations

from app.models.report import ReportRow, ReportSourceRow

__all__ = ["ReportRow", "ReportSourceRow"]
