"""
Report and result-record persistence.

A report is a header row plus an append-only log of result records, one per
provider call or computation. Records are never updated; the report header
only changes status and the parcel fields resolved by the geoservice.

Two backends:
  - InMemoryResultStore: default, used for tests and local runs
  - SqlResultStore: async SQLAlchemy (reports / report_sources tables)
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.report import ReportRow, ReportSourceRow
from app.models.schemas import ProviderResult, Report, ReportStatus, ResultRecord

logger = logging.getLogger(__name__)


class ReportNotFound(LookupError):
    """Raised when a report id is unknown to the store."""

    def __init__(self, report_id: str):
        super().__init__(f"Report not found: {report_id}")
        self.report_id = report_id


class ResultStore(ABC):
    """Persistence contract the orchestrators write through."""

    @abstractmethod
    async def create_report(
        self,
        *,
        address: str,
        addresses: list[str] | None = None,
        name: str | None = None,
        report_type: str = "single",
        organization_id: str | None = None,
        created_by: str | None = None,
        client_id: str | None = None,
    ) -> Report:
        ...

    @abstractmethod
    async def append_result(
        self,
        report_id: str,
        source_key: str,
        result: ProviderResult,
        lot_index: int | None = None,
    ) -> ResultRecord:
        ...

    @abstractmethod
    async def update_status(self, report_id: str, status: ReportStatus) -> Report:
        ...

    @abstractmethod
    async def update_parcel_fields(
        self,
        report_id: str,
        *,
        bbl: str | None,
        normalized_address: str | None,
        lat: float | None,
        lng: float | None,
    ) -> Report:
        ...

    @abstractmethod
    async def get_report(self, report_id: str) -> Report:
        ...

    @abstractmethod
    async def get_results(self, report_id: str) -> list[ResultRecord]:
        """All records of a report in append order."""
        ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────────────────────
# IN-MEMORY
# ──────────────────────────────────────────────────────────────────

class InMemoryResultStore(ResultStore):

    def __init__(self):
        self._reports: dict[str, Report] = {}
        self._results: dict[str, list[ResultRecord]] = {}
        self._lock = asyncio.Lock()

    async def create_report(
        self,
        *,
        address: str,
        addresses: list[str] | None = None,
        name: str | None = None,
        report_type: str = "single",
        organization_id: str | None = None,
        created_by: str | None = None,
        client_id: str | None = None,
    ) -> Report:
        now = _now()
        report = Report(
            id=str(uuid.uuid4()),
            address=address,
            addresses=list(addresses) if addresses else [address],
            name=name,
            report_type=report_type,
            status="pending",
            organization_id=organization_id,
            created_by=created_by,
            client_id=client_id,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._reports[report.id] = report
            self._results[report.id] = []
        return report.model_copy(deep=True)

    async def append_result(
        self,
        report_id: str,
        source_key: str,
        result: ProviderResult,
        lot_index: int | None = None,
    ) -> ResultRecord:
        async with self._lock:
            records = self._get_results(report_id)
            record = ResultRecord(
                report_id=report_id,
                sequence=len(records) + 1,
                source_key=source_key,
                lot_index=lot_index,
                status=result.status,
                data=result.data,
                error=result.error,
                created_at=_now(),
            )
            records.append(record.model_copy(deep=True))
        return record

    async def update_status(self, report_id: str, status: ReportStatus) -> Report:
        return await self._update(report_id, status=status)

    async def update_parcel_fields(
        self,
        report_id: str,
        *,
        bbl: str | None,
        normalized_address: str | None,
        lat: float | None,
        lng: float | None,
    ) -> Report:
        return await self._update(
            report_id,
            bbl=bbl,
            normalized_address=normalized_address,
            latitude=lat,
            longitude=lng,
        )

    async def get_report(self, report_id: str) -> Report:
        async with self._lock:
            return self._get_report(report_id).model_copy(deep=True)

    async def get_results(self, report_id: str) -> list[ResultRecord]:
        async with self._lock:
            return [r.model_copy(deep=True) for r in self._get_results(report_id)]

    async def _update(self, report_id: str, **changes) -> Report:
        async with self._lock:
            report = self._get_report(report_id).model_copy(
                update={**changes, "updated_at": _now()},
            )
            self._reports[report_id] = report
            return report.model_copy(deep=True)

    def _get_report(self, report_id: str) -> Report:
        report = self._reports.get(report_id)
        if report is None:
            raise ReportNotFound(report_id)
        return report

    def _get_results(self, report_id: str) -> list[ResultRecord]:
        records = self._results.get(report_id)
        if records is None:
            raise ReportNotFound(report_id)
        return records


# ──────────────────────────────────────────────────────────────────
# SQL
# ──────────────────────────────────────────────────────────────────

def _report_from_row(row: ReportRow) -> Report:
    return Report(
        id=str(row.id),
        address=row.address,
        addresses=list(row.addresses or []),
        name=row.name,
        report_type=row.report_type,
        status=row.status,
        organization_id=row.organization_id,
        created_by=row.created_by,
        client_id=row.client_id,
        bbl=row.bbl,
        normalized_address=row.normalized_address,
        latitude=row.latitude,
        longitude=row.longitude,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _record_from_row(row: ReportSourceRow) -> ResultRecord:
    return ResultRecord(
        report_id=str(row.report_id),
        sequence=row.sequence,
        source_key=row.source_key,
        lot_index=row.lot_index,
        status=row.status,
        data=row.content_json,
        error=row.error,
        created_at=row.created_at,
    )


def _parse_id(report_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(report_id))
    except ValueError:
        raise ReportNotFound(report_id) from None


class SqlResultStore(ResultStore):
    """Each write commits in its own transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        if session_factory is None:
            from app.database import get_session_factory
            session_factory = get_session_factory()
        self._session_factory = session_factory

    async def create_report(
        self,
        *,
        address: str,
        addresses: list[str] | None = None,
        name: str | None = None,
        report_type: str = "single",
        organization_id: str | None = None,
        created_by: str | None = None,
        client_id: str | None = None,
    ) -> Report:
        now = _now()
        row = ReportRow(
            id=uuid.uuid4(),
            address=address,
            addresses=list(addresses) if addresses else [address],
            name=name,
            report_type=report_type,
            status="pending",
            organization_id=organization_id,
            created_by=created_by,
            client_id=client_id,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as session:
            async with session.begin():
                session.add(row)
        return _report_from_row(row)

    async def append_result(
        self,
        report_id: str,
        source_key: str,
        result: ProviderResult,
        lot_index: int | None = None,
    ) -> ResultRecord:
        rid = _parse_id(report_id)
        async with self._session_factory() as session:
            async with session.begin():
                # Lock the header row so concurrent appends get distinct sequences
                report = await session.get(ReportRow, rid, with_for_update=True)
                if report is None:
                    raise ReportNotFound(report_id)
                last = await session.scalar(
                    select(func.max(ReportSourceRow.sequence))
                    .where(ReportSourceRow.report_id == rid)
                )
                row = ReportSourceRow(
                    report_id=rid,
                    sequence=(last or 0) + 1,
                    source_key=source_key,
                    lot_index=lot_index,
                    status=result.status,
                    content_json=result.data,
                    error=result.error,
                    created_at=_now(),
                )
                session.add(row)
        return _record_from_row(row)

    async def update_status(self, report_id: str, status: ReportStatus) -> Report:
        return await self._update(report_id, status=status)

    async def update_parcel_fields(
        self,
        report_id: str,
        *,
        bbl: str | None,
        normalized_address: str | None,
        lat: float | None,
        lng: float | None,
    ) -> Report:
        return await self._update(
            report_id,
            bbl=bbl,
            normalized_address=normalized_address,
            latitude=lat,
            longitude=lng,
        )

    async def get_report(self, report_id: str) -> Report:
        rid = _parse_id(report_id)
        async with self._session_factory() as session:
            row = await session.get(ReportRow, rid)
            if row is None:
                raise ReportNotFound(report_id)
            return _report_from_row(row)

    async def get_results(self, report_id: str) -> list[ResultRecord]:
        rid = _parse_id(report_id)
        async with self._session_factory() as session:
            if await session.get(ReportRow, rid) is None:
                raise ReportNotFound(report_id)
            rows = await session.scalars(
                select(ReportSourceRow)
                .where(ReportSourceRow.report_id == rid)
                .order_by(ReportSourceRow.sequence)
            )
            return [_record_from_row(r) for r in rows]

    async def _update(self, report_id: str, **changes) -> Report:
        rid = _parse_id(report_id)
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(ReportRow, rid)
                if row is None:
                    raise ReportNotFound(report_id)
                for key, value in changes.items():
                    setattr(row, key, value)
                row.updated_at = _now()
            return _report_from_row(row)


# ──────────────────────────────────────────────────────────────────
# DEPENDENCY
# ──────────────────────────────────────────────────────────────────

_store: Optional[ResultStore] = None


def get_result_store() -> ResultStore:
    """Process-wide store selected by ``settings.report_store``."""
    global _store
    if _store is None:
        from app.config import settings
        if settings.report_store == "sql":
            _store = SqlResultStore()
        else:
            _store = InMemoryResultStore()
        logger.info("Using %s for report results", type(_store).__name__)
    return _store
