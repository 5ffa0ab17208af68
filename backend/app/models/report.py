from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Text, Float, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB, ARRAY

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportRow(Base):
    __tablename__ = "reports"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    address = Column(Text, nullable=False)
    addresses = Column(ARRAY(Text), default=[])
    name = Column(Text, nullable=True)
    report_type = Column(String(20), default="single")
    status = Column(String(20), default="pending")
    organization_id = Column(String(64), nullable=True)
    created_by = Column(String(64), nullable=True)
    client_id = Column(String(64), nullable=True)
    bbl = Column(String(10), nullable=True)
    normalized_address = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class ReportSourceRow(Base):
    __tablename__ = "report_sources"
    __table_args__ = (UniqueConstraint("report_id", "sequence"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(UUID(as_uuid=True), ForeignKey("reports.id"), index=True)
    sequence = Column(Integer, nullable=False)
    source_key = Column(String(64), nullable=False)
    lot_index = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False)
    content_json = Column(JSONB, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
