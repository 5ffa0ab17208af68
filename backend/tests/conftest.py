"""Shared fixtures: in-memory store (no database, no network)."""

from __future__ import annotations

import pytest

from app.services.report_store import InMemoryResultStore


@pytest.fixture
def store() -> InMemoryResultStore:
    return InMemoryResultStore()
