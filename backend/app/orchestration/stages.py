"""
Pipeline stages and their failure policy.

Every provider call or computation in a report pipeline runs through
``run_stage``: it awaits the call, converts any exception into a failed
result, appends exactly one record to the store and then applies the
stage's policy.

  - CRITICAL:      a failed result raises CriticalStageFailed after the
                   record is stored; the orchestrator marks the report
                   failed and stops.
  - NON_CRITICAL:  a failed result is stored and the pipeline continues.

Store errors are not caught here; they are unexpected and propagate.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from app.models.schemas import ProviderResult
from app.services.report_store import ResultStore

logger = logging.getLogger(__name__)


class StagePolicy(str, enum.Enum):
    CRITICAL = "critical"
    NON_CRITICAL = "non_critical"


@dataclass(frozen=True)
class Stage:
    source_key: str
    policy: StagePolicy = StagePolicy.NON_CRITICAL

    @property
    def critical(self) -> bool:
        return self.policy == StagePolicy.CRITICAL


class CriticalStageFailed(Exception):
    """A critical stage failed; the report cannot continue."""

    def __init__(self, stage: Stage, message: str, result: ProviderResult | None = None,
                 lot_index: int | None = None):
        super().__init__(message)
        self.stage = stage
        self.result = result
        self.lot_index = lot_index


StageCall = Callable[[], Awaitable[ProviderResult]]


def computation(fn: Callable[..., dict], *args, **kwargs) -> StageCall:
    """Wrap a synchronous computation so it can run as a stage.

    The function runs to completion when the stage awaits it; its return
    value becomes the record payload.
    """
    async def call() -> ProviderResult:
        return ProviderResult.success(fn(*args, **kwargs))
    return call


async def run_stage(
    store: ResultStore,
    report_id: str,
    stage: Stage,
    call: StageCall,
    *,
    lot_index: Optional[int] = None,
    context: Optional[dict] = None,
    validate: Optional[Callable[[dict], object]] = None,
) -> ProviderResult:
    """Run one stage and append its record.

    ``context`` (e.g. child index and address of an assemblage lot) is
    merged into the stored payload, success or failure.

    ``validate`` parses a successful payload into its typed form; if it
    raises, the stage is recorded as failed like any other provider error.
    """
    try:
        result = await call()
        if validate is not None and result.succeeded:
            validate(result.data or {})
    except Exception as e:
        logger.warning(
            "Stage %s failed (report %s, lot %s): %s",
            stage.source_key, report_id, lot_index, e,
        )
        result = ProviderResult.failure(str(e) or type(e).__name__)

    if context:
        result = result.model_copy(update={"data": {**context, **(result.data or {})}})

    await store.append_result(report_id, stage.source_key, result, lot_index=lot_index)

    if not result.succeeded:
        if stage.critical:
            raise CriticalStageFailed(
                stage, result.error or f"{stage.source_key} failed",
                result=result, lot_index=lot_index,
            )
        logger.warning(
            "Non-critical stage %s failed for report %s: %s",
            stage.source_key, report_id, result.error,
        )
    return result


async def mark_failed(store: ResultStore, report_id: str) -> None:
    """Best-effort transition to ``failed`` after an unexpected error."""
    try:
        await store.update_status(report_id, "failed")
    except Exception:
        logger.exception("Could not mark report %s as failed", report_id)
