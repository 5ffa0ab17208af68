from __future__ import annotations

import asyncio
import logging

from app.models.schemas import ProviderResult

logger = logging.getLogger(__name__)


class BaseProvider:
    """Adapter around one external data source or derivation step.

    Subclasses implement ``fetch_data``. ``execute`` never raises: any
    exception, including a timeout, becomes a failed ProviderResult so the
    orchestrators only have to branch on ``status``.
    """

    def __init__(self, name: str, source_key: str, timeout: float | None = None):
        self.name = name
        self.source_key = source_key
        self.enabled = True
        self.timeout = timeout

    async def execute(self, request: dict, report_id: str) -> ProviderResult:
        if not self.enabled:
            logger.info("%s is currently disabled", self.source_key)
            return ProviderResult.failure(f"{self.name} is currently disabled")

        try:
            if self.timeout:
                data = await asyncio.wait_for(
                    self.fetch_data(request, report_id), timeout=self.timeout,
                )
            else:
                data = await self.fetch_data(request, report_id)
        except asyncio.TimeoutError:
            logger.warning(
                "%s timed out after %.1fs (report %s)", self.name, self.timeout, report_id,
            )
            return ProviderResult.failure(f"{self.name} timed out after {self.timeout:g}s")
        except Exception as e:
            logger.warning("%s failed (report %s): %s", self.name, report_id, e)
            return ProviderResult.failure(str(e) or f"{type(e).__name__} in {self.name}")

        return ProviderResult.success(data)

    async def fetch_data(self, request: dict, report_id: str) -> dict:
        raise NotImplementedError(f"fetch_data must be implemented in {self.name}")
