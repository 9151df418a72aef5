from __future__ import annotations

import logging
from collections.abc import Iterable

from ..endpoints.base import Endpoint
from .engine import FailurePolicy, HandledSet, PairwiseSyncEngine, SyncReport

logger = logging.getLogger("frame_sync.sync.service")


class PhotoSyncService:
    """Own a set of endpoints and synchronize them n-way."""

    def __init__(
        self,
        endpoints: Iterable[Endpoint],
        *,
        policy: FailurePolicy = FailurePolicy.ISOLATE,
        delete_from_source: bool = True,
    ) -> None:
        self._endpoints = list(endpoints)
        names = [endpoint.name for endpoint in self._endpoints]
        if len(set(names)) != len(names):
            raise ValueError(f"Endpoint names must be unique: {names}")
        self._handled = HandledSet()
        self.engine = PairwiseSyncEngine(
            policy, handled=self._handled, delete_from_source=delete_from_source
        )

    @property
    def endpoints(self) -> list[Endpoint]:
        return list(self._endpoints)

    def endpoint(self, name: str) -> Endpoint:
        for endpoint in self._endpoints:
            if endpoint.name == name:
                return endpoint
        raise KeyError(name)

    async def initialize(self) -> None:
        logger.info({"event": "service.initialize.start", "endpoints": len(self._endpoints)})
        for endpoint in self._endpoints:
            await endpoint.initialize()
        logger.info({"event": "service.initialize.done"})

    async def close(self) -> None:
        logger.info({"event": "service.close.start"})
        for endpoint in self._endpoints:
            if not endpoint.initialized:
                continue
            try:
                await endpoint.close()
            except Exception:
                logger.exception({"event": "service.close.failed", "endpoint": endpoint.name})
        logger.info({"event": "service.close.done"})

    async def sync_photos(self) -> list[SyncReport]:
        logger.info(
            {
                "event": "service.sync.start",
                "endpoints": [endpoint.name for endpoint in self._endpoints],
                "policy": self.engine.policy.value,
            }
        )
        reports = await self.engine.sync_all(self._endpoints)
        logger.info(
            {
                "event": "service.sync.done",
                "uploaded": sum(report.uploaded for report in reports),
                "failed": sum(report.failed for report in reports),
                "pairs": len(reports),
            }
        )
        return reports

    def get_handled_photos(self) -> frozenset[str]:
        return self._handled.snapshot()

    def clear_handled_photos(self) -> None:
        self._handled.clear()
        logger.info({"event": "service.handled.cleared"})
