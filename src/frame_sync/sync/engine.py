"""Pairwise and n-way photo transfer between endpoints."""
from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from itertools import permutations
from typing import Iterator, Optional

from ..endpoints.base import Capability, Endpoint, EndpointKind
from ..models import Photo
from ..telemetry.log import log_timing

logger = logging.getLogger("frame_sync.sync.engine")


class FailurePolicy(str, Enum):
    """What an upload failure does to the rest of the batch.

    FAIL_FAST aborts the batch and lets the caller retry everything not yet
    handled on the next tick. ISOLATE logs the item and moves on.
    """

    FAIL_FAST = "fail_fast"
    ISOLATE = "isolate_and_continue"


class HandledSet:
    """Photo ids already transferred by one sync service during its lifetime."""

    def __init__(self) -> None:
        self._ids: set[str] = set()

    def add(self, photo_id: str) -> None:
        self._ids.add(photo_id)

    def __contains__(self, photo_id: object) -> bool:
        return photo_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._ids)

    def clear(self) -> None:
        self._ids.clear()


@dataclass(slots=True)
class SyncReport:
    source: str
    destination: str
    uploaded: int = 0
    skipped: int = 0
    failed: int = 0
    deleted: int = 0
    delete_failed: int = 0
    errors: dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.failed == 0


class PairwiseSyncEngine:
    """Compute and execute the transfer set between endpoints."""

    def __init__(
        self,
        policy: FailurePolicy = FailurePolicy.ISOLATE,
        *,
        handled: Optional[HandledSet] = None,
        delete_from_source: bool = True,
    ) -> None:
        self.policy = policy
        self.handled = handled if handled is not None else HandledSet()
        self.delete_from_source = delete_from_source

    def should_delete(self, source: Endpoint, destination: Endpoint) -> bool:
        """Deletion only ever moves photos off a cloud source onto a device."""
        return (
            self.delete_from_source
            and source.kind is EndpointKind.CLOUD_SOURCE
            and destination.kind is EndpointKind.DEVICE_SINK
            and source.supports(Capability.DELETE)
        )

    async def sync_pair(
        self,
        source: Endpoint,
        destination: Endpoint,
        *,
        delete_from_source: Optional[bool] = None,
    ) -> SyncReport:
        """
        One directional pass from source to destination.

        Args:
            source: Endpoint photos are read from
            destination: Endpoint missing photos are uploaded to
            delete_from_source: Override for the cloud-to-device deletion rule

        Returns:
            Counts of what happened to each source photo

        Raises:
            Any upload/download error when the policy is FAIL_FAST
        """
        delete = self.should_delete(source, destination) if delete_from_source is None else delete_from_source
        report = SyncReport(source=source.name, destination=destination.name)
        started = time.perf_counter()

        logger.info({"event": "sync.pair.start", "source": source.name, "destination": destination.name})
        source_photos = await source.photos()
        destination_ids = {photo.id for photo in await destination.photos()}
        logger.info(
            {
                "event": "sync.pair.listed",
                "source": source.name,
                "source_count": len(source_photos),
                "destination_count": len(destination_ids),
            }
        )

        for photo in source_photos:
            if photo.id in destination_ids:
                logger.info({"event": "sync.photo.already_present", "photo": photo.filename})
                report.skipped += 1
                continue
            if photo.id in self.handled:
                logger.info({"event": "sync.photo.already_synced", "photo": photo.filename})
                report.skipped += 1
                continue
            if photo.deleted:
                logger.info({"event": "sync.photo.deleted_at_source", "photo": photo.filename})
                report.skipped += 1
                continue

            try:
                logger.info({"event": "sync.photo.upload", "photo": photo.filename, "destination": destination.name})
                new_id = await destination.upload(photo)
            except Exception as exc:
                if self.policy is FailurePolicy.FAIL_FAST:
                    logger.error({"event": "sync.photo.upload_failed", "photo": photo.filename, "error": str(exc)})
                    raise
                logger.exception({"event": "sync.photo.upload_failed", "photo": photo.filename})
                report.failed += 1
                report.errors[photo.id] = str(exc)
                continue

            report.uploaded += 1
            logger.info({"event": "sync.photo.uploaded", "photo": photo.filename, "new_id": new_id})

            if delete:
                await self._delete_from_source(photo, report)
            self.handled.add(photo.id)

        duration_ms = (time.perf_counter() - started) * 1000
        log_timing(
            "sync.pair",
            duration_ms,
            {
                "source": source.name,
                "destination": destination.name,
                "uploaded": report.uploaded,
                "failed": report.failed,
            },
        )
        logger.info(
            {
                "event": "sync.pair.complete",
                "source": source.name,
                "destination": destination.name,
                "uploaded": report.uploaded,
                "skipped": report.skipped,
                "failed": report.failed,
            }
        )
        return report

    async def sync_all(self, endpoints: Sequence[Endpoint]) -> list[SyncReport]:
        """Run sync_pair over every ordered pair, one pair at a time."""
        reports: list[SyncReport] = []
        for source, destination in permutations(endpoints, 2):
            if not destination.supports(Capability.UPLOAD):
                logger.debug(
                    {
                        "event": "sync.pair.skipped",
                        "source": source.name,
                        "destination": destination.name,
                        "reason": "destination is read-only",
                    }
                )
                continue
            try:
                reports.append(await self.sync_pair(source, destination))
            except Exception as exc:
                if self.policy is FailurePolicy.FAIL_FAST:
                    raise
                logger.exception(
                    {"event": "sync.pair.failed", "source": source.name, "destination": destination.name}
                )
                reports.append(SyncReport(source=source.name, destination=destination.name, error=str(exc)))
        return reports

    async def _delete_from_source(self, photo: Photo, report: SyncReport) -> None:
        # The caller marks the photo handled whatever happens here.
        try:
            deleted = await photo.delete()
        except Exception as exc:
            logger.warning({"event": "sync.photo.delete_failed", "photo": photo.filename, "error": str(exc)})
            report.delete_failed += 1
            return
        if deleted:
            report.deleted += 1
            logger.info({"event": "sync.photo.deleted", "photo": photo.filename})
        else:
            report.delete_failed += 1
            logger.warning({"event": "sync.photo.delete_refused", "photo": photo.filename})
