"""Capability interface shared by every photo source and sink."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum

from ..errors import NotInitializedError, UnsupportedOperationError
from ..models import Album, Photo


class EndpointKind(str, Enum):
    CLOUD_SOURCE = "cloud_source"
    DEVICE_SINK = "device_sink"
    TEST_DOUBLE = "test_double"


class Capability(str, Enum):
    UPLOAD = "upload"
    DELETE = "delete"
    ALBUMS = "albums"
    THUMBNAILS = "thumbnails"


class Endpoint(ABC):
    """
    A source or sink of photos in the sync graph.

    Subclasses implement the underscored hooks; the public methods enforce
    that initialize() ran first and that close() is idempotent.
    """

    kind: EndpointKind = EndpointKind.TEST_DOUBLE
    capabilities: frozenset[Capability] = frozenset()

    def __init__(self, name: str) -> None:
        self.name = name
        self.logger = logging.getLogger(f"frame_sync.endpoints.{name}")
        self._initialized = False
        self._closed = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    async def initialize(self) -> None:
        if self._initialized:
            self.logger.debug({"event": "endpoint.initialize.skipped", "endpoint": self.name})
            return
        self.logger.info({"event": "endpoint.initialize.start", "endpoint": self.name})
        await self._initialize()
        self._initialized = True
        self._closed = False
        self.logger.info({"event": "endpoint.initialize.done", "endpoint": self.name})

    async def photos(self) -> list[Photo]:
        """Current snapshot of the endpoint's default collection."""
        self._require_initialized("photos")
        return list(await self._fetch_photos())

    async def albums(self) -> list[Album]:
        self._require_initialized("albums")
        if not self.supports(Capability.ALBUMS):
            raise UnsupportedOperationError(f"{self.name} has no albums")
        return list(await self._fetch_albums())

    async def upload(self, photo: Photo) -> str:
        """Store photo on this endpoint and return the id it was given."""
        self._require_initialized("upload")
        if not self.supports(Capability.UPLOAD):
            raise UnsupportedOperationError(f"{self.name} does not accept uploads")
        return await self._upload(photo)

    async def close(self) -> None:
        self._require_initialized("close")
        if self._closed:
            return
        self._closed = True
        await self._close()
        self.logger.info({"event": "endpoint.closed", "endpoint": self.name})

    def _require_initialized(self, operation: str) -> None:
        if not self._initialized:
            raise NotInitializedError(f"{self.name}.{operation}() called before initialize()")

    # Hooks -----------------------------------------------------------------

    @abstractmethod
    async def _initialize(self) -> None: ...

    @abstractmethod
    async def _fetch_photos(self) -> list[Photo]: ...

    async def _fetch_albums(self) -> list[Album]:
        return []

    async def _upload(self, photo: Photo) -> str:
        raise UnsupportedOperationError(f"{self.name} does not accept uploads")

    async def _close(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
