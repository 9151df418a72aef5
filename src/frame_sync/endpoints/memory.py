from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from typing import Optional
from uuid import uuid4

from ..errors import TransferError
from ..models import Album, Photo
from .base import Capability, Endpoint, EndpointKind


class InMemoryEndpoint(Endpoint):
    """Endpoint backed by a dict, used for tests and dry runs."""

    def __init__(
        self,
        name: str = "memory",
        photos: Iterable[Photo] = (),
        *,
        kind: EndpointKind = EndpointKind.TEST_DOUBLE,
        capabilities: Iterable[Capability] = (Capability.UPLOAD, Capability.DELETE),
        albums: Optional[dict[str, Iterable[Photo]]] = None,
        keep_source_ids: bool = True,
    ) -> None:
        super().__init__(name)
        self.kind = kind
        self.capabilities = frozenset(capabilities)
        self._store: dict[str, Photo] = {}
        self._albums = {key: list(value) for key, value in (albums or {}).items()}
        self._keep_source_ids = keep_source_ids
        self.upload_calls: list[str] = []
        self.delete_calls: list[str] = []
        self.fail_uploads: set[str] = set()
        self.delete_results: dict[str, bool] = {}
        self.fail_deletes: set[str] = set()
        self.initialize_calls = 0
        self.close_calls = 0
        for photo in photos:
            self.add(photo)

    def add(self, photo: Photo) -> Photo:
        bound = self._bind(photo)
        self._store[bound.id] = bound
        return bound

    def ids(self) -> list[str]:
        return list(self._store)

    def _bind(self, photo: Photo) -> Photo:
        payload = photo.downloader

        async def download() -> bytes:
            if payload is None:
                return photo.filename.encode("utf-8")
            return await payload()

        async def delete() -> bool:
            return await self._delete(photo.id)

        return replace(photo, origin=self.name, downloader=download, deleter=delete)

    async def _delete(self, photo_id: str) -> bool:
        self.delete_calls.append(photo_id)
        if photo_id in self.fail_deletes:
            raise TransferError(f"delete of {photo_id} rejected")
        result = self.delete_results.get(photo_id, True)
        if result:
            self._store.pop(photo_id, None)
        return result

    async def _initialize(self) -> None:
        self.initialize_calls += 1

    async def _fetch_photos(self) -> list[Photo]:
        return list(self._store.values())

    async def _fetch_albums(self) -> list[Album]:
        albums = []
        for name, photos in self._albums.items():
            snapshot = [self._bind(photo) for photo in photos]

            async def load(snapshot: list[Photo] = snapshot) -> list[Photo]:
                return snapshot

            albums.append(Album(id=name, name=name, loader=load))
        return albums

    async def _upload(self, photo: Photo) -> str:
        self.upload_calls.append(photo.id)
        if photo.id in self.fail_uploads:
            raise TransferError(f"upload of {photo.id} rejected")
        data = await photo.download()
        new_id = photo.id if self._keep_source_ids else uuid4().hex
        self._store[new_id] = self._bind(
            replace(photo, id=new_id, size=len(data), downloader=None, deleter=None)
        )
        return new_id

    async def _close(self) -> None:
        self.close_calls += 1
