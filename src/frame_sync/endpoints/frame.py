from __future__ import annotations

import base64
import binascii
import json
import ssl
from pathlib import PurePath
from typing import Any, Optional, Protocol, runtime_checkable

from ..errors import EndpointConnectionError, ProtocolError, TransferError
from ..models import Dimensions, Photo
from ..thumbnails import protocol
from ..thumbnails.client import Connector, ThumbnailClient, TrustPolicy, open_tls_connection
from .base import Capability, Endpoint, EndpointKind

DEFAULT_CATEGORY = "MY-C0002"
DEFAULT_FILE_TYPE = "jpg"


@runtime_checkable
class ArtControlChannel(Protocol):
    """Vendor control channel of the art device."""

    async def connect(self) -> None: ...

    async def request(self, payload: dict[str, Any]) -> dict[str, Any]: ...

    async def upload(self, data: bytes, file_type: str) -> str: ...

    async def close(self) -> None: ...


class FrameEndpoint(Endpoint):
    """Display device sink storing uploaded photos as art in one category."""

    kind = EndpointKind.DEVICE_SINK
    capabilities = frozenset({Capability.UPLOAD, Capability.DELETE, Capability.THUMBNAILS})

    def __init__(
        self,
        control: ArtControlChannel,
        *,
        name: str = "frame",
        category: str = DEFAULT_CATEGORY,
        trust: TrustPolicy = TrustPolicy.LOCAL_NETWORK,
        ssl_context: Optional[ssl.SSLContext] = None,
        read_timeout: float = protocol.READ_TIMEOUT_SECONDS,
        connect_timeout: float = 10.0,
        connector: Connector = open_tls_connection,
    ) -> None:
        super().__init__(name)
        self.control = control
        self.category = category
        self.thumbnails = ThumbnailClient(
            control,
            trust=trust,
            ssl_context=ssl_context,
            read_timeout=read_timeout,
            connect_timeout=connect_timeout,
            connector=connector,
        )

    async def _initialize(self) -> None:
        try:
            await self.control.connect()
        except OSError as exc:
            raise EndpointConnectionError(f"Cannot connect to {self.name}: {exc}") from exc

    async def _fetch_photos(self) -> list[Photo]:
        return [self._to_photo(item) for item in await self.list_art()]

    async def list_art(self) -> list[dict[str, Any]]:
        """Art items in the configured category, as reported by the device."""
        response = await self.control.request({"request": "get_content_list", "category": self.category})
        raw = response.get("content_list") if isinstance(response, dict) else None
        if raw is None:
            raise TransferError(f"{self.name} returned no content_list")
        try:
            items = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        except ValueError as exc:
            raise TransferError(f"{self.name} returned a malformed content_list: {exc}") from exc
        return [
            item
            for item in items
            if isinstance(item, dict) and item.get("category_id", self.category) == self.category
        ]

    async def _upload(self, photo: Photo) -> str:
        if photo.origin == self.name:
            raise TransferError(f"{photo.id} already originates from {self.name}")
        data = await photo.download()
        file_type = PurePath(photo.filename).suffix.lstrip(".").lower() or DEFAULT_FILE_TYPE
        try:
            content_id = await self.control.upload(data, file_type)
        except OSError as exc:
            raise TransferError(f"Upload of {photo.filename} to {self.name} failed: {exc}") from exc
        self.logger.info(
            {"event": "frame.upload.done", "photo_id": photo.id, "content_id": content_id, "bytes": len(data)}
        )
        return content_id

    async def delete_art(self, content_ids: list[str]) -> bool:
        if not content_ids:
            return False
        response = await self.control.request(
            {
                "request": "delete_image_list",
                "content_id_list": [{"content_id": content_id} for content_id in content_ids],
            }
        )
        deleted = isinstance(response, dict) and not response.get("error")
        self.logger.info({"event": "frame.delete", "content_ids": content_ids, "deleted": deleted})
        return deleted

    async def get_thumbnail(self, content_id: str) -> bytes:
        """Thumbnail for one art item; b"" when the item is unknown or both paths fail."""
        self._require_initialized("get_thumbnail")
        try:
            known = {item.get("content_id") for item in await self.list_art()}
        except Exception:
            self.logger.exception({"event": "frame.thumbnail.lookup_failed", "content_id": content_id})
            return b""
        if content_id not in known:
            self.logger.warning({"event": "frame.thumbnail.unknown", "content_id": content_id})
            return b""

        data = await self.thumbnails.fetch_thumbnail(content_id)
        if data:
            return data
        return await self._fallback_thumbnail(content_id)

    async def get_thumbnail_list(self, content_ids: list[str]) -> list[bytes]:
        self._require_initialized("get_thumbnail_list")
        return await self.thumbnails.fetch_thumbnail_list(content_ids)

    async def _fallback_thumbnail(self, content_id: str) -> bytes:
        try:
            response = await self.control.request(
                {"request": "get_content", "content_id": content_id, "version": "thumb"}
            )
            encoded = response.get("content") if isinstance(response, dict) else None
            if not encoded:
                raise ProtocolError("get_content returned no content", reason="fallback")
            data = base64.b64decode(encoded, validate=True)
        except (ProtocolError, binascii.Error, ValueError) as exc:
            self.logger.warning({"event": "frame.thumbnail.fallback_failed", "content_id": content_id, "error": str(exc)})
            return b""
        except Exception:
            self.logger.exception({"event": "frame.thumbnail.fallback_error", "content_id": content_id})
            return b""
        self.logger.debug({"event": "frame.thumbnail.fallback", "content_id": content_id, "bytes": len(data)})
        return data

    async def _close(self) -> None:
        await self.control.close()

    def _to_photo(self, item: dict[str, Any]) -> Photo:
        content_id = str(item["content_id"])

        async def delete() -> bool:
            return await self.delete_art([content_id])

        return Photo(
            id=content_id,
            filename=item.get("file_name") or content_id,
            dimensions=Dimensions.from_value(item),
            size=int(item.get("file_size") or 0),
            origin=self.name,
            deleter=delete,
        )
