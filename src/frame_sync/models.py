from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ProtocolError, UnsupportedOperationError

Downloader = Callable[[], Awaitable[bytes]]
Deleter = Callable[[], Awaitable[bool]]
PhotoLoader = Callable[[], Awaitable[list["Photo"]]]


@dataclass(frozen=True, slots=True)
class Dimensions:
    width: int = 0
    height: int = 0

    @classmethod
    def from_value(cls, value: Any) -> "Dimensions":
        """Accept (w, h) pairs, {"width", "height"} mappings or nothing."""
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return cls(width=int(value[0] or 0), height=int(value[1] or 0))
        if isinstance(value, dict) and "width" in value and "height" in value:
            return cls(width=int(value["width"] or 0), height=int(value["height"] or 0))
        return cls()


@dataclass(frozen=True, slots=True)
class Photo:
    """Snapshot of a transferable image, owned by the endpoint that listed it."""

    id: str
    filename: str
    dimensions: Dimensions = field(default_factory=Dimensions)
    size: int = 0
    thumbnail_url: Optional[str] = None
    origin: str = ""
    deleted: bool = False
    downloader: Optional[Downloader] = field(default=None, repr=False, compare=False)
    deleter: Optional[Deleter] = field(default=None, repr=False, compare=False)

    async def download(self) -> bytes:
        if self.downloader is None:
            raise UnsupportedOperationError(f"{self.origin or 'endpoint'} photos cannot be downloaded")
        return await self.downloader()

    async def delete(self) -> bool:
        if self.deleter is None:
            raise UnsupportedOperationError(f"{self.origin or 'endpoint'} photos cannot be deleted")
        return await self.deleter()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "dimensions": {"width": self.dimensions.width, "height": self.dimensions.height},
            "size": self.size,
            "thumbnailUrl": self.thumbnail_url,
        }


class Album:
    """Named container whose photos are fetched once, on first access."""

    def __init__(self, id: str, name: str, loader: PhotoLoader) -> None:
        self.id = id
        self.name = name
        self._loader = loader
        self._photos: Optional[list[Photo]] = None

    async def photos(self) -> list[Photo]:
        if self._photos is None:
            self._photos = list(await self._loader())
        return list(self._photos)

    def __repr__(self) -> str:
        return f"Album(id={self.id!r}, name={self.name!r})"


class ThumbnailHeader(BaseModel):
    """JSON block that precedes every payload on the thumbnail data channel."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    file_length: int = Field(alias="fileLength", ge=0)
    num: Optional[int] = None
    total: Optional[int] = None

    @classmethod
    def from_bytes(cls, raw: bytes) -> "ThumbnailHeader":
        try:
            return cls.model_validate(json.loads(raw.decode("utf-8")))
        except (UnicodeDecodeError, ValueError, ValidationError) as exc:
            raise ProtocolError(f"Malformed frame header: {exc}", reason="header") from exc

    @property
    def is_last(self) -> bool:
        if self.num is None or self.total is None:
            return True
        return self.num >= self.total - 1


class ConnectionInfo(BaseModel):
    ip: str
    port: int = Field(gt=0, lt=65536)

    @classmethod
    def from_response(cls, response: Any) -> "ConnectionInfo":
        """Decode the JSON string carried in a control response's conn_info."""
        if not isinstance(response, dict) or "conn_info" not in response:
            raise ProtocolError("Invalid response: missing conn_info", reason="conn_info")
        raw = response["conn_info"]
        if not isinstance(raw, (str, bytes)):
            raise ProtocolError("conn_info must be a JSON-encoded string", reason="conn_info")
        try:
            return cls.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as exc:
            raise ProtocolError(f"Malformed conn_info: {exc}", reason="conn_info") from exc
