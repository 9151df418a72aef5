"""Length-prefixed framing used on the thumbnail data channel.

A frame is ``uint32BE headerLen | headerLen bytes of UTF-8 JSON | fileLength
bytes of payload``. The JSON header carries ``fileLength`` and, for list
transfers, ``num``/``total``.
"""
from __future__ import annotations

import asyncio
import json
import logging
import secrets
import struct
from typing import Any, Iterable

from ..errors import ProtocolError
from ..models import ThumbnailHeader

logger = logging.getLogger("frame_sync.thumbnails.protocol")

READ_TIMEOUT_SECONDS = 5.0
LENGTH_PREFIX = struct.Struct(">I")
MAX_HEADER_BYTES = 64 * 1024
CONNECTION_ID_LIMIT = 4 * 1024 * 1024 * 1024


async def read_exactly(
    reader: asyncio.StreamReader, length: int, timeout: float = READ_TIMEOUT_SECONDS
) -> bytes:
    """Collect exactly ``length`` bytes from ``reader`` within ``timeout`` seconds."""
    if length <= 0:
        return b""

    buffer = bytearray()

    async def accumulate() -> None:
        while len(buffer) < length:
            chunk = await reader.read(length - len(buffer))
            if not chunk:
                raise ProtocolError(
                    f"Socket closed before reading {length} bytes (got {len(buffer)})",
                    reason="short_read",
                )
            buffer.extend(chunk)

    try:
        await asyncio.wait_for(accumulate(), timeout)
    except asyncio.TimeoutError as exc:
        raise ProtocolError(
            f"Timeout reading {length} bytes (got {len(buffer)})", reason="timeout"
        ) from exc
    return bytes(buffer)


async def read_frame(
    reader: asyncio.StreamReader, timeout: float = READ_TIMEOUT_SECONDS
) -> tuple[ThumbnailHeader, bytes]:
    """Read one header/payload pair."""
    (header_len,) = LENGTH_PREFIX.unpack(await read_exactly(reader, LENGTH_PREFIX.size, timeout))
    if header_len == 0 or header_len > MAX_HEADER_BYTES:
        raise ProtocolError(f"Invalid header length: {header_len}", reason="length")

    header = ThumbnailHeader.from_bytes(await read_exactly(reader, header_len, timeout))
    logger.debug({"event": "thumbnail.frame.header", "header": header.model_dump(by_alias=True)})

    payload = await read_exactly(reader, header.file_length, timeout)
    return header, payload


async def read_single(
    reader: asyncio.StreamReader, timeout: float = READ_TIMEOUT_SECONDS
) -> bytes:
    header, payload = await read_frame(reader, timeout)
    if header.file_length <= 0:
        raise ProtocolError(f"Invalid thumbnail data length: {header.file_length}", reason="length")
    return payload


async def read_list(
    reader: asyncio.StreamReader, timeout: float = READ_TIMEOUT_SECONDS
) -> list[bytes]:
    """Read frames until the one numbered ``total - 1``."""
    payloads: list[bytes] = []
    while True:
        header, payload = await read_frame(reader, timeout)
        payloads.append(payload)
        if header.is_last:
            return payloads


def encode_frame(payload: bytes, **header: Any) -> bytes:
    """Build a frame; the device side of the protocol, used by tests and tools."""
    body = {"fileLength": len(payload), **header}
    encoded = json.dumps(body).encode("utf-8")
    return LENGTH_PREFIX.pack(len(encoded)) + encoded + payload


def new_conn_info() -> dict[str, Any]:
    return {
        "d2d_mode": "socket",
        "connection_id": secrets.randbelow(CONNECTION_ID_LIMIT),
        "id": secrets.token_hex(16),
    }


def thumbnail_request(content_id: str) -> dict[str, Any]:
    return {
        "request": "get_thumbnail",
        "content_id": content_id,
        "conn_info": new_conn_info(),
    }


def thumbnail_list_request(content_ids: Iterable[str]) -> dict[str, Any]:
    return {
        "request": "get_thumbnail_list",
        "content_id_list": [{"content_id": content_id} for content_id in content_ids],
        "conn_info": new_conn_info(),
    }
