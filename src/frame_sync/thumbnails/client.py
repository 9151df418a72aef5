from __future__ import annotations

import asyncio
import contextlib
import logging
import ssl
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar, runtime_checkable

from ..errors import ProtocolError
from ..models import ConnectionInfo
from . import protocol

logger = logging.getLogger("frame_sync.thumbnails.client")

T = TypeVar("T")

StreamPair = tuple[asyncio.StreamReader, asyncio.StreamWriter]
Connector = Callable[[ConnectionInfo, Optional[ssl.SSLContext], float], Awaitable[StreamPair]]


@runtime_checkable
class ControlChannel(Protocol):
    async def request(self, payload: dict[str, Any]) -> dict[str, Any]: ...


class TrustPolicy(str, Enum):
    """How the data channel treats the device's certificate.

    LOCAL_NETWORK accepts the device's self-signed certificate without
    verification and is only sound when the device is reachable solely on a
    trusted local network. STRICT performs normal verification.
    """

    LOCAL_NETWORK = "local_network"
    STRICT = "strict"

    def ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if self is TrustPolicy.LOCAL_NETWORK:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context


async def open_tls_connection(
    info: ConnectionInfo, context: Optional[ssl.SSLContext], timeout: float
) -> StreamPair:
    try:
        return await asyncio.wait_for(
            asyncio.open_connection(info.ip, info.port, ssl=context), timeout
        )
    except asyncio.TimeoutError as exc:
        raise ProtocolError(f"Timeout connecting to {info.ip}:{info.port}", reason="connect") from exc
    except OSError as exc:
        raise ProtocolError(f"Cannot connect to {info.ip}:{info.port}: {exc}", reason="connect") from exc


class ThumbnailClient:
    """Fetch preview images from the device over a negotiated TLS socket.

    Every call asks the control channel for connection details, opens a
    private data-channel socket, reads the framed payload(s) and closes the
    socket. Failures are logged and turned into empty results so a gallery
    listing degrades per item.
    """

    def __init__(
        self,
        control: ControlChannel,
        *,
        trust: TrustPolicy = TrustPolicy.LOCAL_NETWORK,
        ssl_context: Optional[ssl.SSLContext] = None,
        read_timeout: float = protocol.READ_TIMEOUT_SECONDS,
        connect_timeout: float = 10.0,
        connector: Connector = open_tls_connection,
    ) -> None:
        self._control = control
        self._trust = trust
        self._ssl_context = ssl_context or trust.ssl_context()
        self._read_timeout = read_timeout
        self._connect_timeout = connect_timeout
        self._connector = connector
        if ssl_context is None and trust is TrustPolicy.LOCAL_NETWORK:
            logger.warning(
                {
                    "event": "thumbnail.tls.unverified",
                    "message": "device certificate is not verified; local-network trust assumed",
                }
            )

    @property
    def trust(self) -> TrustPolicy:
        return self._trust

    async def fetch_thumbnail(self, content_id: str) -> bytes:
        """Return the thumbnail bytes, or b"" when retrieval fails."""
        try:
            info = await self._negotiate(protocol.thumbnail_request(content_id))
            data = await self._read(info, protocol.read_single)
        except ProtocolError as exc:
            logger.warning(
                {
                    "event": "thumbnail.fetch.failed",
                    "content_id": content_id,
                    "reason": exc.reason,
                    "error": exc.message,
                }
            )
            return b""
        except Exception:
            logger.exception({"event": "thumbnail.fetch.error", "content_id": content_id})
            return b""

        logger.debug({"event": "thumbnail.fetch.done", "content_id": content_id, "bytes": len(data)})
        return data

    async def fetch_thumbnail_list(self, content_ids: list[str]) -> list[bytes]:
        """Return payloads in received order, or [] when retrieval fails."""
        if not content_ids:
            return []
        try:
            info = await self._negotiate(protocol.thumbnail_list_request(content_ids))
            thumbnails = await self._read(info, protocol.read_list)
        except ProtocolError as exc:
            logger.warning(
                {
                    "event": "thumbnail.list.failed",
                    "count": len(content_ids),
                    "reason": exc.reason,
                    "error": exc.message,
                }
            )
            return []
        except Exception:
            logger.exception({"event": "thumbnail.list.error", "count": len(content_ids)})
            return []

        logger.debug({"event": "thumbnail.list.done", "requested": len(content_ids), "received": len(thumbnails)})
        return thumbnails

    async def _negotiate(self, request: dict[str, Any]) -> ConnectionInfo:
        response = await self._control.request(request)
        info = ConnectionInfo.from_response(response)
        logger.debug({"event": "thumbnail.conn_info", "ip": info.ip, "port": info.port})
        return info

    async def _read(
        self,
        info: ConnectionInfo,
        read: Callable[[asyncio.StreamReader, float], Awaitable[T]],
    ) -> T:
        reader, writer = await self._connector(info, self._ssl_context, self._connect_timeout)
        try:
            return await read(reader, self._read_timeout)
        finally:
            writer.close()
            with contextlib.suppress(OSError, ssl.SSLError):
                await writer.wait_closed()
