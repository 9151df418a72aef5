"""Thumbnail retrieval over the device's framed data channel."""

from .client import ControlChannel, ThumbnailClient, TrustPolicy, open_tls_connection
from .protocol import READ_TIMEOUT_SECONDS, read_exactly, read_frame

__all__ = [
    "ControlChannel",
    "READ_TIMEOUT_SECONDS",
    "ThumbnailClient",
    "TrustPolicy",
    "open_tls_connection",
    "read_exactly",
    "read_frame",
]
