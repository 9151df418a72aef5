"""Photo sources and sinks."""

from .base import Capability, Endpoint, EndpointKind
from .frame import ArtControlChannel, FrameEndpoint
from .icloud import ICloudEndpoint
from .memory import InMemoryEndpoint
from .onedrive import OneDriveEndpoint

__all__ = [
    "ArtControlChannel",
    "Capability",
    "Endpoint",
    "EndpointKind",
    "FrameEndpoint",
    "ICloudEndpoint",
    "InMemoryEndpoint",
    "OneDriveEndpoint",
]
