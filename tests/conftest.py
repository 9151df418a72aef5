import asyncio
import inspect
from typing import Callable

import pytest

from frame_sync.endpoints import Capability, EndpointKind, InMemoryEndpoint
from frame_sync.models import Photo


def pytest_pyfunc_call(pyfuncitem):
    if asyncio.iscoroutinefunction(pyfuncitem.obj):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            sig = inspect.signature(pyfuncitem.obj)
            accepted = {name: value for name, value in pyfuncitem.funcargs.items() if name in sig.parameters}
            loop.run_until_complete(pyfuncitem.obj(**accepted))
        finally:
            loop.close()
            asyncio.set_event_loop(None)
        return True
    return None


@pytest.fixture
def make_photo() -> Callable[..., Photo]:
    def factory(photo_id: str, **overrides) -> Photo:
        values = {"id": photo_id, "filename": f"{photo_id}.jpg", "size": 100}
        values.update(overrides)
        return Photo(**values)

    return factory


@pytest.fixture
def cloud_factory(make_photo) -> Callable[..., InMemoryEndpoint]:
    """Cloud-source double that supports deletion but not uploads."""

    def factory(name: str = "cloud", ids=()) -> InMemoryEndpoint:
        return InMemoryEndpoint(
            name,
            [make_photo(photo_id) for photo_id in ids],
            kind=EndpointKind.CLOUD_SOURCE,
            capabilities=(Capability.DELETE,),
        )

    return factory


@pytest.fixture
def device_factory(make_photo) -> Callable[..., InMemoryEndpoint]:
    def factory(name: str = "device", ids=()) -> InMemoryEndpoint:
        return InMemoryEndpoint(
            name,
            [make_photo(photo_id) for photo_id in ids],
            kind=EndpointKind.DEVICE_SINK,
            capabilities=(Capability.UPLOAD, Capability.DELETE),
        )

    return factory
