import asyncio
import base64
import json

import pytest

from frame_sync.endpoints import ArtControlChannel, Capability, EndpointKind, FrameEndpoint
from frame_sync.errors import EndpointConnectionError, NotInitializedError, TransferError
from frame_sync.models import Photo
from frame_sync.thumbnails.protocol import encode_frame

pytestmark = pytest.mark.asyncio


class _FakeArtChannel:
    """In-memory art device speaking the control-channel request shapes."""

    def __init__(self, art=None) -> None:
        self.art = list(art or [])
        self.requests = []
        self.uploads = []
        self.connected = False
        self.closed = 0
        self.connect_error = None
        self.thumbnail_response = None
        self.fallback_content = None

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def request(self, payload):
        self.requests.append(payload)
        kind = payload["request"]
        if kind == "get_content_list":
            return {"content_list": json.dumps(self.art)}
        if kind == "delete_image_list":
            doomed = {entry["content_id"] for entry in payload["content_id_list"]}
            self.art = [item for item in self.art if item["content_id"] not in doomed]
            return {"event": "image_deleted"}
        if kind in ("get_thumbnail", "get_thumbnail_list"):
            return self.thumbnail_response or {}
        if kind == "get_content":
            return {"content": self.fallback_content} if self.fallback_content else {}
        return {}

    async def upload(self, data: bytes, file_type: str) -> str:
        content_id = f"MY_F{len(self.uploads) + 1:04d}"
        self.uploads.append((data, file_type))
        self.art.append({"content_id": content_id, "category_id": "MY-C0002"})
        return content_id

    async def close(self) -> None:
        self.closed += 1


ART = [
    {"content_id": "MY_F0001", "category_id": "MY-C0002", "width": 3840, "height": 2160, "file_size": 512},
    {"content_id": "SAM-S0001", "category_id": "MY-C0004"},
]


async def _frame(channel, **kwargs) -> FrameEndpoint:
    endpoint = FrameEndpoint(channel, **kwargs)
    await endpoint.initialize()
    return endpoint


def test_fake_channel_satisfies_protocol():
    assert isinstance(_FakeArtChannel(), ArtControlChannel)
    assert FrameEndpoint.kind is EndpointKind.DEVICE_SINK
    assert FrameEndpoint.capabilities == {Capability.UPLOAD, Capability.DELETE, Capability.THUMBNAILS}


async def test_photos_lists_only_configured_category():
    channel = _FakeArtChannel(ART)
    frame = await _frame(channel)

    photos = await frame.photos()

    assert [photo.id for photo in photos] == ["MY_F0001"]
    assert photos[0].dimensions.width == 3840
    assert photos[0].size == 512
    assert photos[0].origin == "frame"
    assert channel.requests[0] == {"request": "get_content_list", "category": "MY-C0002"}


async def test_initialize_connection_failure_is_mapped():
    channel = _FakeArtChannel()
    channel.connect_error = ConnectionRefusedError("no route")

    with pytest.raises(EndpointConnectionError):
        await FrameEndpoint(channel).initialize()


async def test_photos_before_initialize_fails():
    with pytest.raises(NotInitializedError):
        await FrameEndpoint(_FakeArtChannel(ART)).photos()


async def test_upload_sends_bytes_with_file_type():
    async def download() -> bytes:
        return b"jpeg-bytes"

    channel = _FakeArtChannel()
    frame = await _frame(channel)
    photo = Photo(id="abc", filename="IMG_0001.HEIC", origin="icloud", downloader=download)

    content_id = await frame.upload(photo)

    assert content_id == "MY_F0001"
    assert channel.uploads == [(b"jpeg-bytes", "heic")]


async def test_upload_defaults_file_type_to_jpg():
    async def download() -> bytes:
        return b"data"

    channel = _FakeArtChannel()
    frame = await _frame(channel)

    await frame.upload(Photo(id="abc", filename="noext", origin="icloud", downloader=download))

    assert channel.uploads[0][1] == "jpg"


async def test_upload_refuses_photo_from_same_device():
    channel = _FakeArtChannel(ART)
    frame = await _frame(channel)
    [own] = await frame.photos()

    with pytest.raises(TransferError):
        await frame.upload(own)
    assert channel.uploads == []


async def test_deleting_a_listed_photo_removes_the_art():
    channel = _FakeArtChannel(ART)
    frame = await _frame(channel)
    [photo] = await frame.photos()

    assert await photo.delete() is True

    assert await frame.photos() == []
    assert channel.requests[-2] == {
        "request": "delete_image_list",
        "content_id_list": [{"content_id": "MY_F0001"}],
    }


async def test_delete_art_with_no_ids_is_a_no_op():
    channel = _FakeArtChannel(ART)
    frame = await _frame(channel)

    assert await frame.delete_art([]) is False
    assert channel.requests == []


async def test_get_thumbnail_uses_data_channel():
    channel = _FakeArtChannel(ART)
    channel.thumbnail_response = {"conn_info": json.dumps({"ip": "10.0.0.8", "port": 45000})}

    async def connector(info, context, timeout):
        reader = asyncio.StreamReader()
        reader.feed_data(encode_frame(b"thumb"))
        reader.feed_eof()
        return reader, _Writer()

    frame = await _frame(channel, connector=connector)

    assert await frame.get_thumbnail("MY_F0001") == b"thumb"
    assert not any(request["request"] == "get_content" for request in channel.requests)


async def test_get_thumbnail_list_reads_batch_over_data_channel():
    channel = _FakeArtChannel(ART)
    channel.thumbnail_response = {"conn_info": json.dumps({"ip": "10.0.0.8", "port": 45000})}

    async def connector(info, context, timeout):
        reader = asyncio.StreamReader()
        reader.feed_data(encode_frame(b"one", num=0, total=2) + encode_frame(b"two", num=1, total=2))
        reader.feed_eof()
        return reader, _Writer()

    with pytest.raises(NotInitializedError):
        await FrameEndpoint(channel, connector=connector).get_thumbnail_list(["MY_F0001"])

    frame = await _frame(channel, connector=connector)

    assert await frame.get_thumbnail_list(["MY_F0001", "MY_F0002"]) == [b"one", b"two"]
    batch = channel.requests[-1]
    assert batch["request"] == "get_thumbnail_list"
    assert batch["content_id_list"] == [{"content_id": "MY_F0001"}, {"content_id": "MY_F0002"}]


class _FailingArtChannel(_FakeArtChannel):
    """Raises a transport error for the listed request kinds."""

    def __init__(self, art=None, failing=()) -> None:
        super().__init__(art)
        self.failing = set(failing)

    async def request(self, payload):
        if payload["request"] in self.failing:
            self.requests.append(payload)
            raise OSError("control channel dropped")
        return await super().request(payload)


async def test_get_thumbnail_returns_empty_when_listing_fails():
    channel = _FailingArtChannel(ART, failing={"get_content_list"})
    frame = await _frame(channel)

    assert await frame.get_thumbnail("MY_F0001") == b""
    assert not any(request["request"] == "get_thumbnail" for request in channel.requests)


async def test_get_thumbnail_returns_empty_when_listing_is_malformed():
    class NoList(_FakeArtChannel):
        async def request(self, payload):
            self.requests.append(payload)
            return {}

    frame = await _frame(NoList(ART))

    assert await frame.get_thumbnail("MY_F0001") == b""


async def test_get_thumbnail_returns_empty_when_fallback_request_fails():
    channel = _FailingArtChannel(ART, failing={"get_content"})
    frame = await _frame(channel)

    assert await frame.get_thumbnail("MY_F0001") == b""
    assert channel.requests[-1]["request"] == "get_content"


async def test_get_thumbnail_falls_back_to_base64_content():
    channel = _FakeArtChannel(ART)
    channel.fallback_content = base64.b64encode(b"small").decode("ascii")
    frame = await _frame(channel)

    assert await frame.get_thumbnail("MY_F0001") == b"small"
    assert channel.requests[-1] == {"request": "get_content", "content_id": "MY_F0001", "version": "thumb"}


async def test_get_thumbnail_returns_empty_when_both_paths_fail():
    channel = _FakeArtChannel(ART)
    channel.fallback_content = "%%% not base64 %%%"
    frame = await _frame(channel)

    assert await frame.get_thumbnail("MY_F0001") == b""


async def test_get_thumbnail_for_unknown_id_returns_empty():
    channel = _FakeArtChannel(ART)
    frame = await _frame(channel)

    assert await frame.get_thumbnail("MY_F9999") == b""
    assert not any(request["request"] == "get_thumbnail" for request in channel.requests)


async def test_close_is_idempotent():
    channel = _FakeArtChannel()
    frame = await _frame(channel)

    await frame.close()
    await frame.close()

    assert channel.closed == 1


class _Writer:
    def close(self) -> None:
        return None

    async def wait_closed(self) -> None:
        return None
