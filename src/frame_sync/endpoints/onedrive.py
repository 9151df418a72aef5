from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Optional

from ..auth.msal_client import MSALClient
from ..errors import NotInitializedError
from ..models import Dimensions, Photo
from .base import Capability, Endpoint, EndpointKind
from .graph_client import GraphClient


class OneDriveEndpoint(Endpoint):
    """Cloud source reading image files from one OneDrive folder."""

    kind = EndpointKind.CLOUD_SOURCE
    capabilities = frozenset({Capability.DELETE})

    def __init__(
        self,
        folder_path: str,
        auth: MSALClient,
        *,
        name: str = "onedrive",
        client_factory: Optional[Callable[..., GraphClient]] = None,
        **client_options: Any,
    ) -> None:
        super().__init__(name)
        self.folder_path = folder_path
        self._auth = auth
        self._client_factory = client_factory or GraphClient
        self._client_options = client_options
        self._client: Optional[GraphClient] = None

    @property
    def graph(self) -> GraphClient:
        if self._client is None:
            raise NotInitializedError(f"{self.name} has no Graph client; call initialize()")
        return self._client

    async def _access_token(self) -> str:
        return await asyncio.to_thread(self._auth.acquire_token)

    async def _initialize(self) -> None:
        # Fails early on bad credentials or a missing folder.
        await self._access_token()
        client = self._client_factory(self._access_token, **self._client_options)
        try:
            items = await client.list_folder_items(self.folder_path)
        except Exception:
            await client.aclose()
            raise
        self._client = client
        self.logger.info({"event": "onedrive.folder.ready", "folder": self.folder_path, "items": len(items)})

    async def _fetch_photos(self) -> list[Photo]:
        items = await self.graph.list_folder_items(self.folder_path)
        return [self._to_photo(item) for item in items if self._is_photo(item)]

    async def _close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _is_photo(item: Dict[str, Any]) -> bool:
        file_info = item.get("file")
        if not file_info:
            return False
        return str(file_info.get("mimeType", "")).startswith("image/")

    def _to_photo(self, item: Dict[str, Any]) -> Photo:
        client = self.graph
        item_id = item["id"]

        async def download() -> bytes:
            return await client.get_item_content(item_id)

        async def delete() -> bool:
            return await client.delete_item(item_id)

        image = item.get("image") or item.get("photo") or {}
        thumbnails = item.get("thumbnails") or []
        thumbnail_url = None
        if thumbnails:
            thumbnail_url = (thumbnails[0].get("medium") or {}).get("url")

        return Photo(
            id=item_id,
            filename=item.get("name", item_id),
            dimensions=Dimensions.from_value(image),
            size=int(item.get("size") or 0),
            thumbnail_url=thumbnail_url,
            origin=self.name,
            deleted="deleted" in item,
            downloader=download,
            deleter=delete,
        )
