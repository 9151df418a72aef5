"""Microsoft Graph API client for OneDrive photo operations."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx

from ..errors import (
    EndpointConnectionError,
    NotFoundError,
    ThrottledError,
    TransferError,
    handle_graph_response,
    with_retry,
)

logger = logging.getLogger("frame_sync.endpoints.graph")

TokenProvider = Callable[[], Awaitable[str]]

DEFAULT_BASE_URL = "https://graph.microsoft.com/v1.0"
PAGE_SIZE = 200


class GraphClient:
    """Microsoft Graph client scoped to the signed-in user's drive."""

    def __init__(
        self,
        token_provider: TokenProvider,
        *,
        base_url: str = DEFAULT_BASE_URL,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        """Initialize with a coroutine that returns a fresh access token."""
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self._token_provider = token_provider
        self.client = httpx.AsyncClient(transport=transport, timeout=timeout, follow_redirects=True)

    async def list_folder_items(self, folder_path: str) -> List[Dict[str, Any]]:
        """
        List every child item of a drive folder, following pagination.

        Args:
            folder_path: Path relative to the drive root, e.g. "Pictures/Frame"

        Returns:
            Raw driveItem dicts in the order Graph returned them

        Raises:
            NotFoundError: When the folder does not exist
        """
        path = quote(folder_path.strip("/"))
        url: Optional[str] = f"{self.base_url}/me/drive/root:/{path}:/children"
        params: Optional[Dict[str, Any]] = {
            "$select": "id,name,file,image,photo,size,deleted",
            "$expand": "thumbnails",
            "$top": PAGE_SIZE,
        }

        items: List[Dict[str, Any]] = []
        while url:
            response = await self._request("GET", url, params=params)
            data = response.json()
            items.extend(data.get("value", []))
            # nextLink already carries the query string
            url = data.get("@odata.nextLink")
            params = None

        logger.debug({"event": "graph.folder.listed", "folder": folder_path, "count": len(items)})
        return items

    async def get_item_content(self, item_id: str) -> bytes:
        """
        Download item binary content.

        Args:
            item_id: OneDrive item ID

        Returns:
            File bytes
        """
        url = f"{self.base_url}/me/drive/items/{item_id}/content"
        response = await self._request("GET", url)
        return response.content

    async def delete_item(self, item_id: str) -> bool:
        """Move an item to the recycle bin. Returns False if it was already gone."""
        url = f"{self.base_url}/me/drive/items/{item_id}"
        try:
            await self._request("DELETE", url)
        except NotFoundError:
            logger.info({"event": "graph.item.already_deleted", "item_id": item_id})
            return False
        return True

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        async def attempt() -> httpx.Response:
            token = await self._token_provider()
            headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
            try:
                response = await self.client.request(method, url, headers=headers, **kwargs)
            except httpx.TransportError as exc:
                raise EndpointConnectionError(f"Graph unreachable: {exc}") from exc
            except httpx.HTTPError as exc:
                raise TransferError(f"Graph request failed: {exc}") from exc
            handle_graph_response(response)
            return response

        return await with_retry(attempt, max_attempts=self.max_retries, retry_on=(ThrottledError,))
