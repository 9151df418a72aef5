from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Optional

from pyicloud import PyiCloudService
from pyicloud.exceptions import PyiCloudAPIResponseException, PyiCloudFailedLoginException

from ..auth.challenge import DEFAULT_CHALLENGE_TIMEOUT, ChallengeResolver, resolve_challenge
from ..errors import (
    AuthenticationError,
    EndpointConnectionError,
    NotFoundError,
    NotInitializedError,
    TransferError,
)
from ..models import Album, Dimensions, Photo
from .base import Capability, Endpoint, EndpointKind


class ICloudEndpoint(Endpoint):
    """Cloud source reading one iCloud Photos album."""

    kind = EndpointKind.CLOUD_SOURCE
    capabilities = frozenset({Capability.DELETE, Capability.ALBUMS})

    def __init__(
        self,
        username: str,
        password: str,
        source_album: str,
        *,
        name: str = "icloud",
        data_directory: Path = Path("data"),
        challenge_resolver: Optional[ChallengeResolver] = None,
        challenge_timeout: float = DEFAULT_CHALLENGE_TIMEOUT,
        service_factory: Callable[..., Any] = PyiCloudService,
    ) -> None:
        super().__init__(name)
        self.username = username
        self._password = password
        self.source_album = source_album
        self.data_directory = Path(data_directory)
        self._challenge_resolver = challenge_resolver
        self._challenge_timeout = challenge_timeout
        self._service_factory = service_factory
        self._api: Any = None

    @property
    def api(self) -> Any:
        if self._api is None:
            raise NotInitializedError(f"{self.name} is not authenticated; call initialize()")
        return self._api

    async def _initialize(self) -> None:
        await self._authenticate()
        names = await asyncio.to_thread(lambda: list(self.api.photos.albums.keys()))
        self.logger.info({"event": "icloud.albums.found", "count": len(names), "albums": names})
        if self.source_album not in names:
            raise NotFoundError(f"iCloud album {self.source_album!r} not found")

    async def _authenticate(self) -> None:
        self.data_directory.mkdir(parents=True, exist_ok=True)
        self.logger.info({"event": "icloud.auth.start", "username": self.username})
        try:
            api = await asyncio.to_thread(
                self._service_factory,
                self.username,
                self._password,
                cookie_directory=str(self.data_directory),
            )
        except PyiCloudFailedLoginException as exc:
            raise AuthenticationError(f"iCloud rejected the credentials: {exc}") from exc
        except (PyiCloudAPIResponseException, OSError) as exc:
            raise EndpointConnectionError(f"Cannot reach iCloud: {exc}") from exc

        if getattr(api, "requires_2fa", False):
            await self._complete_two_factor(api)
        elif getattr(api, "requires_2sa", False):
            await self._complete_two_step(api)

        self._api = api
        self.logger.info({"event": "icloud.auth.ready", "username": self.username})

    async def _complete_two_factor(self, api: Any) -> None:
        self.logger.info({"event": "icloud.auth.2fa_required"})
        code = await self._request_code()
        if not await asyncio.to_thread(api.validate_2fa_code, code):
            raise AuthenticationError("Invalid iCloud verification code")
        if not getattr(api, "is_trusted_session", True):
            trusted = await asyncio.to_thread(api.trust_session)
            self.logger.info({"event": "icloud.auth.trust_session", "trusted": bool(trusted)})

    async def _complete_two_step(self, api: Any) -> None:
        self.logger.info({"event": "icloud.auth.2sa_required"})
        devices = await asyncio.to_thread(lambda: list(api.trusted_devices))
        if not devices:
            raise AuthenticationError("Two-step verification required but no trusted device is available")
        device = devices[0]
        if not await asyncio.to_thread(api.send_verification_code, device):
            raise AuthenticationError("Failed to send the verification code")
        code = await self._request_code()
        if not await asyncio.to_thread(api.validate_verification_code, device, code):
            raise AuthenticationError("Invalid iCloud verification code")

    async def _request_code(self) -> str:
        if self._challenge_resolver is None:
            raise AuthenticationError("iCloud requires a verification code but no resolver is configured")
        return await resolve_challenge(self._challenge_resolver, self._challenge_timeout)

    async def _fetch_photos(self) -> list[Photo]:
        return await self._album_photos(self.source_album)

    async def _fetch_albums(self) -> list[Album]:
        names = await asyncio.to_thread(lambda: list(self.api.photos.albums.keys()))
        return [Album(id=name, name=name, loader=self._album_loader(name)) for name in names]

    def _album_loader(self, album_name: str):
        async def load() -> list[Photo]:
            return await self._album_photos(album_name)

        return load

    async def _album_photos(self, album_name: str) -> list[Photo]:
        def collect() -> list[Any]:
            albums = self.api.photos.albums
            if album_name not in albums:
                raise NotFoundError(f"iCloud album {album_name!r} not found")
            return list(albums[album_name].photos)

        assets = await asyncio.to_thread(collect)
        return [self._to_photo(asset) for asset in assets]

    async def _close(self) -> None:
        self._api = None

    def _to_photo(self, asset: Any) -> Photo:
        async def download() -> bytes:
            def fetch() -> bytes:
                response = asset.download("original")
                if response is None:
                    raise TransferError(f"No original version for {asset.filename}")
                return response.content

            try:
                return await asyncio.to_thread(fetch)
            except (PyiCloudAPIResponseException, OSError) as exc:
                raise TransferError(f"Download of {asset.filename} failed: {exc}") from exc

        async def delete() -> bool:
            result = await asyncio.to_thread(asset.delete)
            return bool(getattr(result, "ok", result is not False))

        versions = getattr(asset, "versions", None) or {}
        thumb = versions.get("thumb") or {}

        return Photo(
            id=str(asset.id),
            filename=asset.filename,
            dimensions=Dimensions.from_value(getattr(asset, "dimensions", None)),
            size=int(getattr(asset, "size", 0) or 0),
            thumbnail_url=thumb.get("url"),
            origin=self.name,
            downloader=download,
            deleter=delete,
        )
