"""Process composition: settings -> endpoints -> sync service -> scheduler."""
from __future__ import annotations

import argparse
import asyncio
import importlib
import logging
from typing import Any, Callable, Dict, List, Optional

from .auth import EncryptedTokenCache, MSALClient, console_challenge_resolver
from .auth.challenge import ChallengeResolver
from .config import Settings, settings as default_settings
from .endpoints import Endpoint, FrameEndpoint, ICloudEndpoint, OneDriveEndpoint
from .endpoints.frame import ArtControlChannel
from .errors import ConfigurationError
from .sync import PhotoSyncService, SyncScheduler
from .telemetry import setup_logging

logger = logging.getLogger("frame_sync.app")

ControlFactory = Callable[[str, str], ArtControlChannel]


def resolve_factory(path: str) -> ControlFactory:
    """Import ``"package.module:attribute"`` and return the attribute."""
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ConfigurationError(f"Expected 'module:factory', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"Cannot import {module_name!r}: {exc}") from exc
    factory = getattr(module, attribute, None)
    if not callable(factory):
        raise ConfigurationError(f"{path!r} is not callable")
    return factory


class Application:
    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        control_factory: Optional[ControlFactory] = None,
        challenge_resolver: Optional[ChallengeResolver] = None,
    ) -> None:
        self.settings = config or default_settings
        self._control_factory = control_factory
        self._challenge_resolver = challenge_resolver or console_challenge_resolver()
        self.endpoints = self.build_endpoints()
        if not self.endpoints:
            raise ConfigurationError("No endpoints configured")
        self.service = PhotoSyncService(
            self.endpoints,
            policy=self.settings.SYNC_FAILURE_POLICY,
            delete_from_source=self.settings.SYNC_DELETE_FROM_SOURCE,
        )
        self.scheduler = SyncScheduler(self.service.sync_photos, self.settings.ICLOUD_SYNC_INTERVAL)

    def build_endpoints(self) -> List[Endpoint]:
        cfg = self.settings
        endpoints: List[Endpoint] = []

        if cfg.ICLOUD_USERNAME:
            endpoints.append(
                ICloudEndpoint(
                    cfg.ICLOUD_USERNAME,
                    cfg.ICLOUD_PASSWORD,
                    cfg.ICLOUD_SOURCE_ALBUM,
                    data_directory=cfg.ICLOUD_DATA_DIR,
                    challenge_resolver=self._challenge_resolver,
                    challenge_timeout=cfg.MFA_TIMEOUT_SECONDS,
                )
            )

        if cfg.ONEDRIVE_ENABLED:
            auth = MSALClient(
                cfg.MSAL_CLIENT_ID,
                cfg.MSAL_TENANT_ID,
                cfg.MSAL_SCOPES,
                EncryptedTokenCache(cfg.AUTH_CACHE_PATH, service_name=cfg.APP_NAME),
            )
            endpoints.append(
                OneDriveEndpoint(
                    cfg.ONEDRIVE_FOLDER_PATH,
                    auth,
                    base_url=cfg.GRAPH_BASE_URL,
                    max_retries=cfg.GRAPH_MAX_RETRIES,
                )
            )

        if cfg.SAMSUNG_FRAME_HOST:
            factory = self._control_factory
            if factory is None:
                if not cfg.SAMSUNG_FRAME_CONTROL_FACTORY:
                    raise ConfigurationError(
                        "SAMSUNG_FRAME_HOST is set but SAMSUNG_FRAME_CONTROL_FACTORY is not"
                    )
                factory = resolve_factory(cfg.SAMSUNG_FRAME_CONTROL_FACTORY)
            endpoints.append(
                FrameEndpoint(
                    factory(cfg.SAMSUNG_FRAME_HOST, cfg.SAMSUNG_FRAME_NAME),
                    category=cfg.SAMSUNG_FRAME_CATEGORY,
                    trust=cfg.SAMSUNG_FRAME_TLS_TRUST,
                    read_timeout=cfg.THUMBNAIL_READ_TIMEOUT,
                    connect_timeout=cfg.THUMBNAIL_CONNECT_TIMEOUT,
                )
            )

        logger.info({"event": "app.endpoints.built", "endpoints": [e.name for e in endpoints]})
        return endpoints

    async def start(self) -> None:
        logger.info(
            {
                "event": "boot",
                "service": self.settings.APP_NAME,
                "version": self.settings.VERSION,
                "env": self.settings.ENV,
            }
        )
        await self.service.initialize()
        await self.scheduler.start()

    async def stop(self) -> None:
        self.scheduler.stop()
        await self.scheduler.drain()
        await self.service.close()
        logger.info({"event": "shutdown"})

    async def run_forever(self) -> None:
        try:
            await self.start()
            await asyncio.Event().wait()
        finally:
            await self.stop()


def connect_onedrive(cfg: Settings, flow: str) -> Dict[str, Any]:
    """Run the interactive Microsoft sign-in once so later runs can refresh silently."""
    client = MSALClient(
        cfg.MSAL_CLIENT_ID,
        cfg.MSAL_TENANT_ID,
        cfg.MSAL_SCOPES,
        EncryptedTokenCache(cfg.AUTH_CACHE_PATH, service_name=cfg.APP_NAME),
    )
    result = client.ensure_connected(flow=flow)
    logger.info({"event": "onedrive.connected", **result})
    return result


def main(argv: Optional[List[str]] = None, config: Any = None) -> None:
    parser = argparse.ArgumentParser(prog="frame-sync")
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("run", help="sync on a schedule until interrupted (default)")
    connect = commands.add_parser("connect-onedrive", help="sign in to Microsoft and cache the token")
    connect.add_argument("--flow", choices=["device_code", "pkce"], default="device_code")
    args = parser.parse_args(argv)

    cfg = config or default_settings
    setup_logging(cfg.LOG_LEVEL, cfg.LOG_FORMAT)
    if args.command == "connect-onedrive":
        connect_onedrive(cfg, args.flow)
        return

    application = Application(cfg)
    try:
        asyncio.run(application.run_forever())
    except KeyboardInterrupt:
        logger.info({"event": "interrupted"})
