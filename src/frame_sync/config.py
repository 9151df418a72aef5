from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .sync.engine import FailurePolicy
from .thumbnails.client import TrustPolicy


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "frame-sync"
    VERSION: str = "0.1.0"
    ENV: str = "dev"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    # iCloud source album. Leave the username empty to disable the endpoint.
    ICLOUD_USERNAME: str = ""
    ICLOUD_PASSWORD: str = ""
    ICLOUD_SOURCE_ALBUM: str = "Frame Sync"
    ICLOUD_DATA_DIR: Path = Path("data")
    MFA_TIMEOUT_SECONDS: float = Field(default=300.0, gt=0)

    # OneDrive source folder, read through Microsoft Graph
    ONEDRIVE_ENABLED: bool = False
    ONEDRIVE_FOLDER_PATH: str = "Pictures/Frame Sync"
    GRAPH_BASE_URL: str = "https://graph.microsoft.com/v1.0"
    GRAPH_MAX_RETRIES: int = 3
    AUTH_CACHE_PATH: Path = Path(".frame_sync") / "msal_cache.enc"
    MSAL_CLIENT_ID: str = ""
    MSAL_TENANT_ID: str = "common"
    MSAL_SCOPES: list[str] = ["Files.ReadWrite"]

    # Display device. The control channel is vendor specific and is plugged in
    # as "package.module:factory", called with (host, name).
    SAMSUNG_FRAME_HOST: str = ""
    SAMSUNG_FRAME_NAME: str = "SamsungTv"
    SAMSUNG_FRAME_CATEGORY: str = "MY-C0002"
    SAMSUNG_FRAME_CONTROL_FACTORY: str = ""
    # Only valid while the device is reachable on a trusted local network.
    SAMSUNG_FRAME_TLS_TRUST: TrustPolicy = TrustPolicy.LOCAL_NETWORK
    THUMBNAIL_READ_TIMEOUT: float = Field(default=5.0, gt=0)
    THUMBNAIL_CONNECT_TIMEOUT: float = Field(default=10.0, gt=0)

    # Sync
    ICLOUD_SYNC_INTERVAL: int = Field(default=60, gt=0)
    SYNC_FAILURE_POLICY: FailurePolicy = FailurePolicy.ISOLATE
    SYNC_DELETE_FROM_SOURCE: bool = True


settings = Settings()
