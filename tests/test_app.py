import pytest

from frame_sync.app import Application, resolve_factory
from frame_sync.config import Settings
from frame_sync.endpoints import FrameEndpoint, ICloudEndpoint, InMemoryEndpoint, OneDriveEndpoint
from frame_sync.errors import ConfigurationError
from frame_sync.sync import FailurePolicy
from frame_sync.thumbnails import TrustPolicy


class _Channel:
    def __init__(self, host: str, name: str) -> None:
        self.host = host
        self.name = name
        self.connected = False
        self.closed = False

    async def connect(self) -> None:
        self.connected = True

    async def request(self, payload):
        return {"content_list": "[]"}

    async def upload(self, data: bytes, file_type: str) -> str:
        return "MY_F0001"

    async def close(self) -> None:
        self.closed = True


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("ICLOUD_SYNC_INTERVAL", "SYNC_FAILURE_POLICY", "SAMSUNG_FRAME_TLS_TRUST"):
        monkeypatch.delenv(name, raising=False)
    cfg = _settings()

    assert cfg.ICLOUD_SYNC_INTERVAL == 60
    assert cfg.SYNC_FAILURE_POLICY is FailurePolicy.ISOLATE
    assert cfg.SAMSUNG_FRAME_TLS_TRUST is TrustPolicy.LOCAL_NETWORK
    assert cfg.SAMSUNG_FRAME_CATEGORY == "MY-C0002"
    assert cfg.THUMBNAIL_READ_TIMEOUT == 5.0
    assert cfg.MFA_TIMEOUT_SECONDS == 300.0


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ICLOUD_SYNC_INTERVAL", "120")
    monkeypatch.setenv("SYNC_FAILURE_POLICY", "fail_fast")
    monkeypatch.setenv("SAMSUNG_FRAME_TLS_TRUST", "strict")

    cfg = _settings()

    assert cfg.ICLOUD_SYNC_INTERVAL == 120
    assert cfg.SYNC_FAILURE_POLICY is FailurePolicy.FAIL_FAST
    assert cfg.SAMSUNG_FRAME_TLS_TRUST is TrustPolicy.STRICT


def test_resolve_factory_imports_dotted_path() -> None:
    assert resolve_factory("frame_sync.endpoints.memory:InMemoryEndpoint") is InMemoryEndpoint


@pytest.mark.parametrize(
    "path",
    ["no_colon", "frame_sync.nope:factory", "frame_sync.endpoints.memory:missing", ":factory"],
)
def test_resolve_factory_rejects_bad_paths(path: str) -> None:
    with pytest.raises(ConfigurationError):
        resolve_factory(path)


def test_application_requires_an_endpoint() -> None:
    with pytest.raises(ConfigurationError):
        Application(_settings())


def test_frame_host_without_factory_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        Application(_settings(SAMSUNG_FRAME_HOST="10.0.0.5"))


def test_application_builds_configured_endpoints(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    from frame_sync.auth import msal_client as msal_mod

    monkeypatch.setattr(msal_mod.msal, "PublicClientApplication", lambda *args, **kwargs: object())
    cfg = _settings(
        ICLOUD_USERNAME="user@example.com",
        ICLOUD_PASSWORD="secret",
        ICLOUD_DATA_DIR=tmp_path / "icloud",
        ONEDRIVE_ENABLED=True,
        MSAL_CLIENT_ID="client-id",
        AUTH_CACHE_PATH=tmp_path / "cache.enc",
        SAMSUNG_FRAME_HOST="10.0.0.5",
        SAMSUNG_FRAME_NAME="Living room",
        ICLOUD_SYNC_INTERVAL=90,
    )

    application = Application(cfg, control_factory=_Channel)

    kinds = [type(endpoint) for endpoint in application.endpoints]
    assert kinds == [ICloudEndpoint, OneDriveEndpoint, FrameEndpoint]
    frame = application.endpoints[-1]
    assert (frame.control.host, frame.control.name) == ("10.0.0.5", "Living room")
    assert application.scheduler.get_interval_seconds() == 90


@pytest.mark.asyncio
async def test_application_start_and_stop() -> None:
    cfg = _settings(SAMSUNG_FRAME_HOST="10.0.0.5", ICLOUD_SYNC_INTERVAL=3600)
    application = Application(cfg, control_factory=_Channel)
    channel = application.endpoints[0].control

    await application.start()
    assert channel.connected
    assert application.scheduler.is_running()

    await application.stop()
    assert channel.closed
    assert not application.scheduler.is_running()


def test_connect_onedrive_command_runs_requested_flow(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    from frame_sync import app as app_mod

    flows = []

    class FakeClient:
        def __init__(self, client_id, tenant_id, scopes, token_cache) -> None:
            self.token_cache = token_cache

        def ensure_connected(self, flow="device_code"):
            flows.append(flow)
            return {"status": "connected", "flow": flow, "expires_in": 3600}

    monkeypatch.setattr(app_mod, "MSALClient", FakeClient)
    monkeypatch.setattr(app_mod, "setup_logging", lambda *args, **kwargs: None)
    cfg = _settings(MSAL_CLIENT_ID="client-id", AUTH_CACHE_PATH=tmp_path / "cache.enc")

    app_mod.main(["connect-onedrive", "--flow", "pkce"], config=cfg)

    assert flows == ["pkce"]
