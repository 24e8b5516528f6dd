import asyncio
import shutil
import subprocess
from pathlib import Path

import jwt
import pytest
from fastapi.testclient import TestClient

from reelhouse.core.config import get_settings
from reelhouse.core.db import Base, create_engine, create_session_factory
from reelhouse.core.storage import MediaStorage
from reelhouse.main import create_app
from reelhouse.services.ingest_service import IngestService
from tests.fakes import FakeMediaEngine

TEST_SECRET = "test-secret"


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "no_default_env: disable the default Reelhouse environment bootstrap fixture for tests that manage their own .env",
    )


@pytest.fixture(autouse=True)
def configure_environment(request, monkeypatch, tmp_path_factory):
    if request.node.get_closest_marker("no_default_env"):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()
        return
    env_root = tmp_path_factory.mktemp("reelhouse_env")
    db_path = env_root / "reelhouse_test.db"
    media_root = env_root / "media"

    monkeypatch.setenv("REELHOUSE_ENV", "test")
    monkeypatch.setenv("REELHOUSE_LOG_LEVEL", "debug")
    monkeypatch.setenv("REELHOUSE_DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("REELHOUSE_MEDIA_ROOT", str(media_root))
    monkeypatch.setenv("REELHOUSE_JOB_BACKEND", "inline")
    monkeypatch.setenv("REELHOUSE_JOB_RETRY_INITIAL_DELAY_S", "0")
    monkeypatch.setenv("REELHOUSE_TRANSCODE_MAX_ATTEMPTS", "2")
    monkeypatch.setenv("REELHOUSE_JWT_SECRET", TEST_SECRET)
    monkeypatch.setenv("REELHOUSE_JWT_ISSUER", "reelhouse-test")
    monkeypatch.setenv("REELHOUSE_JWT_AUDIENCE", "reelhouse")

    get_settings.cache_clear()
    settings = get_settings()
    engine = create_engine(settings)

    async def _setup() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_setup())

    yield

    async def _teardown() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(_teardown())
    get_settings.cache_clear()


@pytest.fixture()
def fake_engine() -> FakeMediaEngine:
    return FakeMediaEngine()


@pytest.fixture()
def client(configure_environment, fake_engine):
    app = create_app(media_engine=fake_engine)
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def storage(configure_environment) -> MediaStorage:
    return MediaStorage(get_settings().media_root)


@pytest.fixture()
def run_service(configure_environment, storage, fake_engine):
    """Run a coroutine against a fresh IngestService bound to its own session."""

    def _run(operation):
        settings = get_settings()

        async def _runner():
            engine = create_engine(settings)
            try:
                async with create_session_factory(engine)() as session:
                    service = IngestService(settings, storage, session, fake_engine)
                    return await operation(service)
            finally:
                await engine.dispose()

        return asyncio.run(_runner())

    return _run


def build_token(*, user_id: str = "user-1", name: str | None = "Test Admin", scopes: list[str] | None = None) -> str:
    payload: dict[str, object] = {"sub": user_id, "iss": "reelhouse-test", "aud": "reelhouse"}
    if name:
        payload["name"] = name
    if scopes:
        payload["scopes"] = scopes
    return jwt.encode(payload, TEST_SECRET, algorithm="HS256")


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token(scopes=['admin'])}"}


@pytest.fixture()
def viewer_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token(user_id='viewer', name=None)}"}


def write_source(storage: MediaStorage, name: str = "clip.mp4", payload: bytes = b"fake-video") -> str:
    relative_path = storage.allocate_upload_name(name)
    storage.resolve(relative_path).write_bytes(payload)
    return relative_path


@pytest.fixture(scope="session")
def generated_video_file(tmp_path_factory) -> Path:
    """
    Generates a small, valid 1080p MP4 video file with the real ffmpeg binary.
    """
    if shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None:
        pytest.skip("ffmpeg/ffprobe not installed")

    video_path = tmp_path_factory.mktemp("data") / "test_video.mp4"
    command = [
        "ffmpeg",
        "-f", "lavfi",
        "-i", "testsrc=size=1920x1080:rate=30",
        "-f", "lavfi",
        "-i", "sine=frequency=440",
        "-t", "2",
        "-pix_fmt", "yuv420p",
        "-shortest",
        str(video_path),
    ]
    subprocess.run(command, check=True, capture_output=True)
    return video_path
