from __future__ import annotations

import asyncio
import os
from pathlib import Path

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine

from reelhouse.core.config import get_settings
from reelhouse.core.db import Base
from reelhouse.main import create_app
from tests.fakes import FakeMediaEngine

DEV_SECRET = "dev-secret"
DEV_AUDIENCE = "reelhouse"
DEV_ISSUER = "reelhouse-local"


pytestmark = pytest.mark.no_default_env


def _write_env(target_dir: Path, *, environment: str) -> Path:
    target_dir.mkdir(parents=True, exist_ok=True)
    env_text = f"""
REELHOUSE_ENV={environment}
REELHOUSE_LOG_LEVEL=debug
REELHOUSE_JWT_SECRET={DEV_SECRET}
REELHOUSE_JWT_ISSUER={DEV_ISSUER}
REELHOUSE_JWT_AUDIENCE={DEV_AUDIENCE}
REELHOUSE_MEDIA_ROOT=media
REELHOUSE_DB_URL=sqlite+aiosqlite:///./reelhouse.db
REELHOUSE_JOB_BACKEND=inline
REELHOUSE_REDIS_URL=redis://localhost:6379/0
""".strip()
    env_path = target_dir / ".env"
    env_path.write_text(env_text)
    return env_path


async def _initialise_sqlite(database_url: str) -> None:
    engine = create_async_engine(database_url, echo=False, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


def _prepare_app(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, *, environment: str) -> TestClient:
    _write_env(tmp_path, environment=environment)
    for key in list(os.environ.keys()):
        if key.startswith("REELHOUSE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    asyncio.run(_initialise_sqlite("sqlite+aiosqlite:///./reelhouse.db"))
    get_settings.cache_clear()
    app = create_app(media_engine=FakeMediaEngine(width=320, height=240))
    client = TestClient(app)
    client.__enter__()
    return client


def test_env_boots_without_shell_exports(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    client = _prepare_app(tmp_path, monkeypatch, environment="development")
    try:
        response = client.get("/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert (tmp_path / "media" / "videos").is_dir()
    finally:
        client.__exit__(None, None, None)


def test_dev_token_endpoint_only_in_dev(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    client = _prepare_app(tmp_path, monkeypatch, environment="development")
    try:
        payload = {"user_id": "user-1", "name": "Dev Admin", "scopes": ["admin"]}
        response = client.post("/v1/admin/dev-token", json=payload)
        assert response.status_code == 200
        token = response.json()["token"]
        decoded = jwt.decode(
            token,
            DEV_SECRET,
            algorithms=["HS256"],
            audience=DEV_AUDIENCE,
            issuer=DEV_ISSUER,
        )
        assert decoded["sub"] == payload["user_id"]
        assert decoded["name"] == payload["name"]
        assert decoded["scopes"] == ["admin"]
    finally:
        client.__exit__(None, None, None)

    prod_client = _prepare_app(tmp_path / "prod", monkeypatch, environment="production")
    try:
        response = prod_client.post("/v1/admin/dev-token", json={"user_id": "user-1"})
        assert response.status_code == 403
    finally:
        prod_client.__exit__(None, None, None)


def test_request_with_dev_token_succeeds(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    client = _prepare_app(tmp_path, monkeypatch, environment="development")
    try:
        token_resp = client.post("/v1/admin/dev-token", json={"user_id": "user-1", "name": "Dev Admin"})
        assert token_resp.status_code == 200
        headers = {"Authorization": f"Bearer {token_resp.json()['token']}"}
        upload_resp = client.post(
            "/v1/videos",
            data={"title": "Bootstrapped"},
            files={"video": ("sample.mp4", b"sample-data", "video/mp4")},
            headers=headers,
        )
        assert upload_resp.status_code == 201, upload_resp.text
        assert upload_resp.json()["uploader_name"] == "Dev Admin"
    finally:
        client.__exit__(None, None, None)


def test_production_requires_real_secret(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    for key in list(os.environ.keys()):
        if key.startswith("REELHOUSE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("REELHOUSE_ENV", "production")
    with pytest.raises(ValueError):
        get_settings()
