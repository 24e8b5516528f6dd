from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from reelhouse.api.deps import AdminDependency, get_media_engine
from reelhouse.core.config import Settings, get_settings
from reelhouse.core.errors import EngineError
from reelhouse.media.engine import MediaEngine

from .schemas import EnvCheckResponse


router = APIRouter(prefix="/admin", tags=["admin"])


class DevTokenRequest(BaseModel):
    user_id: str = Field(..., examples=["user-123"])
    name: str | None = Field(default=None, examples=["Dev Admin"])
    scopes: list[str] = Field(default_factory=lambda: ["admin"])


class DevTokenResponse(BaseModel):
    token: str


async def _probe_binary(engine: MediaEngine, binary: str) -> bool:
    try:
        await engine.run([binary, "-version"], timeout=10.0)
    except EngineError:
        return False
    return True


@router.get("/env-check", response_model=EnvCheckResponse, summary="Validate ffmpeg toolchain")
async def env_check(context: AdminDependency, engine: MediaEngine = Depends(get_media_engine)) -> EnvCheckResponse:
    return EnvCheckResponse(
        ffmpeg=await _probe_binary(engine, engine.ffmpeg_binary),
        ffprobe=await _probe_binary(engine, engine.ffprobe_binary),
    )


@router.post("/dev-token", response_model=DevTokenResponse, summary="Mint development JWT")
async def mint_dev_token(payload: DevTokenRequest, settings: Settings = Depends(get_settings)) -> DevTokenResponse:
    if settings.environment_lower not in {"development", "dev"}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="dev_token_disabled")

    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(hours=1)
    claims: dict[str, object] = {
        "sub": payload.user_id,
        "scopes": payload.scopes,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    if payload.name:
        claims["name"] = payload.name
    if settings.jwt_issuer:
        claims["iss"] = settings.jwt_issuer
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience

    token = jwt.encode(claims, settings.secrets.jwt_secret, algorithm=settings.jwt_algorithm)
    return DevTokenResponse(token=token)


__all__ = ["router"]
