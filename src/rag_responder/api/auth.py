"""JWT authentication for the web chat API."""

from __future__ import annotations

import time

import jwt
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from rag_responder.config.settings import Settings
from rag_responder.observability.logger import get_logger

logger = get_logger("auth")

router = APIRouter(prefix="/auth", tags=["auth"])
security = HTTPBearer()


class TokenRequest(BaseModel):
    api_key: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


def parse_api_keys(raw: str) -> dict[str, str]:
    """Parse ``"key1:tenant1,key2:tenant2"`` into {api_key: tenant_id}."""
    keys: dict[str, str] = {}
    for pair in raw.split(","):
        key, sep, tenant_id = pair.strip().partition(":")
        if key and sep and tenant_id:
            keys[key] = tenant_id
    return keys


def issue_token(tenant_id: str, settings: Settings) -> str:
    now = int(time.time())
    payload = {
        "sub": tenant_id,
        "iat": now,
        "exp": now + settings.jwt_expiry_minutes * 60,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


@router.post("/token", response_model=TokenResponse)
async def create_token(
    body: TokenRequest,
    settings: Settings = Depends(_get_settings),
) -> TokenResponse:
    """Exchange a tenant API key for a JWT token."""
    valid_keys = parse_api_keys(settings.api_keys)

    if not valid_keys:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication not configured",
        )

    tenant_id = valid_keys.get(body.api_key)
    if tenant_id is None:
        logger.warning("invalid_api_key_attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    token = issue_token(tenant_id, settings)
    logger.info("token_issued", tenant_id=tenant_id, expiry_minutes=settings.jwt_expiry_minutes)
    return TokenResponse(
        access_token=token,
        expires_in=settings.jwt_expiry_minutes * 60,
    )


async def verify_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """FastAPI dependency: validate JWT from Authorization header."""
    settings: Settings = request.app.state.settings
    token = credentials.credentials

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
        return payload
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )
