"""Messaging-platform skill webhook endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from rag_responder.api.dependencies import get_messaging_service
from rag_responder.api.rate_limiter import messaging_rate_limiter, messaging_user_key
from rag_responder.channels import messages
from rag_responder.channels.kakao import (
    MessagingSkillService,
    client_ip,
    error_response,
    is_allowed_source_ip,
    mask_user_id,
    to_skill_response,
)
from rag_responder.models.schemas import SkillRequest
from rag_responder.observability.logger import get_logger

logger = get_logger("routes_messaging")

router = APIRouter(prefix="/kakao")


async def _parse_skill_request(request: Request) -> SkillRequest | JSONResponse:
    settings = request.app.state.settings
    ip = client_ip(dict(request.headers), request.client.host if request.client else None)
    if not is_allowed_source_ip(ip, settings):
        logger.warning("skill_ip_blocked", ip=ip)
        return JSONResponse(
            error_response(messages.INVALID_REQUEST).model_dump(exclude_none=True),
            status_code=403,
        )

    try:
        return SkillRequest.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.warning("skill_request_invalid", error=str(e))
        return JSONResponse(error_response(messages.INVALID_REQUEST).model_dump(exclude_none=True))


@router.post("/skill")
async def skill(
    request: Request,
    service: MessagingSkillService = Depends(get_messaging_service),
) -> JSONResponse:
    settings = request.app.state.settings
    parsed = await _parse_skill_request(request)
    if isinstance(parsed, JSONResponse):
        return parsed

    bot_id = parsed.bot.id if parsed.bot else None
    user_id = parsed.userRequest.user.id
    limit_key = messaging_user_key(bot_id, user_id) if bot_id else None
    if limit_key and not messaging_rate_limiter.check(
        limit_key, settings.messaging_rate_limit_per_minute
    ):
        logger.warning("skill_rate_limited", bot_id=bot_id, user_id=mask_user_id(user_id))
        return JSONResponse(
            error_response(messages.INTERNAL_ERROR).model_dump(exclude_none=True),
            status_code=429,
            headers={"Retry-After": str(messaging_rate_limiter.retry_after(limit_key) or 60)},
        )

    result = await service.process(parsed)
    logger.info(
        "skill_response",
        success=result.success,
        error_code=result.error_code,
        response_length=len(result.text),
    )
    body = to_skill_response(result, settings.messaging_max_text_length)
    return JSONResponse(body.model_dump(exclude_none=True))


@router.post("/welcome")
async def welcome(
    request: Request,
    service: MessagingSkillService = Depends(get_messaging_service),
) -> JSONResponse:
    parsed = await _parse_skill_request(request)
    if isinstance(parsed, JSONResponse):
        return parsed
    body = await service.welcome(parsed)
    return JSONResponse(body.model_dump(exclude_none=True))


@router.get("/skill")
async def skill_health() -> dict:
    return {
        "status": "ok",
        "service": "messaging skill server",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
