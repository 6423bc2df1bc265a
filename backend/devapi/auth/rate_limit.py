"""
FastAPI dependency guarding every /v1 route.

Order in request pipeline: AUTH → RATE LIMIT → ROUTER LOGIC → METERING.

  • get_principal authenticates the key (401 / 503).
  • The sliding-window limiter spends one unit of the key's budget (429 / 503).
  • api_body() reads the JSON body only after both checks passed.
  • Metering (usage counters + last_used_at) is queued as a background
    task. Starlette runs it after the response has been sent, and only for
    responses the route actually returned, so it never delays or fails the
    request.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from fastapi import BackgroundTasks, Depends, Request
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError

from devapi.auth.dependencies import Principal, get_principal
from devapi.auth.errors import RateLimitExceeded
from devapi.core.resources import Resources, get_resources
from devapi.services.rate_limiter import SlidingWindowRateLimiter
from devapi.services.usage import UsageCounter, record_successful_request

logger = logging.getLogger(__name__)

BodyT = TypeVar("BodyT", bound=BaseModel)


async def require_api_access(
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_principal),
    resources: Resources = Depends(get_resources),
) -> Principal:
    """
    Enforce the key's per-minute budget and schedule metering.

    Returns the Principal so routers can access key_id / owner_id.
    """
    limiter = SlidingWindowRateLimiter(resources.redis)
    decision = await limiter.hit(principal.key_id, principal.rate_limit_rpm)

    if not decision.allowed:
        logger.info(
            "Rate limit hit for key %s (limit=%d, retry_after=%ds)",
            principal.key_id, decision.limit, decision.retry_after,
        )
        raise RateLimitExceeded(decision.retry_after)

    background_tasks.add_task(
        record_successful_request,
        UsageCounter(resources.redis),
        resources.session_factory,
        principal.key_id,
    )
    return principal


def api_body(model: type[BodyT]) -> Callable[..., Awaitable[BodyT]]:
    """
    Dependency factory: parse the JSON body into `model` after the key has
    been authenticated and metered.

    A keyless request is rejected with 401 before its body is read.
    require_api_access is resolved once per request and shared with the
    route's own Auth dependency.
    """

    async def parse(
        request: Request,
        _principal: Principal = Depends(require_api_access),
    ) -> BodyT:
        try:
            return model.model_validate_json(await request.body())
        except ValidationError as exc:
            raise RequestValidationError(exc.errors(include_url=False)) from None

    return parse
