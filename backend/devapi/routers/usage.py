"""
Usage router for integrators.

GET /v1/usage - usage of the key that authenticated this request:
today's total, today's hourly breakdown, and the previous days from the
durable rollup. The request itself is metered after the response, so it
is not included in the numbers it returns.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from devapi.auth.dependencies import Principal
from devapi.auth.rate_limit import require_api_access
from devapi.core.config import Settings
from devapi.core.database import get_db_session
from devapi.core.resources import Resources, get_resources, get_settings
from devapi.schemas.usage import UsageSummary
from devapi.services.usage import UsageCounter, get_usage_for_key

router = APIRouter(tags=["Usage"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Auth = Annotated[Principal, Depends(require_api_access)]


@router.get(
    "/usage",
    response_model=UsageSummary,
    summary="Usage stats for the calling API key",
)
async def get_own_usage(
    session: DbSession,
    auth: Auth,
    resources: Annotated[Resources, Depends(get_resources)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> UsageSummary:
    return await get_usage_for_key(
        session,
        UsageCounter(resources.redis),
        auth.key_id,
        days=settings.USAGE_HISTORY_DAYS,
    )
