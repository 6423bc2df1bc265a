"""
Scheduled-job router.

POST /cron/usage-rollup
  Called by an external scheduler with `Authorization: Bearer <CRON_SECRET>`.
  Snapshots today's Redis usage counters into api_key_daily_usage.
  Safe to call as often as the scheduler likes - see services.rollups.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from devapi.auth.admin import require_cron_secret
from devapi.core.resources import Resources, get_resources
from devapi.schemas.usage import RollupReport
from devapi.services.rollups import run_usage_rollup
from devapi.services.usage import UsageCounter

router = APIRouter(tags=["Cron"], dependencies=[Depends(require_cron_secret)])


@router.post(
    "/usage-rollup",
    response_model=RollupReport,
    summary="Roll today's usage counters into the durable daily table",
)
async def usage_rollup(
    resources: Annotated[Resources, Depends(get_resources)],
) -> RollupReport:
    return await run_usage_rollup(
        resources.session_factory,
        UsageCounter(resources.redis),
    )
