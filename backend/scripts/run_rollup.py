"""
Run the usage rollup once, outside the HTTP trigger.

Usage:
    python -m scripts.run_rollup              # today (UTC)
    python -m scripts.run_rollup 2026-03-01   # a specific day

Only days whose Redis counters have not expired yet (32 days) can be
rolled up.
"""

import asyncio
import datetime
import logging
import sys

# Ensure the project root is on the path
sys.path.insert(0, ".")

from devapi.core.config import Settings
from devapi.core.resources import Resources
from devapi.services.rollups import run_usage_rollup
from devapi.services.usage import UsageCounter

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)


async def main() -> int:
    target_date = (
        datetime.date.fromisoformat(sys.argv[1]) if len(sys.argv) > 1 else None
    )

    resources = Resources.from_settings(Settings())  # type: ignore[call-arg]
    try:
        report = await run_usage_rollup(
            resources.session_factory,
            UsageCounter(resources.redis),
            target_date,
        )
    finally:
        await resources.aclose()

    print(report.model_dump_json(indent=2))
    return 1 if report.failures else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
