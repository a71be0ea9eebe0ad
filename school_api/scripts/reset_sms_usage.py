"""
Monthly SMS counter reset.

Zeroes sms_used for every school whose last reset falls in an earlier calendar
month. Idempotent, so it can run from a daily cron.
Usage: python -m school_api.scripts.reset_sms_usage
"""

import asyncio
import logging

from school_api.api.v1.schools.service import reset_monthly_sms_usage
from school_api.core.config import settings
from school_api.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)


async def main() -> None:
    async with AsyncSessionLocal() as session:
        count = await reset_monthly_sms_usage(session)
    logger.info("Done: %d school(s) reset", count)


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level.upper())
    asyncio.run(main())
