"""
Nightly activity retention job.

Deletes ledger events older than ACTIVITY_RETENTION_DAYS so the aggregation
windows keep scanning a bounded table.
"""

import logging
from typing import Any, Dict, Optional

from nibret.core.config import settings
from nibret.core.database import AsyncSessionLocal
from nibret.services.activity_ledger import ActivityLedgerService

logger = logging.getLogger(__name__)


class RetentionJob:
    """Apply the activity retention window."""

    def __init__(self, retention_days: Optional[int] = None):
        self.retention_days = retention_days or settings.ACTIVITY_RETENTION_DAYS

    async def run(self) -> Dict[str, Any]:
        logger.info("Starting activity retention job (%s days)", self.retention_days)
        async with AsyncSessionLocal() as db:
            ledger = ActivityLedgerService(db)
            result = await ledger.cleanup(self.retention_days)
        logger.info(
            "Activity retention job completed: %s events removed", result["deleted_count"]
        )
        return result


async def run_retention_job() -> Dict[str, Any]:
    """Entry point for the scheduler."""
    job = RetentionJob()
    return await job.run()
