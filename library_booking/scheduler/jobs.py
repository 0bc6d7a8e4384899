# library_booking/scheduler/jobs.py
import logging
from datetime import datetime, timezone

from library_booking.api.deps import build_engine, get_store

logger = logging.getLogger("scheduler_jobs")


async def reconcile_resource_statuses():
    """Periodic repair of resource statuses left inconsistent by interrupted writes."""
    now_utc = datetime.now(timezone.utc)
    logger.info(f"Running reconcile_resource_statuses job at {now_utc}")
    try:
        report = await build_engine(get_store()).reconcile()
    except Exception:
        # Keep the scheduler alive; the next run retries
        logger.error("Reconciliation job failed.", exc_info=True)
        return None
    logger.info(f"Job finished. Checked: {report.checked}, Repaired: {len(report.repaired)}")
    return report
