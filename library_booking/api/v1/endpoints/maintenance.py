# library_booking/api/v1/endpoints/maintenance.py
from fastapi import APIRouter, Depends, Request
from loguru import logger

from library_booking.api.deps import get_engine
from library_booking.core.lifecycle import BookingLifecycleEngine, ReconciliationReport
from library_booking.core.rate_limiter import limiter
from library_booking.core.security import require_admin
from library_booking.models.enum import AuditAction
from library_booking.models.user import UserAccount

router = APIRouter(tags=["Maintenance"])


@router.post("/reconcile", response_model=ReconciliationReport)
@limiter.limit("6/minute")
async def reconcile_statuses(
    request: Request,
    engine: BookingLifecycleEngine = Depends(get_engine),
    current_user: UserAccount = Depends(require_admin),
):
    """Recompute every book and room status from its open bookings."""
    logger.info(f"Admin '{current_user.username}' triggered status reconciliation.")
    report = await engine.reconcile()
    await engine.store.audit_logs.record(current_user.id, AuditAction.RECONCILE_STATUSES, "resources")
    return report
