"""Source mark repair job.

Finds billable sources that an invoice line references but that are not
flagged as invoiced, and flags them against the owning invoice. Runs on an
interval when SOURCE_REPAIR_ENABLED is set.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from care_billing.config import settings
from care_billing.database import async_session_maker
from care_billing.models.booking import Booking
from care_billing.models.expense import ExpenseClaim
from care_billing.models.extra_time import ExtraTimeRecord
from care_billing.models.invoice import InvoiceLineItem

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global scheduler
    if scheduler is None:
        scheduler = AsyncIOScheduler()
    return scheduler


async def _repair(db: AsyncSession, model, source_column, flag: str) -> int:
    result = await db.execute(
        select(model, InvoiceLineItem.invoice_id)
        .join(InvoiceLineItem, source_column == model.id)
        .where(or_(getattr(model, flag).is_(False), model.invoice_id.is_(None)))
        .with_for_update(of=model)
    )
    repaired = 0
    for row, invoice_id in result.all():
        setattr(row, flag, True)
        row.invoice_id = invoice_id
        repaired += 1
        logger.warning(f"Repaired invoiced flag on {model.__tablename__} {row.id} (invoice {invoice_id})")
    return repaired


async def repair_source_marks(db: AsyncSession) -> dict:
    """Flag every source referenced by a line item; returns repair counts."""
    try:
        counts = {
            "bookings": await _repair(db, Booking, InvoiceLineItem.source_booking_id, "is_invoiced"),
            "expense_claims": await _repair(db, ExpenseClaim, InvoiceLineItem.source_expense_id, "is_invoiced"),
            "extra_time": await _repair(db, ExtraTimeRecord, InvoiceLineItem.source_extra_time_id, "invoiced"),
        }
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return counts


async def run_source_repair():
    """Scheduled job: repair source marks in a fresh session."""
    logger.info("Starting source mark repair...")
    try:
        async with async_session_maker() as db:
            counts = await repair_source_marks(db)
    except Exception as e:
        logger.error(f"Source mark repair failed: {e}", exc_info=True)
        return
    logger.info(f"Source mark repair complete: {counts}")


def start_source_repair_scheduler():
    """Start the scheduler with the repair job."""
    global scheduler

    scheduler = get_scheduler()
    scheduler.add_job(
        run_source_repair,
        IntervalTrigger(minutes=settings.SOURCE_REPAIR_INTERVAL_MINUTES),
        id="source_mark_repair",
        name="Repair invoiced source marks",
        replace_existing=True,
    )

    if not scheduler.running:
        scheduler.start()
        logger.info("Source repair scheduler started")
        for job in scheduler.get_jobs():
            logger.info(f"  - {job.name}: {job.trigger}")


def stop_source_repair_scheduler():
    """Stop the scheduler."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Source repair scheduler stopped")
