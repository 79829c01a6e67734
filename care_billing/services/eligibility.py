"""Eligibility evaluation for invoice generation.

Two views:

- Branch view (bulk generation): which clients had bookings in the period,
  how many, and whether each has an active rate basis. Bookings of every
  status are counted so admins see the full candidate set before deciding.
- Client view (add-expenses flow): the client's expense claims and
  extra-time records in the period, grouped, with their invoiced flags
  surfaced rather than filtered out.
"""

import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from care_billing.config import settings
from care_billing.models.booking import Booking
from care_billing.models.client import Client
from care_billing.models.expense import ExpenseClaim
from care_billing.models.extra_time import ExtraTimeRecord
from care_billing.models.rate import ClientRateSchedule, ClientRateAssignment, ServiceRate
from care_billing.schemas.eligibility import (
    ClientEligibility,
    ClientBillableSources,
    ExpenseClaimView,
    ExtraTimeView,
    UninvoicedBooking,
)
from care_billing.schemas.period import PeriodDetails
from care_billing.services.period_resolver import period_bounds
from care_billing.services.visit_billing import RateBasis

logger = logging.getLogger(__name__)


async def clients_with_rate_schedule(db: AsyncSession, client_ids: Iterable[UUID]) -> set[UUID]:
    """Client ids holding at least one active ad-hoc rate schedule."""
    ids = list(client_ids)
    if not ids:
        return set()
    result = await db.execute(
        select(ClientRateSchedule.client_id)
        .where(ClientRateSchedule.client_id.in_(ids), ClientRateSchedule.is_active.is_(True))
        .distinct()
    )
    return set(result.scalars().all())


async def clients_with_rate_assignment(db: AsyncSession, client_ids: Iterable[UUID]) -> set[UUID]:
    """Client ids holding at least one active service rate assignment."""
    ids = list(client_ids)
    if not ids:
        return set()
    result = await db.execute(
        select(ClientRateAssignment.client_id)
        .where(ClientRateAssignment.client_id.in_(ids), ClientRateAssignment.is_active.is_(True))
        .distinct()
    )
    return set(result.scalars().all())


async def rate_eligible_clients(db: AsyncSession, client_ids: Iterable[UUID]) -> set[UUID]:
    """Union of both rate mechanisms; either one is sufficient."""
    ids = list(client_ids)
    schedules = await clients_with_rate_schedule(db, ids)
    assignments = await clients_with_rate_assignment(db, ids)
    return schedules | assignments


async def client_has_rate_basis(db: AsyncSession, client_id: UUID) -> bool:
    return client_id in await rate_eligible_clients(db, [client_id])


async def evaluate_branch(
    db: AsyncSession,
    branch_id: UUID,
    period: PeriodDetails,
) -> list[ClientEligibility]:
    """Candidate clients for bulk generation, in order of first booking."""
    start, end = period_bounds(period)
    result = await db.execute(
        select(Booking.client_id, Client.first_name, Client.last_name)
        .join(Client, Client.id == Booking.client_id)
        .where(
            Booking.branch_id == branch_id,
            Booking.start_time >= start,
            Booking.start_time < end,
        )
        .order_by(Booking.start_time, Booking.id)
    )

    grouped: "OrderedDict[UUID, dict]" = OrderedDict()
    for client_id, first_name, last_name in result.all():
        entry = grouped.get(client_id)
        if entry is None:
            name = f"{first_name or ''} {last_name or ''}".strip() or "Unknown Client"
            entry = grouped[client_id] = {"client_name": name, "booking_count": 0}
        entry["booking_count"] += 1

    if not grouped:
        logger.info(f"No bookings for branch {branch_id} between {period.start_date} and {period.end_date}")
        return []

    eligible_ids = await rate_eligible_clients(db, grouped.keys())

    candidates = [
        ClientEligibility(
            client_id=client_id,
            client_name=data["client_name"],
            booking_count=data["booking_count"],
            has_rate_basis=client_id in eligible_ids,
        )
        for client_id, data in grouped.items()
    ]
    logger.info(
        f"Branch {branch_id}: {len(candidates)} clients with bookings, "
        f"{sum(1 for c in candidates if c.has_rate_basis)} with an active rate basis"
    )
    return candidates


async def evaluate_client(
    db: AsyncSession,
    client_id: UUID,
    period: PeriodDetails,
) -> ClientBillableSources:
    """Expense claims and extra time for one client in the period."""
    claims_result = await db.execute(
        select(ExpenseClaim)
        .where(
            ExpenseClaim.client_id == client_id,
            ExpenseClaim.expense_date >= period.start_date,
            ExpenseClaim.expense_date <= period.end_date,
        )
        .order_by(ExpenseClaim.expense_date, ExpenseClaim.id)
    )
    extra_result = await db.execute(
        select(ExtraTimeRecord)
        .where(
            ExtraTimeRecord.client_id == client_id,
            ExtraTimeRecord.work_date >= period.start_date,
            ExtraTimeRecord.work_date <= period.end_date,
        )
        .order_by(ExtraTimeRecord.work_date, ExtraTimeRecord.id)
    )

    sources = ClientBillableSources(client_id=client_id)
    for claim in claims_result.scalars().all():
        view = ExpenseClaimView.model_validate(claim)
        getattr(sources, view.group).append(view)
    sources.extra_time = [ExtraTimeView.model_validate(r) for r in extra_result.scalars().all()]
    return sources


async def fetch_rate_bases(
    db: AsyncSession,
    client_id: UUID,
    period: Optional[PeriodDetails] = None,
) -> list[RateBasis]:
    """Active rate bases from both mechanisms, normalized for pricing."""
    schedule_result = await db.execute(
        select(ClientRateSchedule)
        .where(ClientRateSchedule.client_id == client_id, ClientRateSchedule.is_active.is_(True))
        .order_by(ClientRateSchedule.start_date)
    )
    assignment_result = await db.execute(
        select(ClientRateAssignment, ServiceRate)
        .join(ServiceRate, ServiceRate.id == ClientRateAssignment.service_rate_id)
        .where(
            ClientRateAssignment.client_id == client_id,
            ClientRateAssignment.is_active.is_(True),
            ServiceRate.status == "active",
        )
    )

    bases = [RateBasis.from_schedule(s) for s in schedule_result.scalars().all()]
    bases.extend(
        RateBasis.from_assignment(assignment, rate)
        for assignment, rate in assignment_result.all()
    )
    if period is not None:
        bases = [b for b in bases if b.overlaps(period.start_date, period.end_date)]
    return bases


async def list_uninvoiced_bookings(db: AsyncSession, client_id: UUID) -> list[UninvoicedBooking]:
    """Completed bookings for a client that no invoice has consumed yet."""
    result = await db.execute(
        select(Booking, Client)
        .join(Client, Client.id == Booking.client_id)
        .where(
            Booking.client_id == client_id,
            Booking.is_invoiced.is_(False),
            Booking.status.in_(settings.BILLABLE_BOOKING_STATUSES),
        )
        .order_by(Booking.start_time)
    )
    now = datetime.now(timezone.utc)
    bookings = []
    for booking, client in result.all():
        start_time = booking.start_time
        if start_time.tzinfo is None:
            start_time = start_time.replace(tzinfo=timezone.utc)
        bookings.append(
            UninvoicedBooking(
                id=booking.id,
                client_id=booking.client_id,
                client_name=client.full_name or "Unknown Client",
                start_time=start_time.isoformat(),
                end_time=booking.end_time.isoformat(),
                status=booking.status,
                days_since_service=(now - start_time).days,
            )
        )
    return bookings

