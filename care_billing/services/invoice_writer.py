"""Single invoice writer.

Creates one invoice (header and line items) for one client and flips the
invoiced flags on every source it consumes. The source re-check, the
inserts and the flag updates share one database transaction: either the
invoice exists with all of its sources marked, or neither happened.
Sources are locked while being consumed and each source id is unique
across line items, so a concurrent writer cannot bill the same row twice.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from care_billing.config import settings
from care_billing.exceptions import (
    BillingEngineError,
    DuplicateInvoiceError,
    InvoiceNotEditableError,
    InvoiceNotFoundError,
    NoBillableFactsError,
    SourceMarkingError,
)
from care_billing.models.bank_holiday import BankHoliday
from care_billing.models.booking import Booking
from care_billing.models.expense import APPROVED_STATUS, ExpenseClaim
from care_billing.models.extra_time import ExtraTimeRecord
from care_billing.models.invoice import ClientInvoice, InvoiceLineItem, InvoiceStatus, EDITABLE_STATUSES
from care_billing.schemas.invoice import WrittenInvoice
from care_billing.schemas.period import PeriodDetails
from care_billing.schemas.reconciliation import ReconciliationResult, ReconciliationTotals
from care_billing.services.eligibility import fetch_rate_bases
from care_billing.services.period_resolver import period_bounds, invoice_description
from care_billing.services.reconciler import line_totals
from care_billing.services.visit_billing import Visit, VisitBillingCalculator

logger = logging.getLogger(__name__)


@dataclass
class BillableFacts:
    """Resolved, still-unconsumed sources ready to become line items."""

    lines: list[dict] = field(default_factory=list)
    bookings: list[Booking] = field(default_factory=list)
    expense_claims: list[ExpenseClaim] = field(default_factory=list)
    extra_time: list[ExtraTimeRecord] = field(default_factory=list)
    booked_minutes: int = 0
    # Reconciled path only
    totals: Optional[ReconciliationTotals] = None
    dropped_expense_ids: list[UUID] = field(default_factory=list)
    dropped_extra_time_ids: list[UUID] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.lines


async def generate_invoice_number(db: AsyncSession, today: Optional[date] = None) -> str:
    """Next number in the monthly sequence: INV-YYYY-MM-NNNN.

    Invoice numbers are unique across organizations, so the sequence is too.
    """
    today = today or date.today()
    prefix = f"{settings.INVOICE_NUMBER_PREFIX}-{today:%Y-%m}"
    result = await db.execute(
        select(ClientInvoice.invoice_number)
        .where(ClientInvoice.invoice_number.like(f"{prefix}-%"))
        # Longer suffixes are larger once the sequence passes 9999
        .order_by(func.length(ClientInvoice.invoice_number).desc(), ClientInvoice.invoice_number.desc())
        .limit(1)
    )
    last = result.scalar_one_or_none()
    sequence = int(last.rsplit("-", 1)[1]) + 1 if last else 1
    return f"{prefix}-{sequence:04d}"


async def find_period_invoice(
    db: AsyncSession, client_id: UUID, period: PeriodDetails
) -> Optional[ClientInvoice]:
    """Existing booking-generated invoice covering exactly this period."""
    result = await db.execute(
        select(ClientInvoice).where(
            ClientInvoice.client_id == client_id,
            ClientInvoice.start_date == period.start_date,
            ClientInvoice.end_date == period.end_date,
            ClientInvoice.generated_from_booking.is_(True),
            ClientInvoice.status != InvoiceStatus.cancelled.value,
        ).limit(1)
    )
    return result.scalar_one_or_none()


async def _bank_holidays(db: AsyncSession, start: date, end: date) -> set[date]:
    result = await db.execute(
        select(BankHoliday.registered_on).where(
            BankHoliday.registered_on >= start,
            BankHoliday.registered_on <= end,
            BankHoliday.status == "Active",
        )
    )
    return set(result.scalars().all())


async def collect_booking_facts(
    db: AsyncSession,
    client_id: UUID,
    branch_id: UUID,
    period: PeriodDetails,
) -> BillableFacts:
    """Price the client's uninvoiced, completed bookings in the period."""
    start, end = period_bounds(period)
    result = await db.execute(
        select(Booking)
        .where(
            Booking.client_id == client_id,
            Booking.branch_id == branch_id,
            Booking.start_time >= start,
            Booking.start_time < end,
            Booking.status.in_(settings.BILLABLE_BOOKING_STATUSES),
            Booking.is_invoiced.is_(False),
        )
        .order_by(Booking.start_time)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    bookings = list(result.scalars().all())
    if not bookings:
        raise NoBillableFactsError()

    rate_bases = await fetch_rate_bases(db, client_id, period)
    holidays = await _bank_holidays(db, period.start_date, period.end_date)
    calculator = VisitBillingCalculator(
        rate_bases,
        use_actual_time=settings.USE_ACTUAL_TIME,
        vat_rate=settings.VAT_RATE,
    )
    summary = calculator.calculate_visits_billing(Visit.from_booking(b, holidays) for b in bookings)
    if not summary.line_items:
        raise NoBillableFactsError("no applicable rate for bookings in period")
    if summary.unpriced_visit_ids:
        logger.warning(
            f"Client {client_id}: {len(summary.unpriced_visit_ids)} booking(s) left uninvoiced, no matching rate"
        )

    priced = {item.visit_id for item in summary.line_items}
    facts = BillableFacts(
        bookings=[b for b in bookings if b.id in priced],
        booked_minutes=summary.total_billable_minutes,
    )
    for item in summary.line_items:
        facts.lines.append({
            "line_type": "visit",
            "description": item.description,
            "quantity": Decimal(item.billing_duration_minutes) / 60,
            "unit_price": item.unit_rate,
            "line_total": item.line_total,
            "vat_amount": item.vat_amount,
            "visit_date": item.date,
            "duration_minutes": item.billing_duration_minutes,
            "rate_type_applied": item.rate_type,
            "bank_holiday_multiplier_applied": item.multiplier,
            "day_type": "bank_holiday" if item.is_bank_holiday else "weekday",
            "source_booking_id": item.visit_id,
        })
    return facts


async def collect_reconciled_facts(
    db: AsyncSession,
    client_id: UUID,
    reconciliation: ReconciliationResult,
) -> BillableFacts:
    """Re-check reconciled sources inside the write transaction.

    Anything consumed or unapproved since the catalog was fetched, or not
    owned by the client, is dropped along with its line.
    """
    claims: dict = {}
    if reconciliation.source_expense_ids:
        result = await db.execute(
            select(ExpenseClaim)
            .where(
                ExpenseClaim.id.in_(reconciliation.source_expense_ids),
                ExpenseClaim.client_id == client_id,
                ExpenseClaim.is_invoiced.is_(False),
                ExpenseClaim.status == APPROVED_STATUS,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        claims = {c.id: c for c in result.scalars().all()}

    extra: dict = {}
    if reconciliation.source_extra_time_ids:
        result = await db.execute(
            select(ExtraTimeRecord)
            .where(
                ExtraTimeRecord.id.in_(reconciliation.source_extra_time_ids),
                ExtraTimeRecord.client_id == client_id,
                ExtraTimeRecord.invoiced.is_(False),
                ExtraTimeRecord.status == APPROVED_STATUS,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        extra = {r.id: r for r in result.scalars().all()}

    facts = BillableFacts()
    kept = []
    for line in reconciliation.line_items:
        if line.source_expense_id is not None:
            claim = claims.get(line.source_expense_id)
            if claim is None:
                facts.dropped_expense_ids.append(line.source_expense_id)
                continue
            facts.expense_claims.append(claim)
        elif line.source_extra_time_id is not None:
            record = extra.get(line.source_extra_time_id)
            if record is None:
                facts.dropped_extra_time_ids.append(line.source_extra_time_id)
                continue
            facts.extra_time.append(record)
        kept.append(line)
        facts.lines.append(line.model_dump())
    facts.totals = line_totals(kept)

    dropped = len(facts.dropped_expense_ids) + len(facts.dropped_extra_time_ids)
    if dropped:
        logger.info(f"Client {client_id}: {dropped} source(s) consumed or unapproved since selection, dropped")
    return facts


def _mark_consumed(facts: BillableFacts, invoice_id: UUID):
    for booking in facts.bookings:
        booking.is_invoiced = True
        booking.invoice_id = invoice_id
    for claim in facts.expense_claims:
        claim.is_invoiced = True
        claim.invoice_id = invoice_id
    for record in facts.extra_time:
        record.invoiced = True
        record.invoice_id = invoice_id


async def _persist(db: AsyncSession, invoice: ClientInvoice, facts: BillableFacts):
    """Flush lines, then flags, then commit; roll back everything on failure."""
    try:
        await db.flush()
        _mark_consumed(facts, invoice.id)
        await db.flush()
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        if "invoice_number" in str(e.orig):
            raise BillingEngineError("could not allocate a unique invoice number") from e
        raise SourceMarkingError() from e
    except Exception:
        await db.rollback()
        raise


async def write_invoice(
    db: AsyncSession,
    client_id: UUID,
    branch_id: UUID,
    organization_id: UUID,
    period: PeriodDetails,
    reconciliation: Optional[ReconciliationResult] = None,
) -> WrittenInvoice:
    """Write one invoice for a client.

    Without a reconciliation result the client's completed bookings in the
    period are priced and billed (bulk path). With one, the reconciled
    expense lines are billed (manual path).
    """
    try:
        if reconciliation is None:
            if await find_period_invoice(db, client_id, period) is not None:
                raise DuplicateInvoiceError()
            facts = await collect_booking_facts(db, client_id, branch_id, period)
        else:
            facts = await collect_reconciled_facts(db, client_id, reconciliation)
        if facts.is_empty:
            raise NoBillableFactsError("nothing left to invoice, selected items were already invoiced")
        invoice_number = await generate_invoice_number(db)
    except Exception:
        # Release row locks taken while collecting sources
        await db.rollback()
        raise

    today = date.today()
    generated = reconciliation is None
    invoice = ClientInvoice(
        client_id=client_id,
        branch_id=branch_id,
        organization_id=organization_id,
        invoice_number=invoice_number,
        description=invoice_description(period),
        status=InvoiceStatus.pending.value if generated else InvoiceStatus.draft.value,
        invoice_date=today,
        due_date=today + timedelta(days=settings.INVOICE_DUE_DAYS),
        start_date=period.start_date,
        end_date=period.end_date,
        invoice_type="automatic" if generated else "manual",
        invoice_method=period.type.value,
        generated_from_booking=generated,
        booked_time_minutes=facts.booked_minutes,
        line_items=[InvoiceLineItem(position=i, **line) for i, line in enumerate(facts.lines)],
    )
    invoice.calculate_totals()
    db.add(invoice)
    await _persist(db, invoice, facts)

    logger.info(
        f"Created invoice {invoice_number} for client {client_id}: "
        f"{len(facts.lines)} line(s), total {invoice.total_amount}"
    )
    return WrittenInvoice(
        invoice_id=invoice.id,
        invoice_number=invoice_number,
        amount=float(invoice.total_amount),
        line_item_count=len(facts.lines),
        totals=facts.totals,
        dropped_expense_ids=facts.dropped_expense_ids,
        dropped_extra_time_ids=facts.dropped_extra_time_ids,
    )


async def add_to_invoice(
    db: AsyncSession,
    invoice_id: UUID,
    reconciliation: ReconciliationResult,
) -> WrittenInvoice:
    """Append reconciled lines to an existing editable invoice."""
    try:
        result = await db.execute(
            select(ClientInvoice)
            .options(selectinload(ClientInvoice.line_items))
            .where(ClientInvoice.id == invoice_id)
            .with_for_update()
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError()
        if invoice.status not in EDITABLE_STATUSES:
            raise InvoiceNotEditableError(f"invoice is {invoice.status} and can no longer be edited")

        facts = await collect_reconciled_facts(db, invoice.client_id, reconciliation)
        if facts.is_empty:
            raise NoBillableFactsError("nothing left to invoice, selected items were already invoiced")
    except Exception:
        await db.rollback()
        raise

    offset = max((item.position or 0 for item in invoice.line_items), default=-1) + 1
    for i, line in enumerate(facts.lines):
        invoice.line_items.append(InvoiceLineItem(position=offset + i, **line))
    invoice.calculate_totals()
    await _persist(db, invoice, facts)

    logger.info(f"Added {len(facts.lines)} line(s) to invoice {invoice.invoice_number}")
    return WrittenInvoice(
        invoice_id=invoice.id,
        invoice_number=invoice.invoice_number,
        amount=float(invoice.total_amount),
        line_item_count=len(invoice.line_items),
        totals=facts.totals,
        dropped_expense_ids=facts.dropped_expense_ids,
        dropped_extra_time_ids=facts.dropped_extra_time_ids,
    )
