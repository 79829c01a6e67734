"""Payments and deletion for written invoices."""

import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from care_billing.exceptions import InvoiceNotDeletableError, InvoiceNotFoundError, PaymentNotAllowedError
from care_billing.models.booking import Booking
from care_billing.models.expense import ExpenseClaim
from care_billing.models.extra_time import ExtraTimeRecord
from care_billing.models.invoice import ClientInvoice, InvoiceStatus, DELETABLE_STATUSES
from care_billing.models.payment import PaymentRecord
from care_billing.schemas.invoice import PaymentCreate, PaymentResult
from care_billing.services.visit_billing import money

logger = logging.getLogger(__name__)


async def _get_invoice(db: AsyncSession, invoice_id: UUID, lock: bool = False) -> ClientInvoice:
    query = (
        select(ClientInvoice)
        .options(selectinload(ClientInvoice.payment_records), selectinload(ClientInvoice.line_items))
        .where(ClientInvoice.id == invoice_id)
    )
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    invoice = result.scalar_one_or_none()
    if invoice is None:
        raise InvoiceNotFoundError()
    return invoice


async def record_payment(db: AsyncSession, invoice_id: UUID, payment: PaymentCreate) -> PaymentResult:
    """Record a payment; the invoice becomes paid once payments cover its total."""
    try:
        invoice = await _get_invoice(db, invoice_id, lock=True)
        if invoice.status == InvoiceStatus.cancelled.value:
            raise PaymentNotAllowedError("cannot record a payment against a cancelled invoice")
    except Exception:
        await db.rollback()
        raise

    record = PaymentRecord(
        payment_amount=money(payment.payment_amount),
        payment_method=payment.payment_method,
        payment_date=payment.payment_date or date.today(),
        transaction_id=payment.transaction_id,
        payment_reference=payment.payment_reference,
        notes=payment.notes,
    )
    invoice.payment_records.append(record)

    total_paid = sum((Decimal(p.payment_amount) for p in invoice.payment_records), Decimal("0"))
    is_paid = total_paid >= Decimal(invoice.total_amount or 0)
    if is_paid and invoice.status != InvoiceStatus.paid.value:
        invoice.status = InvoiceStatus.paid.value
        invoice.paid_date = record.payment_date

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info(f"Recorded payment of {record.payment_amount} on invoice {invoice.invoice_number} (paid={is_paid})")
    return PaymentResult(
        payment_id=record.id,
        invoice_id=invoice.id,
        invoice_status=invoice.status,
        total_paid=float(total_paid),
        is_paid=is_paid,
    )


async def release_sources(db: AsyncSession, invoice_id: UUID):
    """Clear invoiced flags on every source consumed by the invoice."""
    await db.execute(
        update(Booking)
        .where(Booking.invoice_id == invoice_id)
        .values(is_invoiced=False, invoice_id=None)
    )
    await db.execute(
        update(ExpenseClaim)
        .where(ExpenseClaim.invoice_id == invoice_id)
        .values(is_invoiced=False, invoice_id=None)
    )
    await db.execute(
        update(ExtraTimeRecord)
        .where(ExtraTimeRecord.invoice_id == invoice_id)
        .values(invoiced=False, invoice_id=None)
    )


async def delete_invoice(db: AsyncSession, invoice_id: UUID):
    """Delete an invoice and make its sources billable again."""
    try:
        invoice = await _get_invoice(db, invoice_id, lock=True)
        if invoice.status not in DELETABLE_STATUSES:
            raise InvoiceNotDeletableError(f"invoice is {invoice.status} and cannot be deleted")
        invoice_number = invoice.invoice_number
        await release_sources(db, invoice_id)
        await db.delete(invoice)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info(f"Deleted invoice {invoice_number}, sources released")
