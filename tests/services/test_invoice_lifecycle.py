"""
Tests for payments and invoice deletion.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from care_billing.exceptions import InvoiceNotDeletableError, InvoiceNotFoundError, PaymentNotAllowedError
from care_billing.models.booking import Booking
from care_billing.models.expense import ExpenseClaim
from care_billing.models.extra_time import ExtraTimeRecord
from care_billing.models.invoice import ClientInvoice, InvoiceLineItem
from care_billing.schemas.invoice import PaymentCreate
from care_billing.services.eligibility import evaluate_client
from care_billing.services.invoice_lifecycle import delete_invoice, record_payment
from care_billing.services.invoice_writer import write_invoice
from care_billing.services.reconciler import reconcile

from tests.factories import (
    BRANCH_ID,
    ORGANIZATION_ID,
    ClientFactory,
    ExpenseClaimFactory,
    ExtraTimeFactory,
    InvoiceFactory,
)


async def make_invoice(db, **kwargs):
    client = ClientFactory()
    db.add(client)
    await db.flush()
    invoice = InvoiceFactory(client_id=client.id, **kwargs)
    db.add(invoice)
    await db.commit()
    return invoice.id


class TestRecordPayment:

    @pytest.mark.asyncio
    async def test_partial_payment_keeps_status(self, test_db):
        invoice_id = await make_invoice(test_db, status="sent")

        result = await record_payment(test_db, invoice_id, PaymentCreate(payment_amount=10, payment_method="card"))

        assert not result.is_paid
        assert result.total_paid == 10.0
        assert result.invoice_status == "sent"

    @pytest.mark.asyncio
    async def test_full_payment_marks_paid(self, test_db):
        invoice_id = await make_invoice(test_db, status="sent")
        await record_payment(test_db, invoice_id, PaymentCreate(payment_amount=10, payment_method="card"))

        result = await record_payment(
            test_db,
            invoice_id,
            PaymentCreate(payment_amount=15, payment_method="bank_transfer", payment_date=date(2026, 3, 20)),
        )

        assert result.is_paid
        assert result.total_paid == 25.0
        invoice = await test_db.get(ClientInvoice, invoice_id)
        assert invoice.status == "paid"
        assert invoice.paid_date == date(2026, 3, 20)

    @pytest.mark.asyncio
    async def test_cancelled_invoice_rejects_payment(self, test_db):
        invoice_id = await make_invoice(test_db, status="cancelled")
        with pytest.raises(PaymentNotAllowedError):
            await record_payment(test_db, invoice_id, PaymentCreate(payment_amount=5, payment_method="cash"))

    @pytest.mark.asyncio
    async def test_missing_invoice(self, test_db):
        with pytest.raises(InvoiceNotFoundError):
            await record_payment(test_db, uuid.uuid4(), PaymentCreate(payment_amount=5, payment_method="cash"))


class TestDeleteInvoice:

    @pytest.mark.asyncio
    async def test_delete_releases_bookings(self, test_db, period, billable_client):
        client_id = billable_client.id
        written = await write_invoice(test_db, client_id, BRANCH_ID, ORGANIZATION_ID, period)

        await delete_invoice(test_db, written.invoice_id)

        assert await test_db.get(ClientInvoice, written.invoice_id) is None
        lines = await test_db.execute(select(func.count(InvoiceLineItem.id)))
        assert lines.scalar() == 0
        rows = (await test_db.execute(select(Booking).where(Booking.client_id == client_id))).scalars().all()
        assert not any(b.is_invoiced for b in rows)
        assert all(b.invoice_id is None for b in rows)

        # Released work can be invoiced again
        again = await write_invoice(test_db, client_id, BRANCH_ID, ORGANIZATION_ID, period)
        assert again.line_item_count == 2

    @pytest.mark.asyncio
    async def test_delete_releases_claims_and_extra_time(self, test_db, period):
        client = ClientFactory()
        test_db.add(client)
        await test_db.flush()
        claim = ExpenseClaimFactory(client_id=client.id, amount=Decimal("9.99"))
        extra = ExtraTimeFactory(client_id=client.id)
        test_db.add_all([claim, extra])
        await test_db.commit()
        client_id, claim_id, extra_id = client.id, claim.id, extra.id

        catalog = await evaluate_client(test_db, client_id, period)
        written = await write_invoice(
            test_db, client_id, BRANCH_ID, ORGANIZATION_ID, period,
            reconciliation=reconcile([], [claim_id], [extra_id], catalog),
        )
        await delete_invoice(test_db, written.invoice_id)

        claim = (await test_db.execute(select(ExpenseClaim).where(ExpenseClaim.id == claim_id))).scalar_one()
        extra = (await test_db.execute(select(ExtraTimeRecord).where(ExtraTimeRecord.id == extra_id))).scalar_one()
        assert not claim.is_invoiced and claim.invoice_id is None
        assert not extra.invoiced and extra.invoice_id is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["sent", "paid", "confirmed"])
    async def test_issued_invoices_cannot_be_deleted(self, test_db, status):
        invoice_id = await make_invoice(test_db, status=status)

        with pytest.raises(InvoiceNotDeletableError):
            await delete_invoice(test_db, invoice_id)

        assert await test_db.get(ClientInvoice, invoice_id) is not None

    @pytest.mark.asyncio
    async def test_missing_invoice(self, test_db):
        with pytest.raises(InvoiceNotFoundError):
            await delete_invoice(test_db, uuid.uuid4())
