"""
Billing API - period resolution, bulk invoice generation, expense
reconciliation, payments and invoice deletion.

Tenant context (branch and organization) is passed explicitly by the caller.
"""

from datetime import date
from typing import Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Query, status

from care_billing.api.deps import DbSession
from care_billing.exceptions import BillingEngineError, NotFoundError, engine_error_to_http
from care_billing.models.client import Client
from care_billing.models.invoice import ClientInvoice
from care_billing.schemas.eligibility import ClientBillableSources, ClientEligibility, UninvoicedBooking
from care_billing.schemas.invoice import (
    AddExpensesRequest,
    BulkGenerationPreview,
    BulkGenerationProgress,
    BulkGenerationRequest,
    BulkGenerationResult,
    CreateClientInvoiceRequest,
    PaymentCreate,
    PaymentResult,
    ReconciledInvoiceResponse,
    WrittenInvoice,
)
from care_billing.schemas.period import PeriodDetails, PeriodRequest, PeriodType
from care_billing.schemas.reconciliation import ReconcileRequest, ReconciliationResult
from care_billing.services import bulk_generation, eligibility, invoice_lifecycle, invoice_writer
from care_billing.services.period_resolver import resolve_period, resolve_request
from care_billing.services.reconciler import reconcile, require_selection

logger = logging.getLogger(__name__)
router = APIRouter()


def _resolve(period: PeriodRequest) -> PeriodDetails:
    try:
        return resolve_request(period)
    except BillingEngineError as e:
        raise engine_error_to_http(e)


def _period_query(period_type: PeriodType, start_date: Optional[date], end_date: Optional[date]) -> PeriodDetails:
    return _resolve(PeriodRequest(period_type=period_type, start_date=start_date, end_date=end_date))


async def _get_client(db, client_id: UUID) -> Client:
    client = await db.get(Client, client_id)
    if not client:
        raise NotFoundError("Client", str(client_id))
    return client


def _check_selection(request: ReconcileRequest):
    try:
        require_selection(request.manual_entries, request.selected_claim_ids, request.selected_extra_time_ids)
    except BillingEngineError as e:
        raise engine_error_to_http(e)


def _reconciled_response(reconciliation: ReconciliationResult, written: WrittenInvoice) -> ReconciledInvoiceResponse:
    # Totals and drops reflect what was written after the in-transaction re-check
    return ReconciledInvoiceResponse(
        invoice=written,
        totals=written.totals or reconciliation.totals,
        dropped_expense_ids=reconciliation.dropped_expense_ids + written.dropped_expense_ids,
        dropped_extra_time_ids=reconciliation.dropped_extra_time_ids + written.dropped_extra_time_ids,
    )


@router.get("/periods/resolve", response_model=PeriodDetails)
async def resolve_billing_period(
    period_type: PeriodType = Query(..., description="weekly, fortnightly, monthly or custom"),
    start_date: Optional[date] = Query(None, description="Custom period start (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Custom period end (YYYY-MM-DD)"),
):
    """Resolve a period selection into a concrete date range."""
    return _period_query(period_type, start_date, end_date)


@router.get("/branches/{branch_id}/eligibility", response_model=list[ClientEligibility])
async def branch_eligibility(
    branch_id: UUID,
    db: DbSession,
    period_type: PeriodType = Query(...),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
):
    """Clients with bookings in the period and whether each can be billed."""
    period = _period_query(period_type, start_date, end_date)
    return await eligibility.evaluate_branch(db, branch_id, period)


@router.post("/bulk/preview", response_model=BulkGenerationPreview)
async def preview_bulk_generation(request: BulkGenerationRequest, db: DbSession):
    """Preview a bulk run. Nothing is written."""
    period = _resolve(request.period)
    return await bulk_generation.preview(db, period, request.branch_id)


@router.post("/bulk/generate", response_model=BulkGenerationResult)
async def run_bulk_generation(request: BulkGenerationRequest, db: DbSession):
    """Generate one invoice per eligible client for the period."""
    period = _resolve(request.period)

    def log_progress(progress: BulkGenerationProgress):
        logger.debug(f"Bulk generation {progress.current}/{progress.total}: {progress.current_client}")

    return await bulk_generation.generate(
        db,
        period,
        request.branch_id,
        request.organization_id,
        on_progress=log_progress,
    )


@router.get("/clients/{client_id}/billable-sources", response_model=ClientBillableSources)
async def client_billable_sources(
    client_id: UUID,
    db: DbSession,
    period_type: PeriodType = Query(...),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
):
    """Expense claims and extra time for a client, invoiced rows included."""
    period = _period_query(period_type, start_date, end_date)
    await _get_client(db, client_id)
    return await eligibility.evaluate_client(db, client_id, period)


@router.get("/clients/{client_id}/uninvoiced-bookings", response_model=list[UninvoicedBooking])
async def client_uninvoiced_bookings(client_id: UUID, db: DbSession):
    """Completed bookings not yet on any invoice."""
    await _get_client(db, client_id)
    return await eligibility.list_uninvoiced_bookings(db, client_id)


@router.post(
    "/clients/{client_id}/invoices",
    response_model=ReconciledInvoiceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_client_invoice(client_id: UUID, request: CreateClientInvoiceRequest, db: DbSession):
    """Reconcile manual entries, claims and extra time into a new invoice."""
    _check_selection(request)
    period = _resolve(request.period)
    await _get_client(db, client_id)
    try:
        catalog = await eligibility.evaluate_client(db, client_id, period)
        reconciliation = reconcile(
            request.manual_entries,
            request.selected_claim_ids,
            request.selected_extra_time_ids,
            catalog,
        )
        written = await invoice_writer.write_invoice(
            db,
            client_id,
            request.branch_id,
            request.organization_id,
            period,
            reconciliation=reconciliation,
        )
    except BillingEngineError as e:
        raise engine_error_to_http(e)

    return _reconciled_response(reconciliation, written)


@router.post("/invoices/{invoice_id}/expenses", response_model=ReconciledInvoiceResponse)
async def add_invoice_expenses(invoice_id: UUID, request: AddExpensesRequest, db: DbSession):
    """Reconcile more expenses onto an existing editable invoice."""
    _check_selection(request)
    invoice = await db.get(ClientInvoice, invoice_id)
    if not invoice:
        raise NotFoundError("Invoice", str(invoice_id))

    try:
        if request.period is not None:
            period = resolve_request(request.period)
        else:
            period = resolve_period(PeriodType.custom, (invoice.start_date, invoice.end_date))
        catalog = await eligibility.evaluate_client(db, invoice.client_id, period)
        reconciliation = reconcile(
            request.manual_entries,
            request.selected_claim_ids,
            request.selected_extra_time_ids,
            catalog,
        )
        written = await invoice_writer.add_to_invoice(db, invoice_id, reconciliation)
    except BillingEngineError as e:
        raise engine_error_to_http(e, str(invoice_id))

    return _reconciled_response(reconciliation, written)


@router.post(
    "/invoices/{invoice_id}/payments",
    response_model=PaymentResult,
    status_code=status.HTTP_201_CREATED,
)
async def record_invoice_payment(invoice_id: UUID, payment: PaymentCreate, db: DbSession):
    """Record a payment against an invoice."""
    try:
        return await invoice_lifecycle.record_payment(db, invoice_id, payment)
    except BillingEngineError as e:
        raise engine_error_to_http(e, str(invoice_id))


@router.delete("/invoices/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invoice(invoice_id: UUID, db: DbSession):
    """Delete a draft, pending or cancelled invoice and release its sources."""
    try:
        await invoice_lifecycle.delete_invoice(db, invoice_id)
    except BillingEngineError as e:
        raise engine_error_to_http(e, str(invoice_id))
