from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from care_billing.schemas.eligibility import ClientEligibility
from care_billing.schemas.period import PeriodRequest
from care_billing.schemas.reconciliation import ReconcileRequest, ReconciliationTotals


class BulkGenerationProgress(BaseModel):
    current: int
    total: int
    current_client: Optional[str] = None


class GeneratedInvoiceSummary(BaseModel):
    client_id: UUID
    client_name: str
    invoice_number: str
    amount: float
    line_item_count: int


class GenerationError(BaseModel):
    client_id: Optional[UUID] = None
    client_name: str
    booking_count: int
    reason: str


class BulkGenerationResult(BaseModel):
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    total_amount: float = 0
    invoices: list[GeneratedInvoiceSummary] = []
    errors: list[GenerationError] = []
    message: Optional[str] = None

    model_config = {"frozen": True}


class BulkGenerationPreview(BaseModel):
    period_start: date
    period_end: date
    eligible: list[ClientEligibility] = []
    skipped: list[ClientEligibility] = []

    @property
    def total_bookings(self) -> int:
        return sum(c.booking_count for c in self.eligible)


class BulkGenerationRequest(BaseModel):
    period: PeriodRequest
    branch_id: UUID
    organization_id: UUID


class WrittenInvoice(BaseModel):
    invoice_id: UUID
    invoice_number: str
    amount: float
    line_item_count: int
    # Reconciled writes: totals of the lines actually written and the
    # sources dropped by the in-transaction re-check
    totals: Optional[ReconciliationTotals] = None
    dropped_expense_ids: list[UUID] = []
    dropped_extra_time_ids: list[UUID] = []


class CreateClientInvoiceRequest(ReconcileRequest):
    """Reconcile sources into a new invoice for a client."""
    period: PeriodRequest
    branch_id: UUID
    organization_id: UUID


class PaymentCreate(BaseModel):
    payment_amount: float = Field(..., gt=0)
    payment_method: str = Field(..., min_length=1)
    payment_date: Optional[date] = None
    transaction_id: Optional[str] = None
    payment_reference: Optional[str] = None
    notes: Optional[str] = None


class PaymentResult(BaseModel):
    payment_id: UUID
    invoice_id: UUID
    invoice_status: str
    total_paid: float
    is_paid: bool


class AddExpensesRequest(ReconcileRequest):
    """Reconcile sources onto an existing invoice; defaults to the invoice's period."""
    period: Optional[PeriodRequest] = None


class ReconciledInvoiceResponse(BaseModel):
    invoice: WrittenInvoice
    totals: ReconciliationTotals
    dropped_expense_ids: list[UUID] = []
    dropped_extra_time_ids: list[UUID] = []
