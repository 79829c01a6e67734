from care_billing.schemas.period import PeriodType, PeriodRequest, PeriodDetails
from care_billing.schemas.eligibility import (
    ClientEligibility,
    ClientBillableSources,
    ExpenseClaimView,
    ExtraTimeView,
    UninvoicedBooking,
)
from care_billing.schemas.reconciliation import (
    ManualExpenseEntry,
    ReconciledLine,
    ReconciliationTotals,
    ReconciliationResult,
    ReconcileRequest,
)
from care_billing.schemas.invoice import (
    BulkGenerationProgress,
    BulkGenerationPreview,
    BulkGenerationRequest,
    BulkGenerationResult,
    GeneratedInvoiceSummary,
    GenerationError,
    WrittenInvoice,
    CreateClientInvoiceRequest,
    AddExpensesRequest,
    ReconciledInvoiceResponse,
    PaymentCreate,
    PaymentResult,
)
