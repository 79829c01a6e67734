# Services module
from care_billing.services.period_resolver import resolve_period, resolve_request
from care_billing.services.visit_billing import VisitBillingCalculator, RateBasis, Visit
from care_billing.services.reconciler import reconcile
from care_billing.services.invoice_writer import write_invoice, add_to_invoice
from care_billing.services.bulk_generation import BulkGenerationRun

__all__ = [
    "resolve_period",
    "resolve_request",
    "VisitBillingCalculator",
    "RateBasis",
    "Visit",
    "reconcile",
    "write_invoice",
    "add_to_invoice",
    "BulkGenerationRun",
]
