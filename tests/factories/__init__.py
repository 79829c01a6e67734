"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation. Factories build ORM
rows without touching the database; tests add them to a session.
"""

from .client import ClientFactory, BRANCH_ID, ORGANIZATION_ID
from .rate import (
    RateScheduleFactory,
    InactiveRateScheduleFactory,
    ServiceRateFactory,
    RateAssignmentFactory,
)
from .booking import BookingFactory, visit_at, PERIOD_START, PERIOD_END
from .expense import ExpenseClaimFactory, TravelClaimFactory, ExtraTimeFactory
from .invoice import InvoiceFactory, LineItemFactory

__all__ = [
    "ClientFactory",
    "BRANCH_ID",
    "ORGANIZATION_ID",
    # Rates
    "RateScheduleFactory",
    "InactiveRateScheduleFactory",
    "ServiceRateFactory",
    "RateAssignmentFactory",
    # Billable sources
    "BookingFactory",
    "visit_at",
    "PERIOD_START",
    "PERIOD_END",
    "ExpenseClaimFactory",
    "TravelClaimFactory",
    "ExtraTimeFactory",
    # Invoices
    "InvoiceFactory",
    "LineItemFactory",
]
