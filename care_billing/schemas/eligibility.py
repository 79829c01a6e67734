from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from care_billing.models.expense import APPROVED_STATUS


class ClientEligibility(BaseModel):
    """Bulk-generation candidate for one client."""
    client_id: UUID
    client_name: str
    booking_count: int
    has_rate_basis: bool


class ExpenseClaimView(BaseModel):
    id: UUID
    category: str
    description: str = ""
    amount: float
    expense_date: date
    staff_id: Optional[UUID] = None
    booking_id: Optional[UUID] = None
    group: str
    is_invoiced: bool
    status: Optional[str] = APPROVED_STATUS

    @property
    def selectable(self) -> bool:
        return not self.is_invoiced and self.status == APPROVED_STATUS

    class Config:
        from_attributes = True


class ExtraTimeView(BaseModel):
    id: UUID
    booking_id: Optional[UUID] = None
    staff_id: Optional[UUID] = None
    work_date: date
    extra_time_minutes: int
    total_cost: float
    invoiced: bool
    status: Optional[str] = APPROVED_STATUS

    @property
    def selectable(self) -> bool:
        return not self.invoiced and self.status == APPROVED_STATUS

    class Config:
        from_attributes = True


class ClientBillableSources(BaseModel):
    """Expense claims and extra time for a client in a period.

    Already-invoiced rows are included so they can be shown as disabled.
    """
    client_id: UUID
    booking_linked: list[ExpenseClaimView] = []
    travel: list[ExpenseClaimView] = []
    other: list[ExpenseClaimView] = []
    extra_time: list[ExtraTimeView] = []

    @property
    def expenses(self) -> list[ExpenseClaimView]:
        return self.booking_linked + self.travel + self.other


class UninvoicedBooking(BaseModel):
    id: UUID
    client_id: UUID
    client_name: str
    start_time: str
    end_time: str
    status: str
    days_since_service: int
