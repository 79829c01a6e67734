from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class ManualExpenseEntry(BaseModel):
    """User-entered expense line not backed by an expense claim."""
    expense_type: str = Field(..., min_length=1)
    description: str = ""
    date: Optional[str] = None
    amount: Decimal = Field(..., gt=0)
    admin_cost_percentage: Decimal = Field(Decimal("0"), ge=0, le=100)
    pay_staff: bool = False
    staff_id: Optional[UUID] = None
    pay_staff_amount: Optional[Decimal] = None

    @model_validator(mode="after")
    def check_staff_payment(self):
        if self.pay_staff:
            if self.staff_id is None:
                raise ValueError("Staff is required when pay_staff is set")
            if not self.pay_staff_amount or self.pay_staff_amount <= 0:
                raise ValueError("pay_staff_amount is required when pay_staff is set")
        return self


class ReconciledLine(BaseModel):
    """Candidate invoice line produced by reconciliation."""
    line_type: str  # manual_expense, expense_claim, extra_time
    description: str
    quantity: Decimal = Decimal("1")
    unit_price: Decimal
    line_total: Decimal
    admin_cost_percentage: Optional[Decimal] = None
    pay_staff: bool = False
    staff_id: Optional[UUID] = None
    pay_staff_amount: Optional[Decimal] = None
    source_expense_id: Optional[UUID] = None
    source_extra_time_id: Optional[UUID] = None


class ReconciliationTotals(BaseModel):
    manual: Decimal = Decimal("0")
    claims: Decimal = Decimal("0")
    extra_time: Decimal = Decimal("0")
    grand: Decimal = Decimal("0")


class ReconciliationResult(BaseModel):
    line_items: list[ReconciledLine]
    totals: ReconciliationTotals
    source_expense_ids: list[UUID] = []
    source_extra_time_ids: list[UUID] = []
    # Stale or unknown ids dropped during resolution
    dropped_expense_ids: list[UUID] = []
    dropped_extra_time_ids: list[UUID] = []

    @property
    def total(self) -> Decimal:
        return self.totals.grand


class ReconcileRequest(BaseModel):
    """Body for the add-expenses flow."""
    manual_entries: list[ManualExpenseEntry] = []
    selected_claim_ids: list[UUID] = []
    selected_extra_time_ids: list[UUID] = []
