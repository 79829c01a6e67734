import uuid
from sqlalchemy import Column, String, Date, Numeric, DateTime, Boolean, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from care_billing.database import Base

TRAVEL_CATEGORIES = ("travel_expenses", "mileage")

# Only approved claims and extra time can be invoiced
APPROVED_STATUS = "approved"


class ExpenseClaim(Base):
    """Approved expense claimed against a client, billable once."""

    __tablename__ = "expense_claims"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    branch_id = Column(UUID(as_uuid=True), nullable=False)
    staff_id = Column(UUID(as_uuid=True), nullable=True)
    booking_id = Column(UUID(as_uuid=True), ForeignKey("bookings.id"), nullable=True)

    category = Column(String(50), nullable=False, default="other")
    description = Column(Text, nullable=False, default="")
    amount = Column(Numeric(10, 2), nullable=False)
    expense_date = Column(Date, nullable=False, index=True)
    status = Column(String(20), default="approved")  # pending, approved, rejected

    # Billing
    is_invoiced = Column(Boolean, default=False, nullable=False)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("client_invoices.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @property
    def group(self) -> str:
        """Derived grouping: booking-linked, travel or other."""
        if self.booking_id is not None:
            return "booking_linked"
        if self.category in TRAVEL_CATEGORIES:
            return "travel"
        return "other"

    def __repr__(self):
        return f"<ExpenseClaim {self.id} {self.category} {self.amount}>"
