import uuid
from decimal import Decimal
from enum import Enum

from sqlalchemy import Column, String, Date, Integer, Numeric, DateTime, Boolean, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from care_billing.database import Base


class InvoiceStatus(str, Enum):
    draft = "draft"
    pending = "pending"
    ready_to_charge = "ready_to_charge"
    confirmed = "confirmed"
    locked = "locked"
    sent = "sent"
    paid = "paid"
    overdue = "overdue"
    cancelled = "cancelled"


DELETABLE_STATUSES = {InvoiceStatus.draft.value, InvoiceStatus.pending.value, InvoiceStatus.cancelled.value}
EDITABLE_STATUSES = {InvoiceStatus.draft.value, InvoiceStatus.pending.value, InvoiceStatus.ready_to_charge.value}


class ClientInvoice(Base):
    """Invoice issued to a client for a billing period."""

    __tablename__ = "client_invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    invoice_number = Column(String(50), unique=True, index=True, nullable=False)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    branch_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    organization_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    description = Column(Text, default="")
    status = Column(String(20), default=InvoiceStatus.draft.value, nullable=False)

    # Totals
    net_amount = Column(Numeric(10, 2), default=0)
    vat_amount = Column(Numeric(10, 2), default=0)
    total_amount = Column(Numeric(10, 2), default=0)

    # Dates
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    start_date = Column(Date)
    end_date = Column(Date)
    paid_date = Column(Date)

    # Origin
    invoice_type = Column(String(20), default="manual")  # manual, automatic
    invoice_method = Column(String(20))  # weekly, fortnightly, monthly, custom
    generated_from_booking = Column(Boolean, default=False)
    booked_time_minutes = Column(Integer, default=0)

    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    line_items = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineItem.position",
    )
    payment_records = relationship(
        "PaymentRecord",
        back_populates="invoice",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<ClientInvoice {self.invoice_number}>"

    def calculate_totals(self):
        """Recalculate net, VAT and total from line items."""
        net = sum((Decimal(item.line_total or 0) for item in self.line_items), Decimal("0"))
        vat = sum((Decimal(item.vat_amount or 0) for item in self.line_items), Decimal("0"))
        self.net_amount = net
        self.vat_amount = vat
        self.total_amount = net + vat


class InvoiceLineItem(Base):
    """Invoice line: one visit, manual expense, expense claim or extra-time record.

    The source_* columns are unique so a billable source can be referenced by
    at most one line across every invoice.
    """

    __tablename__ = "invoice_line_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("client_invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, default=0)

    line_type = Column(String(20), nullable=False)  # visit, manual_expense, expense_claim, extra_time
    description = Column(Text, nullable=False, default="")
    quantity = Column(Numeric(10, 2), default=1)
    unit_price = Column(Numeric(10, 2), default=0)
    line_total = Column(Numeric(10, 2), nullable=False, default=0)
    vat_amount = Column(Numeric(10, 2), default=0)

    # Visit lines
    visit_date = Column(Date)
    duration_minutes = Column(Integer)
    rate_type_applied = Column(String(40))
    bank_holiday_multiplier_applied = Column(Numeric(4, 2))
    day_type = Column(String(20))  # weekday, bank_holiday

    # Manual expense lines
    admin_cost_percentage = Column(Numeric(5, 2))
    pay_staff = Column(Boolean, default=False)
    staff_id = Column(UUID(as_uuid=True), nullable=True)
    pay_staff_amount = Column(Numeric(10, 2))

    # Consumed sources
    source_booking_id = Column(UUID(as_uuid=True), ForeignKey("bookings.id"), unique=True, nullable=True)
    source_expense_id = Column(UUID(as_uuid=True), ForeignKey("expense_claims.id"), unique=True, nullable=True)
    source_extra_time_id = Column(UUID(as_uuid=True), ForeignKey("extra_time_records.id"), unique=True, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    invoice = relationship("ClientInvoice", back_populates="line_items")
