import uuid
from sqlalchemy import Column, String, Date, Integer, Numeric, DateTime, Boolean, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from care_billing.database import Base


class ExtraTimeRecord(Base):
    """Time worked beyond a booking's scheduled duration."""

    __tablename__ = "extra_time_records"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    branch_id = Column(UUID(as_uuid=True), nullable=False)
    staff_id = Column(UUID(as_uuid=True), nullable=True)
    booking_id = Column(UUID(as_uuid=True), ForeignKey("bookings.id"), nullable=True)

    work_date = Column(Date, nullable=False, index=True)
    scheduled_duration_minutes = Column(Integer, default=0)
    actual_duration_minutes = Column(Integer)
    extra_time_minutes = Column(Integer, nullable=False)
    hourly_rate = Column(Numeric(10, 2), nullable=False, default=0)
    extra_time_rate = Column(Numeric(10, 2))
    total_cost = Column(Numeric(10, 2), nullable=False)
    reason = Column(Text)
    status = Column(String(20), default="approved")  # pending, approved, rejected

    # Billing
    invoiced = Column(Boolean, default=False, nullable=False)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("client_invoices.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<ExtraTimeRecord {self.id} {self.extra_time_minutes}min>"
