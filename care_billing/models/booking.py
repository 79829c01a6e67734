"""
Booking model for scheduled care visits.
"""

import uuid
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from care_billing.database import Base


class Booking(Base):
    """A care visit booked for a client at a branch."""

    __tablename__ = "bookings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    branch_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    organization_id = Column(UUID(as_uuid=True), nullable=True)
    staff_id = Column(UUID(as_uuid=True), nullable=True)

    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False)
    actual_start_time = Column(DateTime(timezone=True))
    actual_end_time = Column(DateTime(timezone=True))

    # assigned, in_progress, done, completed, cancelled
    status = Column(String(20), default="assigned")

    # Billing
    is_invoiced = Column(Boolean, default=False, nullable=False)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("client_invoices.id"), nullable=True)

    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    client = relationship("Client", back_populates="bookings")

    def __repr__(self):
        return f"<Booking {self.id} for {self.client_id} at {self.start_time}>"
