import uuid
from sqlalchemy import Column, String, Date, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from care_billing.database import Base


class PaymentRecord(Base):
    """Payment recorded against a client invoice."""

    __tablename__ = "payment_records"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("client_invoices.id", ondelete="CASCADE"), nullable=False, index=True)

    payment_amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String(30), nullable=False)  # bank_transfer, card, cash, cheque, direct_debit
    payment_date = Column(Date, nullable=False)
    transaction_id = Column(String(100))
    payment_reference = Column(String(100))
    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    invoice = relationship("ClientInvoice", back_populates="payment_records")
