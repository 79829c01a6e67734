import uuid
from sqlalchemy import Column, String, Date
from sqlalchemy.dialects.postgresql import UUID

from care_billing.database import Base


class BankHoliday(Base):
    """Registered bank holiday; visits on these dates use holiday rates."""

    __tablename__ = "bank_holidays"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(100), nullable=False)
    registered_on = Column(Date, nullable=False, index=True)
    status = Column(String(20), default="Active")
