"""Client rate bases.

A client can be priced through two independent mechanisms: an ad-hoc rate
schedule held directly against the client, or an assignment to one of the
branch's service rates. Either one, when active, makes the client eligible
for automatic invoice generation.
"""

import uuid
from sqlalchemy import Column, String, Date, Time, Numeric, DateTime, Boolean, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from care_billing.database import Base


class ClientRateSchedule(Base):
    """Ad-hoc rate schedule agreed for a single client."""

    __tablename__ = "client_rate_schedules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)

    is_active = Column(Boolean, default=True, nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)

    # Coverage: ["monday", "tue", ..., "bank_holiday"]
    days_covered = Column(JSON, default=list)
    time_from = Column(Time, nullable=False)
    time_until = Column(Time, nullable=False)

    # rate_per_minutes_pro_rata, hourly_rate, rate_per_hour, daily_flat_rate, flat_rate
    charge_type = Column(String(40), default="rate_per_minutes_pro_rata")
    base_rate = Column(Numeric(10, 2), nullable=False)
    rate_15_minutes = Column(Numeric(10, 2))
    rate_30_minutes = Column(Numeric(10, 2))
    rate_45_minutes = Column(Numeric(10, 2))
    rate_60_minutes = Column(Numeric(10, 2))
    bank_holiday_multiplier = Column(Numeric(4, 2), default=1)
    is_vatable = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    client = relationship("Client", back_populates="rate_schedules")


class ServiceRate(Base):
    """Branch-level service rate that clients can be assigned to."""

    __tablename__ = "service_rates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    branch_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    service_name = Column(String(255), nullable=False)
    service_code = Column(String(50))
    rate_type = Column(String(40), default="hourly_rate")
    amount = Column(Numeric(10, 2), nullable=False)
    applicable_days = Column(JSON, default=list)
    effective_from = Column(Date, nullable=False)
    effective_to = Column(Date, nullable=True)
    is_vatable = Column(Boolean, default=False)
    status = Column(String(20), default="active")  # active, inactive

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class ClientRateAssignment(Base):
    """Assignment of a branch service rate to a client."""

    __tablename__ = "client_rate_assignments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    service_rate_id = Column(UUID(as_uuid=True), ForeignKey("service_rates.id"), nullable=False)

    is_active = Column(Boolean, default=True, nullable=False, index=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    client = relationship("Client", back_populates="rate_assignments")
    service_rate = relationship("ServiceRate")
