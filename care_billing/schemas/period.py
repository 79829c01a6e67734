from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PeriodType(str, Enum):
    weekly = "weekly"
    fortnightly = "fortnightly"
    monthly = "monthly"
    custom = "custom"


class PeriodRequest(BaseModel):
    """Period selection as submitted by a caller."""
    period_type: PeriodType
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class PeriodDetails(BaseModel):
    """Concrete billing period; dates serialize as YYYY-MM-DD."""
    type: PeriodType
    label: str
    description: str
    start_date: date
    end_date: date
    days: int = Field(..., ge=1)
