"""
FastAPI Dependencies

Provides dependency injection for database sessions.
"""

from typing import Annotated
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from care_billing.database import get_db

# Type alias for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
