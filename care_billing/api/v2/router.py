from fastapi import APIRouter
from care_billing.api.v2 import billing

api_router = APIRouter()

api_router.include_router(billing.router, prefix="/billing", tags=["billing"])
