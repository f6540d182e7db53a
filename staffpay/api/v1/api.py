from fastapi import APIRouter
from staffpay.api.v1.endpoints import entries, collaborators, payments, stats

api_router = APIRouter()

api_router.include_router(entries.router, prefix="/entries", tags=["entries"])
api_router.include_router(collaborators.router, prefix="/collaborators", tags=["collaborators"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(stats.router, prefix="/stats", tags=["stats"])
