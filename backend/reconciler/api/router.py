"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from reconciler.api.routes import webhooks, bookings

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(webhooks.router)
api_router.include_router(bookings.router)
