"""API route registration.

Aggregates all API routers into a single router
for inclusion in the main application.
"""

from fastapi import APIRouter

from passgate.api.routes.auth import router as auth_router
from passgate.api.routes.passkey import router as passkey_router
from passgate.api.routes.system import router as system_router

# Main API router
api_router = APIRouter()

# Authentication
api_router.include_router(auth_router)
api_router.include_router(passkey_router)
# System
api_router.include_router(system_router, tags=["System"])

__all__ = ["api_router"]
