"""
API v1 package.

Contains versioned API routes for the credential verification API.
"""

from fastapi import APIRouter

from src.api.v1.identity import router as identity_router
from src.api.v1.license import router as license_router
from src.api.v1.routes import router as registrations_router

router = APIRouter()
router.include_router(registrations_router)
router.include_router(license_router)
router.include_router(identity_router)

__all__ = ["router"]
