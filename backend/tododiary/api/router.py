"""
API router aggregator.
Includes all route modules.
"""
from fastapi import APIRouter
from tododiary.api import health, uploads, profile_image

api_router = APIRouter()

# Include route modules
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(uploads.router, prefix="/uploads", tags=["uploads"])
api_router.include_router(profile_image.router, prefix="/profile-image", tags=["profile-image"])
