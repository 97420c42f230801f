"""Main API router that aggregates all route modules."""

from fastapi import APIRouter

from creativehub.api import admin, auth, health, otp

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(otp.router, prefix="/otp", tags=["otp"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
