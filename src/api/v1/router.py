"""
Marketplace API v1 router.
"""

from fastapi import APIRouter

from .endpoints import health, marketplace

# Create the main API router
api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(marketplace.router)
