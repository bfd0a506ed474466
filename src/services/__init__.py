"""Service layer for business logic."""

from .marketplace_service import ServerMarketplaceService
from .review_service import ReviewService

__all__ = [
    "ServerMarketplaceService",
    "ReviewService",
]
