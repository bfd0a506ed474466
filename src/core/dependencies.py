"""Common dependencies for FastAPI endpoints."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request

from .database import ConnectionManager
from .exceptions import UnauthorizedError
from services.marketplace_service import ServerMarketplaceService
from services.review_service import ReviewService


@dataclass(frozen=True)
class CallerIdentity:
    """Caller identity forwarded by the authentication layer in request headers.

    Credentials are not checked here; the presence of ``X-User-Id`` is taken
    as proof of authentication.
    """

    id: str
    email: Optional[str] = None
    name: Optional[str] = None


async def get_optional_caller(
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
) -> Optional[CallerIdentity]:
    """Caller identity if the request carries one, else None."""
    if not x_user_id:
        return None
    return CallerIdentity(id=x_user_id, email=x_user_email or None, name=x_user_name or None)


async def require_caller(
    caller: Optional[CallerIdentity] = Depends(get_optional_caller),
) -> CallerIdentity:
    """Caller identity, or 401 when the id header is missing."""
    if caller is None:
        raise UnauthorizedError("Authentication required")
    return caller


def get_connection(request: Request) -> ConnectionManager:
    """The application's connection manager."""
    return request.app.state.connection


def get_marketplace_service(
    connection: ConnectionManager = Depends(get_connection),
) -> ServerMarketplaceService:
    return ServerMarketplaceService(connection)


def get_review_service(
    connection: ConnectionManager = Depends(get_connection),
) -> ReviewService:
    return ReviewService(connection)
