"""Marketplace API endpoints.

Listing, ownership-checked create/update/delete, install tracking and reviews
for marketplace server entries. Every response uses the
``{success, data?, error?}`` envelope.

Mounted at ``API_PREFIX`` (``/api/marketplace`` by default).
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from core.dependencies import (
    CallerIdentity,
    get_marketplace_service,
    get_optional_caller,
    get_review_service,
    require_caller,
)
from core.exceptions import (
    LOOKUP_STATUS_CODES,
    MUTATION_STATUS_CODES,
    REVIEW_STATUS_CODES,
    BaseAPIException,
    status_for,
)
from schemas.marketplace import (
    ApiResponse,
    MarketplaceServer,
    MarketplaceServerCreate,
    MarketplaceServerUpdate,
    MarketplaceStats,
    ReviewCreate,
    ServerReview,
)
from services.marketplace_service import ServerMarketplaceService, annotate_ownership
from services.review_service import ReviewService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["marketplace"])


def error_response(status_code: int, message: str) -> JSONResponse:
    """Build an error envelope response."""
    body = ApiResponse(success=False, error=message).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


def _caller_id(caller: Optional[CallerIdentity]) -> Optional[str]:
    return caller.id if caller else None


# ── Browse / List ────────────────────────────────────────────────────────────


@router.get(
    "/servers",
    response_model=ApiResponse[List[MarketplaceServer]],
    response_model_exclude_none=True,
)
async def list_servers(
    caller: Optional[CallerIdentity] = Depends(get_optional_caller),
    service: ServerMarketplaceService = Depends(get_marketplace_service),
):
    """List public marketplace servers, newest first."""
    logger.debug("Fetching all marketplace servers")
    try:
        servers = await service.list_public()
    except BaseAPIException as exc:
        logger.error(f"Error fetching marketplace servers: {exc.message}")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message or "Failed to fetch servers")

    logger.info(f"Returning {len(servers)} servers to client")
    return ApiResponse(data=[annotate_ownership(s, _caller_id(caller)) for s in servers])


@router.get(
    "/servers/my",
    response_model=ApiResponse[List[MarketplaceServer]],
    response_model_exclude_none=True,
)
async def list_my_servers(
    caller: CallerIdentity = Depends(require_caller),
    service: ServerMarketplaceService = Depends(get_marketplace_service),
):
    """List every server owned by the caller."""
    logger.debug(f"Fetching user servers for {caller.id}")
    try:
        servers = await service.list_by_owner(caller.id)
    except BaseAPIException as exc:
        logger.error(f"Error fetching user servers: {exc.message}")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message or "Failed to fetch your servers")

    return ApiResponse(data=[annotate_ownership(s, caller.id) for s in servers])


@router.get(
    "/servers/stats",
    response_model=ApiResponse[MarketplaceStats],
    response_model_exclude_none=True,
)
async def get_stats(
    caller: Optional[CallerIdentity] = Depends(get_optional_caller),
    service: ServerMarketplaceService = Depends(get_marketplace_service),
):
    """Marketplace counters; ``userServers`` is filled for identified callers."""
    try:
        stats = await service.get_stats(_caller_id(caller))
    except BaseAPIException as exc:
        logger.error(f"Error fetching marketplace stats: {exc.message}")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message or "Failed to fetch stats")
    return ApiResponse(data=stats)


# ── Get Item ─────────────────────────────────────────────────────────────────


@router.get(
    "/servers/{server_id}",
    response_model=ApiResponse[MarketplaceServer],
    response_model_exclude_none=True,
)
async def get_server(
    server_id: str,
    caller: Optional[CallerIdentity] = Depends(get_optional_caller),
    service: ServerMarketplaceService = Depends(get_marketplace_service),
):
    """Get a single marketplace server by ID."""
    logger.debug(f"Fetching server {server_id}")
    try:
        server = await service.get_by_id(server_id)
    except BaseAPIException as exc:
        logger.error(f"Error fetching server: {exc.message}")
        return error_response(status_for(exc, LOOKUP_STATUS_CODES), exc.message or "Failed to fetch server")

    if server is None:
        return error_response(status.HTTP_404_NOT_FOUND, "Server not found")
    return ApiResponse(data=annotate_ownership(server, _caller_id(caller)))


# ── Create / Update / Delete ─────────────────────────────────────────────────


@router.post(
    "/servers",
    response_model=ApiResponse[MarketplaceServer],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_server(
    payload: MarketplaceServerCreate,
    caller: CallerIdentity = Depends(require_caller),
    service: ServerMarketplaceService = Depends(get_marketplace_service),
):
    """Publish a new server owned by the caller."""
    logger.debug(f"Creating server for {caller.id}")
    try:
        server = await service.create(payload, caller.id, caller.email, caller.name)
    except BaseAPIException as exc:
        logger.error(f"Error creating server: {exc.message}")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message or "Failed to create server")

    return ApiResponse(data=annotate_ownership(server, caller.id))


@router.put(
    "/servers/{server_id}",
    response_model=ApiResponse[MarketplaceServer],
    response_model_exclude_none=True,
)
async def update_server(
    server_id: str,
    payload: MarketplaceServerUpdate,
    caller: CallerIdentity = Depends(require_caller),
    service: ServerMarketplaceService = Depends(get_marketplace_service),
):
    """Update a server. Only its owner may, unless it has no owner."""
    logger.debug(f"Updating server {server_id} for {caller.id}")
    try:
        server = await service.update(server_id, payload, caller.id)
    except BaseAPIException as exc:
        logger.error(f"Error updating server: {exc.message}")
        return error_response(status_for(exc, MUTATION_STATUS_CODES), exc.message or "Failed to update server")

    return ApiResponse(data=annotate_ownership(server, caller.id))


@router.delete(
    "/servers/{server_id}",
    response_model=ApiResponse,
    response_model_exclude_none=True,
)
async def delete_server(
    server_id: str,
    caller: CallerIdentity = Depends(require_caller),
    service: ServerMarketplaceService = Depends(get_marketplace_service),
):
    """Delete a server. Same ownership rule as update."""
    logger.debug(f"Deleting server {server_id} for {caller.id}")
    try:
        await service.delete(server_id, caller.id)
    except BaseAPIException as exc:
        logger.error(f"Error deleting server: {exc.message}")
        return error_response(status_for(exc, MUTATION_STATUS_CODES), exc.message or "Failed to delete server")

    return ApiResponse()


# ── Install / Uninstall ─────────────────────────────────────────────────────


@router.post(
    "/servers/{server_id}/install",
    response_model=ApiResponse,
    response_model_exclude_none=True,
)
async def track_install(
    server_id: str,
    service: ServerMarketplaceService = Depends(get_marketplace_service),
):
    """Count an installation. Always succeeds from the caller's point of view."""
    logger.debug(f"Tracking installation of {server_id}")
    await service.track_install(server_id)
    return ApiResponse()


@router.post(
    "/servers/{server_id}/uninstall",
    response_model=ApiResponse,
    response_model_exclude_none=True,
)
async def track_uninstall(
    server_id: str,
    service: ServerMarketplaceService = Depends(get_marketplace_service),
):
    """Count an uninstallation. Always succeeds from the caller's point of view."""
    logger.debug(f"Tracking uninstallation of {server_id}")
    await service.track_uninstall(server_id)
    return ApiResponse()


# ── Reviews ──────────────────────────────────────────────────────────────────


@router.get(
    "/servers/{server_id}/reviews",
    response_model=ApiResponse[List[ServerReview]],
    response_model_exclude_none=True,
)
async def list_reviews(
    server_id: str,
    service: ReviewService = Depends(get_review_service),
):
    """Get reviews for a marketplace server."""
    try:
        reviews = await service.list_reviews(server_id)
    except BaseAPIException as exc:
        logger.error(f"Error fetching reviews: {exc.message}")
        return error_response(status_for(exc, REVIEW_STATUS_CODES), exc.message or "Failed to fetch reviews")
    return ApiResponse(data=reviews)


@router.post(
    "/servers/{server_id}/reviews",
    response_model=ApiResponse[ServerReview],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_review(
    server_id: str,
    payload: ReviewCreate,
    caller: CallerIdentity = Depends(require_caller),
    service: ReviewService = Depends(get_review_service),
):
    """Submit a review (one review per user per server)."""
    try:
        review = await service.create_review(server_id, payload, caller.id, caller.email, caller.name)
    except BaseAPIException as exc:
        logger.error(f"Error creating review: {exc.message}")
        return error_response(status_for(exc, REVIEW_STATUS_CODES), exc.message or "Failed to create review")
    return ApiResponse(data=review)
