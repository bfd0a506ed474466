"""Server reviews and the rating aggregate stored on each entry.

One review per (serverId, userId). After every new review the entry's
``rating`` block is recomputed from all of its reviews.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from core.config import Settings
from core.database import ConnectionManager
from core.exceptions import ConflictError, InternalServerError, NotFoundError
from schemas.marketplace import ReviewCreate, ServerReview
from services.marketplace_service import parse_object_id

logger = logging.getLogger(__name__)

STAR_VALUES = (1, 2, 3, 4, 5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_rating(ratings: List[int]) -> Dict[str, object]:
    """Build the stored rating block from individual star ratings."""
    distribution = {str(star): 0 for star in STAR_VALUES}
    for value in ratings:
        if value in STAR_VALUES:
            distribution[str(value)] += 1
    count = sum(distribution.values())
    total = sum(int(star) * n for star, n in distribution.items())
    average = round(total / count, 2) if count else 0.0
    return {"average": average, "count": count, "distribution": distribution}


def doc_to_review(doc: Dict[str, object]) -> ServerReview:
    data = {key: value for key, value in doc.items() if key != "_id"}
    data["id"] = str(doc.get("_id", ""))
    return ServerReview.model_validate(data)


class ReviewService:
    """Reviews for marketplace entries."""

    def __init__(
        self,
        connection: ConnectionManager,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.connection = connection
        self.settings = settings or connection.settings
        self._clock = clock or _utcnow

    async def _require_server(self, server_id: str) -> None:
        oid = parse_object_id(server_id)
        servers = await self.connection.collection(self.settings.SERVERS_COLLECTION)
        if await servers.find_one({"_id": oid}) is None:
            raise NotFoundError("Server not found")

    async def list_reviews(self, server_id: str) -> List[ServerReview]:
        """Reviews of one entry, newest first."""
        await self._require_server(server_id)
        reviews = await self.connection.collection(self.settings.REVIEWS_COLLECTION)
        try:
            docs = await reviews.find({"serverId": server_id}).sort("createdAt", DESCENDING).to_list(length=None)
        except PyMongoError as exc:
            logger.error(f"Error fetching reviews for server {server_id}: {exc}")
            raise InternalServerError(f"Failed to fetch reviews: {exc}") from exc
        return [doc_to_review(doc) for doc in docs]

    async def create_review(
        self,
        server_id: str,
        payload: ReviewCreate,
        user_id: str,
        user_email: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> ServerReview:
        """Add the caller's review and refresh the entry's rating aggregate."""
        await self._require_server(server_id)
        reviews = await self.connection.collection(self.settings.REVIEWS_COLLECTION)

        if await reviews.find_one({"serverId": server_id, "userId": user_id}) is not None:
            raise ConflictError("You have already reviewed this server")

        doc = {
            "serverId": server_id,
            "userId": user_id,
            "userName": user_name or "",
            "userEmail": user_email or "",
            "rating": payload.rating,
            "createdAt": self._clock().isoformat(),
        }
        if payload.review:
            doc["review"] = payload.review

        try:
            result = await reviews.insert_one(doc)
            created = await reviews.find_one({"_id": result.inserted_id})
        except DuplicateKeyError as exc:
            raise ConflictError("You have already reviewed this server") from exc
        except PyMongoError as exc:
            logger.error(f"Error creating review for server {server_id}: {exc}")
            raise InternalServerError(f"Failed to create review: {exc}") from exc

        await self.refresh_rating(server_id)
        return doc_to_review(created)

    async def refresh_rating(self, server_id: str) -> Dict[str, object]:
        """Recompute and store the rating block of one entry."""
        reviews = await self.connection.collection(self.settings.REVIEWS_COLLECTION)
        servers = await self.connection.collection(self.settings.SERVERS_COLLECTION)
        try:
            docs = await reviews.find({"serverId": server_id}).to_list(length=None)
            rating = compute_rating([doc.get("rating") for doc in docs])
            await servers.update_one({"_id": parse_object_id(server_id)}, {"$set": {"rating": rating}})
        except PyMongoError as exc:
            logger.error(f"Error refreshing rating for server {server_id}: {exc}")
            raise InternalServerError(f"Failed to refresh rating: {exc}") from exc
        return rating
