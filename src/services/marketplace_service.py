"""Marketplace server repository: ownership-checked CRUD and install tracking.

Documents live in a single MongoDB collection (``servers`` by default) with
camelCase keys. Every operation goes through the injected
``ConnectionManager``, which connects on first use.

Authorization is a single rule shared by update and delete: an entry with an
``ownerId`` may only be changed by that owner; entries without one (legacy,
anonymous) are editable by anyone.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from bson import ObjectId
from pydantic import ValidationError as SchemaValidationError
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from core.config import Settings
from core.database import ConnectionManager
from core.exceptions import (
    BaseAPIException,
    InternalServerError,
    NotFoundError,
    PermissionDeniedError,
    TrackingError,
    ValidationError,
)
from schemas.marketplace import (
    MarketplaceServer,
    MarketplaceServerCreate,
    MarketplaceServerUpdate,
    MarketplaceStats,
)

logger = logging.getLogger(__name__)

PUBLIC_FILTER: Dict[str, Any] = {"isPublic": {"$ne": False}}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_object_id(server_id: str) -> ObjectId:
    """Convert a 24-hex string id into an ObjectId or raise ValidationError."""
    if not isinstance(server_id, str) or len(server_id) != 24 or not ObjectId.is_valid(server_id):
        raise ValidationError(f"Invalid server id: {server_id!r}")
    return ObjectId(server_id)


def doc_to_server(doc: Dict[str, Any]) -> MarketplaceServer:
    """Convert a stored document to its wire representation."""
    data = {key: value for key, value in doc.items() if key != "_id"}
    data["id"] = str(doc.get("_id", ""))
    if data.get("isPublic") is None:
        data["isPublic"] = True
    if data.get("installCount") is None:
        data["installCount"] = 0
    try:
        return MarketplaceServer.model_validate(data)
    except SchemaValidationError as exc:
        logger.error(f"Stored server document {data['id']} is invalid: {exc}")
        raise InternalServerError(f"Stored server {data['id']} is invalid") from exc


def docs_to_servers(docs: List[Dict[str, Any]]) -> List[MarketplaceServer]:
    """Convert a listing, skipping documents that no longer fit the schema."""
    servers = []
    for doc in docs:
        try:
            servers.append(doc_to_server(doc))
        except InternalServerError:
            continue
    return servers


def annotate_ownership(server: MarketplaceServer, caller_id: Optional[str]) -> MarketplaceServer:
    """Attach isOwner/canEdit/canDelete for a known caller."""
    if not caller_id:
        return server
    is_owner = server.owner_id == caller_id
    can_edit = not server.owner_id or is_owner
    return server.model_copy(
        update={"is_owner": is_owner, "can_edit": can_edit, "can_delete": can_edit}
    )


class ServerMarketplaceService:
    """Repository for marketplace server entries."""

    def __init__(
        self,
        connection: ConnectionManager,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.connection = connection
        self.settings = settings or connection.settings
        self._clock = clock or _utcnow

    async def _servers(self):
        return await self.connection.collection(self.settings.SERVERS_COLLECTION)

    def _now(self) -> str:
        return self._clock().isoformat()

    # ── Queries ──────────────────────────────────────────────────────────

    async def list_public(self) -> List[MarketplaceServer]:
        """List public entries, newest first.

        If nothing matches the public filter but the collection has documents,
        the unfiltered set is returned (debugging aid, see
        ``PUBLIC_LISTING_FALLBACK``).
        """
        servers = await self._servers()
        try:
            total = await servers.count_documents({})
            docs = await servers.find(PUBLIC_FILTER).sort("createdAt", DESCENDING).to_list(length=None)

            if not docs and total > 0:
                sample = await servers.find_one({})
                logger.warning(
                    "No public servers found, but database has documents. "
                    f"Sample document: _id={sample.get('_id') if sample else None}, "
                    f"isPublic={sample.get('isPublic') if sample else None}, "
                    f"keys={sorted(sample.keys()) if sample else []}"
                )
                if self.settings.PUBLIC_LISTING_FALLBACK:
                    logger.warning("No servers matched isPublic filter, fetching all servers for debugging")
                    docs = await servers.find({}).sort("createdAt", DESCENDING).to_list(length=None)
        except PyMongoError as exc:
            logger.error(f"Error fetching all servers: {exc}")
            raise InternalServerError(f"Failed to fetch servers: {exc}") from exc

        logger.info(f"Found {len(docs)} public servers (out of {total} total)")
        return docs_to_servers(docs)

    async def list_by_owner(self, owner_id: str) -> List[MarketplaceServer]:
        """List every entry owned by *owner_id*, public or not, newest first."""
        servers = await self._servers()
        try:
            docs = await servers.find({"ownerId": owner_id}).sort("createdAt", DESCENDING).to_list(length=None)
        except PyMongoError as exc:
            logger.error(f"Error fetching servers for owner {owner_id}: {exc}")
            raise InternalServerError(f"Failed to fetch your servers: {exc}") from exc
        return docs_to_servers(docs)

    async def get_by_id(self, server_id: str) -> Optional[MarketplaceServer]:
        """Return one entry or None. Malformed ids raise ValidationError."""
        oid = parse_object_id(server_id)
        servers = await self._servers()
        try:
            doc = await servers.find_one({"_id": oid})
        except PyMongoError as exc:
            logger.error(f"Error fetching server {server_id}: {exc}")
            raise InternalServerError(f"Failed to fetch server: {exc}") from exc
        if doc is None:
            return None
        return doc_to_server(doc)

    async def get_stats(self, caller_id: Optional[str] = None) -> MarketplaceStats:
        """Count entries, public entries, distinct owners and the caller's entries."""
        servers = await self._servers()
        try:
            total = await servers.count_documents({})
            public = await servers.count_documents(PUBLIC_FILTER)
            owners = [owner for owner in await servers.distinct("ownerId") if owner]
            mine = await servers.count_documents({"ownerId": caller_id}) if caller_id else 0
        except PyMongoError as exc:
            logger.error(f"Error computing marketplace stats: {exc}")
            raise InternalServerError(f"Failed to fetch stats: {exc}") from exc

        return MarketplaceStats(
            total_servers=total,
            public_servers=public,
            total_users=len(owners),
            user_servers=mine,
        )

    # ── Mutations ────────────────────────────────────────────────────────

    async def create(
        self,
        payload: MarketplaceServerCreate,
        owner_id: str,
        owner_email: Optional[str] = None,
        owner_name: Optional[str] = None,
    ) -> MarketplaceServer:
        """Persist a new entry and return it as stored."""
        servers = await self._servers()
        now = self._now()

        doc = payload.model_dump(by_alias=True, exclude_none=True, exclude={"is_public"})
        doc.setdefault("config", {})
        owner = {"ownerId": owner_id, "ownerEmail": owner_email, "ownerName": owner_name}
        doc.update({key: value for key, value in owner.items() if value is not None})
        doc.update(
            {
                "isPublic": True if payload.is_public is None else payload.is_public,
                "createdAt": now,
                "updatedAt": now,
                "installCount": 0,
            }
        )

        try:
            result = await servers.insert_one(doc)
            created = await servers.find_one({"_id": result.inserted_id})
        except PyMongoError as exc:
            logger.error(f"Error creating server: {exc}")
            raise InternalServerError(f"Failed to create server: {exc}") from exc

        if created is None:
            raise InternalServerError("Failed to create server: could not read back the stored document")
        logger.info(f"Created server {created['_id']} ({doc.get('name')}) for owner {owner_id}")
        return doc_to_server(created)

    async def update(
        self,
        server_id: str,
        payload: MarketplaceServerUpdate,
        caller_id: str,
    ) -> MarketplaceServer:
        """Apply a partial update after the ownership check.

        Fields absent from the request are left untouched.
        """
        oid = parse_object_id(server_id)
        servers = await self._servers()
        try:
            existing = await servers.find_one({"_id": oid})
            if existing is None:
                raise NotFoundError("Server not found")
            self._check_ownership(existing, caller_id, "update")

            changes = payload.model_dump(by_alias=True, exclude_unset=True)
            changes["updatedAt"] = self._now()
            await servers.update_one({"_id": oid}, {"$set": changes})
            updated = await servers.find_one({"_id": oid})
        except PyMongoError as exc:
            logger.error(f"Error updating server {server_id}: {exc}")
            raise InternalServerError(f"Failed to update server: {exc}") from exc

        if updated is None:
            raise NotFoundError("Server not found")
        return doc_to_server(updated)

    async def delete(self, server_id: str, caller_id: str) -> None:
        """Remove an entry after the ownership check."""
        oid = parse_object_id(server_id)
        servers = await self._servers()
        try:
            existing = await servers.find_one({"_id": oid})
            if existing is None:
                raise NotFoundError("Server not found")
            self._check_ownership(existing, caller_id, "delete")
            await servers.delete_one({"_id": oid})
        except PyMongoError as exc:
            logger.error(f"Error deleting server {server_id}: {exc}")
            raise InternalServerError(f"Failed to delete server: {exc}") from exc
        logger.info(f"Deleted server {server_id}")

    @staticmethod
    def _check_ownership(existing: Dict[str, Any], caller_id: str, action: str) -> None:
        owner_id = existing.get("ownerId")
        if owner_id and owner_id != caller_id:
            raise PermissionDeniedError(f"You do not have permission to {action} this server")

    # ── Install Tracking ─────────────────────────────────────────────────

    async def increment_install_count(self, server_id: str, delta: int) -> bool:
        """Atomically add *delta* to installCount.

        Never raises: tracking must not block install or uninstall. Returns
        False when the counter could not be adjusted. There is no floor, so
        the count can go negative.
        """
        try:
            await self._apply_install_delta(server_id, delta)
        except TrackingError as exc:
            logger.warning(f"Install tracking skipped for server {server_id}: {exc.message}")
            return False
        return True

    async def track_install(self, server_id: str) -> bool:
        return await self.increment_install_count(server_id, 1)

    async def track_uninstall(self, server_id: str) -> bool:
        return await self.increment_install_count(server_id, -1)

    async def _apply_install_delta(self, server_id: str, delta: int) -> None:
        try:
            oid = parse_object_id(server_id)
            servers = await self._servers()
            result = await servers.update_one({"_id": oid}, {"$inc": {"installCount": delta}})
        except (BaseAPIException, PyMongoError) as exc:
            raise TrackingError(f"Failed to adjust install count by {delta}: {exc}") from exc
        if result.matched_count == 0:
            raise TrackingError("Server not found")
