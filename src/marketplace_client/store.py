"""Client-side marketplace state kept in sync with the API.

Lists are always refetched after a mutation; the server stays the single
source of truth. The only optimistic step is dropping a deleted entry from
the local lists as soon as the API confirms the delete.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, List, Optional

from marketplace_client.base import AuthSessionPort, MarketplaceApiPort
from marketplace_client.models import ApiResult, AuthUser, FailureKind
from schemas.marketplace import MarketplaceServer

logger = logging.getLogger(__name__)

API_NOT_RUNNING_MESSAGE = "API server is not running. Please enable it in Settings → API Server."

StateListener = Callable[["MarketplaceState"], None]


@dataclass(frozen=True)
class MarketplaceState:
    """Snapshot of the marketplace lists and in-flight flags."""

    servers: List[MarketplaceServer] = field(default_factory=list)
    servers_loading: bool = False
    servers_error: Optional[str] = None
    my_servers: List[MarketplaceServer] = field(default_factory=list)
    my_servers_loading: bool = False
    my_servers_error: Optional[str] = None
    creating: bool = False
    updating: bool = False
    deleting: bool = False


def _fetch_error(result: ApiResult, default: str, network: str) -> str:
    if result.failure == FailureKind.CONNECTION_REFUSED:
        return API_NOT_RUNNING_MESSAGE
    if result.failure == FailureKind.NETWORK:
        return network
    return result.error or default


class MarketplaceStore:
    """Holds marketplace lists for one client session."""

    def __init__(self, api: MarketplaceApiPort, auth: AuthSessionPort):
        self.api = api
        self.auth = auth
        self.state = MarketplaceState()
        self._listeners: List[StateListener] = []
        self._closed = False

    # State plumbing

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, **changes: Any) -> None:
        # Results landing after close() are dropped
        if self._closed:
            return
        self.state = replace(self.state, **changes)
        for listener in list(self._listeners):
            listener(self.state)

    def close(self) -> None:
        self._closed = True
        self._listeners.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    # Identity

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self.auth.get_current_user()

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    def is_owner(self, server: MarketplaceServer) -> bool:
        if server.is_owner is not None:
            return server.is_owner
        user = self.current_user
        if user is None or not user.id:
            return False
        return server.owner_id == user.id

    def can_edit(self, server: MarketplaceServer) -> bool:
        if not self.is_authenticated:
            return False
        if server.can_edit is not None:
            return server.can_edit
        # Entries without an owner are editable by anyone
        return not server.owner_id or self.is_owner(server)

    def can_delete(self, server: MarketplaceServer) -> bool:
        if not self.is_authenticated:
            return False
        if server.can_delete is not None:
            return server.can_delete
        return not server.owner_id or self.is_owner(server)

    # Fetching

    async def fetch_servers(self) -> None:
        self._set_state(servers_loading=True, servers_error=None)
        result = await self.api.get_servers()
        if result.success:
            self._set_state(servers=list(result.data or []), servers_loading=False)
            return
        error = _fetch_error(result, "Failed to fetch servers", "Network error while fetching servers")
        logger.warning(f"Failed to fetch marketplace servers: {result.error}")
        self._set_state(servers_error=error, servers_loading=False)

    async def fetch_my_servers(self) -> None:
        if not self.is_authenticated:
            self._set_state(my_servers=[], my_servers_error=None, my_servers_loading=False)
            return
        self._set_state(my_servers_loading=True, my_servers_error=None)
        result = await self.api.get_my_servers()
        if result.success:
            self._set_state(my_servers=list(result.data or []), my_servers_loading=False)
            return
        error = _fetch_error(
            result, "Failed to fetch your servers", "Network error while fetching your servers"
        )
        logger.warning(f"Failed to fetch own marketplace servers: {result.error}")
        self._set_state(my_servers_error=error, my_servers_loading=False)

    async def refresh_all(self) -> None:
        """Refetch the public list and, when signed in, the caller's list."""
        if self.is_authenticated:
            await asyncio.gather(self.fetch_servers(), self.fetch_my_servers())
        else:
            await self.fetch_servers()

    async def refresh_server_data(self) -> None:
        """Refetch the public list, which carries install counts."""
        await self.fetch_servers()

    async def on_auth_changed(self, user: Optional[AuthUser] = None) -> None:
        """Reload after sign-in or sign-out; clears the caller's list on sign-out."""
        if not self.is_authenticated:
            self._set_state(my_servers=[], my_servers_error=None)
        await self.refresh_all()

    # Mutations

    async def create_server(self, server_data: Any) -> ApiResult:
        self._set_state(creating=True)
        try:
            result = await self.api.create_server(server_data)
            if result.success:
                await self.refresh_all()
            return result
        finally:
            self._set_state(creating=False)

    async def update_server(self, server_id: str, server_data: Any) -> ApiResult:
        self._set_state(updating=True)
        try:
            result = await self.api.update_server(server_id, server_data)
            if result.success:
                await self.refresh_all()
            return result
        finally:
            self._set_state(updating=False)

    async def delete_server(self, server_id: str) -> ApiResult:
        self._set_state(deleting=True)
        try:
            result = await self.api.delete_server(server_id)
            if result.success:
                self._set_state(
                    servers=[s for s in self.state.servers if s.id != server_id],
                    my_servers=[s for s in self.state.my_servers if s.id != server_id],
                )
                await self.refresh_all()
            return result
        finally:
            self._set_state(deleting=False)

    async def track_install(self, server_id: str) -> ApiResult:
        result = await self.api.track_install(server_id)
        await self.refresh_server_data()
        return result

    async def track_uninstall(self, server_id: str) -> ApiResult:
        result = await self.api.track_uninstall(server_id)
        await self.refresh_server_data()
        return result
