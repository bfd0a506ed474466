"""Ports: identity provider, marketplace API and the installed-servers store."""

from typing import Any, Optional, Protocol

from marketplace_client.models import ApiResult, AuthUser, InstalledServerRecord


class AuthSessionPort(Protocol):
    """Port for the sign-in provider (OAuth exchange happens elsewhere)."""

    def get_current_user(self) -> Optional[AuthUser]:
        """The signed-in user, or None."""
        ...

    def get_access_token(self) -> Optional[str]:
        """Bearer token for the signed-in user, or None."""
        ...

    async def sign_out(self) -> None:
        """Drop the current session."""
        ...


class MarketplaceApiPort(Protocol):
    """Port for the marketplace HTTP API as seen by the sync store."""

    async def get_servers(self) -> ApiResult:
        ...

    async def get_my_servers(self) -> ApiResult:
        ...

    async def create_server(self, server_data: Any) -> ApiResult:
        ...

    async def update_server(self, server_id: str, server_data: Any) -> ApiResult:
        ...

    async def delete_server(self, server_id: str) -> ApiResult:
        ...

    async def track_install(self, server_id: str) -> ApiResult:
        ...

    async def track_uninstall(self, server_id: str) -> ApiResult:
        ...


class InstalledServersPort(Protocol):
    """Port for the local store that owns installed server configurations."""

    def update_server(self, record: InstalledServerRecord) -> None:
        """Replace the stored record with the same name."""
        ...
