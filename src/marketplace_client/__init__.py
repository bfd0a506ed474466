"""Client side of the MCP marketplace: API client, sync store and install matching."""

from marketplace_client.api_client import MarketplaceApiClient
from marketplace_client.auth import AuthSession
from marketplace_client.matching import (
    backfill_marketplace_id,
    extract_signature,
    find_legacy_installed_candidate,
    is_marketplace_installed,
)
from marketplace_client.models import ApiResult, AuthUser, FailureKind, InstalledServerRecord
from marketplace_client.store import MarketplaceState, MarketplaceStore

__all__ = [
    "ApiResult",
    "AuthSession",
    "AuthUser",
    "FailureKind",
    "InstalledServerRecord",
    "MarketplaceApiClient",
    "MarketplaceState",
    "MarketplaceStore",
    "backfill_marketplace_id",
    "extract_signature",
    "find_legacy_installed_candidate",
    "is_marketplace_installed",
]
