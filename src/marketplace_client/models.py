"""Client-side models: identity, API results and locally installed servers."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional


class FailureKind(str, Enum):
    """Why a marketplace request did not succeed."""

    CONNECTION_REFUSED = "connection_refused"
    NETWORK = "network"
    HTTP = "http"
    INVALID_REQUEST = "invalid_request"
    INVALID_RESPONSE = "invalid_response"


@dataclass(frozen=True)
class AuthUser:
    """Identity returned by the sign-in provider."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class ApiResult:
    """Outcome of one marketplace API call. Callers must check ``success``."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    failure: Optional[FailureKind] = None


@dataclass(frozen=True)
class InstalledServerRecord:
    """A locally installed MCP server configuration.

    ``meta["marketplaceId"]`` is the strong link back to the marketplace
    entry it was installed from; installs made before that link existed
    lack it.
    """

    name: str
    command: str = ""
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    provider: str = ""
    registry_url: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def marketplace_id(self) -> Optional[str]:
        return self.meta.get("marketplaceId") or None

    def with_marketplace_id(self, marketplace_id: str) -> "InstalledServerRecord":
        return replace(self, meta={**self.meta, "marketplaceId": marketplace_id})

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "InstalledServerRecord":
        registry_url = raw.get("registryUrl")
        return cls(
            name=str(raw.get("name", "")),
            command=str(raw.get("command") or ""),
            args=[str(arg) for arg in raw.get("args") or []],
            env={str(k): str(v) for k, v in (raw.get("env") or {}).items()},
            provider=str(raw.get("provider") or ""),
            registry_url=registry_url if isinstance(registry_url, str) else None,
            meta=dict(raw.get("meta") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "name": self.name,
            "command": self.command,
            "args": list(self.args),
            "env": dict(self.env),
            "provider": self.provider,
        }
        if self.registry_url:
            result["registryUrl"] = self.registry_url
        if self.meta:
            result["meta"] = dict(self.meta)
        return result
