"""Marketplace schemas for server entries, reviews, stats and the response envelope.

Wire and document keys are camelCase; Python attributes are snake_case.
"""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class MarketplaceModel(BaseModel):
    """Base for camelCase wire models."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ── Envelope ─────────────────────────────────────────────────────────────────


class ApiResponse(BaseModel, Generic[T]):
    """Every API response: ``{success, data?, error?}``."""

    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None


# ── Nested Schemas ───────────────────────────────────────────────────────────


class DeveloperInfo(MarketplaceModel):
    name: str
    email: Optional[str] = None
    website: Optional[str] = None
    company: Optional[str] = None


class RatingSummary(MarketplaceModel):
    """Aggregate rating. Keys of ``distribution`` are star values 1..5."""

    average: float = 0.0
    count: int = 0
    distribution: Dict[int, int] = Field(default_factory=dict)


# ── Server Schemas ───────────────────────────────────────────────────────────


class MarketplaceServerCreate(MarketplaceModel):
    name: str = Field(..., min_length=1, max_length=255, description="Server display name")
    description: Optional[str] = None
    version: Optional[str] = Field(None, max_length=50)
    author: Optional[str] = None
    server_config: Any = Field(
        default_factory=dict,
        alias="config",
        description="Opaque configuration payload, interpreted only by installers",
    )
    repository: Optional[str] = None
    tags: Optional[List[str]] = None
    readme: Optional[str] = None
    is_public: Optional[bool] = Field(None, description="Defaults to public when omitted")
    video_url: Optional[str] = None
    instructions: Optional[str] = None
    category: Optional[str] = None
    website: Optional[str] = None
    support_email: Optional[str] = None
    developer_info: Optional[DeveloperInfo] = None


class MarketplaceServerUpdate(MarketplaceModel):
    """Partial update. Only fields present in the request are written."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    version: Optional[str] = Field(None, max_length=50)
    author: Optional[str] = None
    server_config: Any = Field(None, alias="config")
    repository: Optional[str] = None
    tags: Optional[List[str]] = None
    readme: Optional[str] = None
    is_public: Optional[bool] = None
    video_url: Optional[str] = None
    instructions: Optional[str] = None
    category: Optional[str] = None
    website: Optional[str] = None
    support_email: Optional[str] = None
    developer_info: Optional[DeveloperInfo] = None

    @field_validator("name")
    @classmethod
    def name_not_null(cls, value: Optional[str]) -> str:
        # Omit the field to keep the current name
        if value is None:
            raise ValueError("name cannot be null")
        return value


class MarketplaceServer(MarketplaceModel):
    """A marketplace entry as sent over the wire."""

    id: str
    name: str = ""
    description: Optional[str] = None
    version: Optional[str] = None
    author: Optional[str] = None
    server_config: Any = Field(None, alias="config")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    # Ownership
    owner_id: Optional[str] = None
    owner_email: Optional[str] = None
    owner_name: Optional[str] = None
    is_public: bool = True

    # Listing details
    video_url: Optional[str] = None
    instructions: Optional[str] = None
    category: Optional[str] = None
    website: Optional[str] = None
    support_email: Optional[str] = None
    developer_info: Optional[DeveloperInfo] = None

    # Engagement
    rating: Optional[RatingSummary] = None
    install_count: int = 0

    repository: Optional[str] = None
    tags: Optional[List[str]] = None
    readme: Optional[str] = None

    # Set by the API when the request carries a caller identity
    is_owner: Optional[bool] = None
    can_edit: Optional[bool] = None
    can_delete: Optional[bool] = None


class MarketplaceStats(MarketplaceModel):
    total_servers: int = 0
    public_servers: int = 0
    total_users: int = 0
    user_servers: int = 0


# ── Review Schemas ───────────────────────────────────────────────────────────


class ReviewCreate(MarketplaceModel):
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5")
    review: Optional[str] = Field(None, max_length=5000, description="Optional review text")


class ServerReview(MarketplaceModel):
    id: str
    server_id: str
    user_id: str
    user_name: str = ""
    user_email: str = ""
    rating: int
    review: Optional[str] = None
    created_at: str
    updated_at: Optional[str] = None
