"""Common Pydantic schemas."""

from typing import Dict
from pydantic import BaseModel, Field
from datetime import datetime, timezone


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "ok"
    version: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    services: Dict[str, str] = Field(default_factory=dict)
