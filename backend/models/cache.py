"""
Cache entry model - one row of the key/value cache.
"""

from pydantic import BaseModel, Field


class CacheEntry(BaseModel):
    """A stored value with its write timestamp (epoch seconds)."""

    key: str
    value: bytes = Field(..., description="UTF-8 JSON envelope")
    stored_at: int = Field(..., ge=0)
