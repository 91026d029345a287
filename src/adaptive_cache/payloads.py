"""Typed payloads written to the cache by preload and invalidation updates.

Each payload is tagged with its ``data_type`` so readers can tell the
variants apart after a JSON round trip through the cache store.
"""

import time
from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class SearchPayload(BaseModel):
    """Placeholder search results for a predicted query."""

    data_type: Literal["search"] = "search"
    query: str
    results: List[Dict[str, Any]] = Field(default_factory=list)
    timestamp: float = Field(default_factory=time.time)


class CategoryPayload(BaseModel):
    """Placeholder category listing page."""

    data_type: Literal["category"] = "category"
    category: str
    listings: List[Dict[str, Any]] = Field(default_factory=list)
    timestamp: float = Field(default_factory=time.time)


class ApiPayload(BaseModel):
    """Placeholder per-session API response."""

    data_type: Literal["api"] = "api"
    endpoint: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)


class UserPayload(BaseModel):
    """Placeholder user-scoped record (profile, preferences)."""

    data_type: Literal["user"] = "user"
    resource: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)


CachePayload = Annotated[
    Union[SearchPayload, CategoryPayload, ApiPayload, UserPayload],
    Field(discriminator="data_type"),
]

_payload_adapter = TypeAdapter(CachePayload)


def parse_payload(data: Any) -> BaseModel:
    """Rebuild a typed payload from a cached JSON-compatible dict."""
    return _payload_adapter.validate_python(data)
