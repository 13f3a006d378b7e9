"""Schemas for share link endpoints."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from schemas.api.bookmarks import CollectionResponse, GroupResponse, ItemResponse


class ShareLinkCreateRequest(BaseModel):
    resourceType: Literal["collection", "group", "item", "board", "folder", "link"] = Field(
        ..., description="Kind of resource to share."
    )
    resourceId: str = Field(..., description="ID of the resource to share.")
    expiresInDays: Optional[int] = Field(default=None, ge=1, le=365, description="Days until expiration.")


class ShareLinkCreateResponse(BaseModel):
    token: str
    url: str
    resourceType: str
    resourceId: str
    expiresAt: Optional[str] = None


class ShareLinkResponse(BaseModel):
    token: str
    resourceType: str
    resourceId: str
    viewCount: int
    expiresAt: Optional[str] = None
    createdAt: Optional[str] = None


class ShareLinkListResponse(BaseModel):
    shares: List[ShareLinkResponse] = Field(default_factory=list)


class SharedContentResponse(BaseModel):
    resourceType: str
    sharedAt: Optional[str] = None
    viewCount: int = 0
    collection: Optional[CollectionResponse] = None
    group: Optional[GroupResponse] = None
    item: Optional[ItemResponse] = None
    groups: List[GroupResponse] = Field(default_factory=list)
    items: List[ItemResponse] = Field(default_factory=list)
