"""Pydantic schemas for the collection/group/item API."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def _strip_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class CollectionCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=160)
    color: Optional[str] = Field(default=None, description="Hex color such as #3B82F6.")


class CollectionUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=160)
    color: Optional[str] = None


class CollectionResponse(BaseModel):
    id: str
    ownerId: str
    name: str
    slug: Optional[str] = None
    color: str
    position: int
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class CollectionListResponse(BaseModel):
    collections: List[CollectionResponse] = Field(default_factory=list)


class GroupCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=160)
    color: Optional[str] = None


class GroupUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=160)
    color: Optional[str] = None


class GroupResponse(BaseModel):
    id: str
    collectionId: str
    name: str
    color: str
    position: int
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class GroupListResponse(BaseModel):
    groups: List[GroupResponse] = Field(default_factory=list)


class ItemCreateRequest(BaseModel):
    url: str = Field(..., min_length=1)
    title: Optional[str] = Field(default=None, description="Defaults to the url's host name.")
    description: Optional[str] = None
    favicon: Optional[str] = None

    @field_validator("title", "description", "favicon", mode="before")
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        return _strip_optional(value)


class ItemUpdateRequest(BaseModel):
    url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    favicon: Optional[str] = None


class ItemBulkCreateRequest(BaseModel):
    urls: List[str] = Field(default_factory=list, description="One url per entry; blank entries are skipped.")
    text: Optional[str] = Field(default=None, description="Newline separated urls, as pasted.")

    def all_urls(self) -> List[str]:
        urls = list(self.urls)
        if self.text:
            urls.extend(self.text.splitlines())
        return urls


class ItemResponse(BaseModel):
    id: str
    groupId: str
    title: str
    url: str
    description: Optional[str] = None
    favicon: Optional[str] = None
    position: int
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class ItemListResponse(BaseModel):
    items: List[ItemResponse] = Field(default_factory=list)


class ReorderRequest(BaseModel):
    parentId: Optional[str] = Field(
        default=None,
        description="Parent collection/group id. Omit when reordering collections (the caller is the parent).",
    )
    orderedIds: List[str] = Field(default_factory=list, description="Every child id, in the desired order.")


class ReorderResponse(BaseModel):
    kind: str
    parentId: str
    orderedIds: List[str]
    updated: int
