"""SQLAlchemy models for the collection → group → item bookmark hierarchy."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.sql import func

from database import Base

DEFAULT_COLOR = "#3B82F6"


class Collection(Base):
    """Top-level container owned by a single user."""

    __tablename__ = "collections"
    __table_args__ = (Index("ix_collections_owner_position", "owner_id", "position"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    name = Column(String(160), nullable=False)
    slug = Column(String(180), nullable=True)
    color = Column(String(16), nullable=False, default=DEFAULT_COLOR)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Group(Base):
    """Named sub-container inside a collection."""

    __tablename__ = "groups"
    __table_args__ = (Index("ix_groups_collection_position", "collection_id", "position"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    collection_id = Column(Uuid(as_uuid=True), ForeignKey("collections.id"), nullable=False, index=True)
    name = Column(String(160), nullable=False)
    color = Column(String(16), nullable=False, default=DEFAULT_COLOR)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Item(Base):
    """Leaf bookmark entry."""

    __tablename__ = "items"
    __table_args__ = (Index("ix_items_group_position", "group_id", "position"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid(as_uuid=True), ForeignKey("groups.id"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    url = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    favicon = Column(Text, nullable=True)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


__all__ = ["Collection", "DEFAULT_COLOR", "Group", "Item"]
