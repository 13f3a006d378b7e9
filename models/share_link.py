"""SQLAlchemy model for share links."""

import uuid
from sqlalchemy import Column, DateTime, Index, Integer, String, Uuid
from sqlalchemy.sql import func

from database import Base


class ShareLink(Base):
    __tablename__ = "share_links"
    __table_args__ = (
        Index("ix_share_links_resource", "resource_type", "resource_id"),
        {"extend_existing": True},
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    token = Column(String(64), nullable=False, unique=True, index=True)
    resource_type = Column(String(32), nullable=False)
    # No foreign key: the target may be deleted while the token survives.
    resource_id = Column(Uuid(as_uuid=True), nullable=False)
    created_by = Column(Uuid(as_uuid=True), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    view_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
