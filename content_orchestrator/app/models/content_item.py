"""Content item model."""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class ContentItem(Base):
    """
    Content item (post/ad/campaign asset).
    status: draft | pending_approval | approved | rejected | scheduled | published.
    scheduled_for is set while scheduled (or as a requested instant on a not-yet-approved draft).
    publish_claimed_at marks an in-flight publish; cleared on success/failure.
    """

    __tablename__ = "content_items"
    __table_args__ = (
        Index("ix_content_items_status_scheduled_for", "status", "scheduled_for"),
        Index("ix_content_items_owner_id", "owner_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    campaign_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    media_urls: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    content_type: Mapped[str] = mapped_column(String(32), nullable=False)
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="draft", nullable=False)
    scheduled_for: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    published_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, default=dict)
    publish_attempts: Mapped[int] = mapped_column(default=0, nullable=False)
    last_publish_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_publish_attempt_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    publish_claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    versions = relationship(
        "ContentVersion",
        back_populates="content_item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    approval_requests = relationship(
        "ApprovalRequest",
        back_populates="content_item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
