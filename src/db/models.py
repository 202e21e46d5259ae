"""SQLAlchemy ORM models for the bulk tag state database.

This module defines the durable records for bulk tag jobs, per-tag usage
counters, and per-shop preferences. Uses SQLAlchemy 2.0 style with Mapped
and mapped_column.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
)


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


# Enums matching the database schema constraints


class JobStatus(str, Enum):
    """Status values for bulk tag jobs.

    Lifecycle: pending -> in_progress -> completed/failed/cancelled
    """

    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


TERMINAL_STATUSES = frozenset(
    {JobStatus.completed, JobStatus.failed, JobStatus.cancelled}
)


class OperationType(str, Enum):
    """Persisted identifier of a bulk tag operation."""

    add_tag = "add_tag"
    remove_tag = "remove_tag"
    replace_tag = "replace_tag"


# SQLAlchemy Base


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Models


class BulkTagJob(Base):
    """One execution of a bulk tag operation.

    The row is the durable contract read by external pollers: status and
    progress counts are checkpointed after every batch.

    Attributes:
        id: UUID primary key
        shop: Tenant identifier scoping the job
        operation: add_tag, remove_tag or replace_tag
        tag_value: Target tag (the new tag for replace)
        old_tag_value: Tag being replaced (replace only)
        product_ids_json: JSON array of product ids, fixed at creation
        status: Current job status
        total_count: Number of products in the job
        processed_count: Products processed at the last checkpoint
        success_count: Successful products at the last checkpoint
        failed_count: Failed products at the last checkpoint
        error_log_json: JSON array of per-record failure messages
        usage_verified: Whether a checkpointed write returned the usage tag
        created_at: ISO8601 timestamp of job creation
        started_at: ISO8601 timestamp of the first in_progress transition
        completed_at: ISO8601 timestamp of the terminal transition
        updated_at: ISO8601 timestamp of last update
    """

    __tablename__ = "bulk_tag_jobs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    shop: Mapped[str] = mapped_column(String(255), nullable=False)
    operation: Mapped[str] = mapped_column(String(20), nullable=False)
    tag_value: Mapped[str] = mapped_column(String(255), nullable=False)
    old_tag_value: Mapped[str | None] = mapped_column(String(255), nullable=True)
    product_ids_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.pending.value
    )

    # Progress counts
    total_count: Mapped[int] = mapped_column(default=0, nullable=False)
    processed_count: Mapped[int] = mapped_column(default=0, nullable=False)
    success_count: Mapped[int] = mapped_column(default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(default=0, nullable=False)

    error_log_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    usage_verified: Mapped[bool] = mapped_column(default=False, nullable=False)

    # Timestamps (ISO8601 strings for SQLite compatibility)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    started_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    completed_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    __table_args__ = (
        Index("idx_bulk_tag_jobs_shop", "shop"),
        Index("idx_bulk_tag_jobs_status", "status"),
        Index("idx_bulk_tag_jobs_created_at", "created_at"),
    )

    @property
    def product_ids(self) -> list[str]:
        """Ordered product ids the job was created with."""
        return json.loads(self.product_ids_json or "[]")

    @property
    def error_log(self) -> list[str]:
        """Ordered per-record failure messages."""
        return json.loads(self.error_log_json or "[]")

    def __repr__(self) -> str:
        return (
            f"<BulkTagJob(id={self.id!r}, operation={self.operation!r}, "
            f"status={self.status!r})>"
        )


class TagUsage(Base):
    """Per-shop usage counter for a tag.

    Incremented once per job that successfully adds (or ends with) the tag.
    Purely statistical; never consulted for job correctness.
    """

    __tablename__ = "tag_usage"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    shop: Mapped[str] = mapped_column(String(255), nullable=False)
    tag_name: Mapped[str] = mapped_column(String(255), nullable=False)
    usage_count: Mapped[int] = mapped_column(default=0, nullable=False)
    last_used: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    __table_args__ = (
        UniqueConstraint("shop", "tag_name", name="uq_tag_usage_shop_tag"),
        Index("idx_tag_usage_shop_count", "shop", "usage_count"),
    )

    def __repr__(self) -> str:
        return (
            f"<TagUsage(shop={self.shop!r}, tag_name={self.tag_name!r}, "
            f"usage_count={self.usage_count})>"
        )


class UserPreferences(Base):
    """Per-shop operator preferences.

    Attributes:
        shop: Tenant identifier (unique)
        default_batch_size: Batch size used when a run does not set one
        email_notifications: Whether the shop wants completion emails
        saved_filters_json: JSON object of named product filters
    """

    __tablename__ = "user_preferences"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    shop: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    default_batch_size: Mapped[int] = mapped_column(default=10, nullable=False)
    email_notifications: Mapped[bool] = mapped_column(default=True, nullable=False)
    saved_filters_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    @property
    def saved_filters(self) -> dict:
        """Named product filters saved by the operator."""
        return json.loads(self.saved_filters_json or "{}")

    def __repr__(self) -> str:
        return (
            f"<UserPreferences(shop={self.shop!r}, "
            f"default_batch_size={self.default_batch_size})>"
        )
