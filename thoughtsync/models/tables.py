from __future__ import annotations

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

# Use JSONB on Postgres, fallback to JSON for SQLite/test environments.
JSONType = JSON().with_variant(JSONB, "postgresql")

from thoughtsync.models.base import Base


class Capture(Base):
    __tablename__ = "captures"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    context: Mapped[dict | None] = mapped_column(JSONType, nullable=True)  # url/title/selectedText/timestamp
    created_at: Mapped["DateTime"] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    source: Mapped[str] = mapped_column(String(30), nullable=False)  # popup/content-script/background

    sync_state: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # pending/syncing/synced/failed
    synced_at: Mapped["DateTime"] = mapped_column(DateTime(timezone=True), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_attempt_at: Mapped["DateTime"] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    tags: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    meta: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    # Caller-supplied idempotency token (dedups retried CAPTURE_THOUGHT messages).
    client_token: Mapped[str | None] = mapped_column(String(120), nullable=True, unique=True)


class SyncStatusRow(Base):
    """Singleton (id=1) holding derived sync status, the persisted pass lease and user settings."""

    __tablename__ = "sync_status"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    pending_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_sync: Mapped["DateTime"] = mapped_column(DateTime(timezone=True), nullable=True)
    syncing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sync_lease_expires_at: Mapped["DateTime"] = mapped_column(DateTime(timezone=True), nullable=True)
    sync_lease_owner: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_cleanup: Mapped["DateTime"] = mapped_column(DateTime(timezone=True), nullable=True)
    user_settings: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)


class RemoteCapture(Base):
    """Records held by the reference receiver; one row per capture id."""

    __tablename__ = "remote_captures"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    delivery_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    received_at: Mapped["DateTime"] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped["DateTime"] = mapped_column(DateTime(timezone=True), nullable=False)
