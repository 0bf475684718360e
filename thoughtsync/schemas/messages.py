from __future__ import annotations

from typing import Any

from pydantic import ConfigDict, Field

from thoughtsync.schemas.capture import CaptureContext, WireModel


class ExtensionMessage(WireModel):
    type: str
    payload: dict[str, Any] | None = None
    request_id: str | None = Field(default=None, max_length=100)


class CaptureThoughtPayload(WireModel):
    text: str
    context: CaptureContext | None = None
    tags: list[str] = Field(default_factory=list)
    idempotency_key: str | None = Field(default=None, max_length=120)


class RecentThoughtsPayload(WireModel):
    limit: int = Field(default=10, ge=1, le=1000)


class ConnectivityPayload(WireModel):
    is_online: bool


class RetryCapturePayload(WireModel):
    id: str = Field(min_length=1)


class UpdateSettingsPayload(WireModel):
    sync_enabled: bool | None = None
    auto_capture: bool | None = None
    notifications: bool | None = None
    analytics_enabled: bool | None = None


class RemoteCapturePayload(WireModel):
    """Body accepted by the reference receiver; unknown keys are kept verbatim."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1, max_length=64)
    text: str
