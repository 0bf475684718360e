from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from thoughtsync.core.errors import RemoteRejected
from thoughtsync.remote.receiver import receive_capture
from thoughtsync.sync.adapters.base import DeliveryResult


@dataclass(frozen=True)
class LoopbackAdapter:
    """Delivers straight into the in-process reference receiver (local development, tests)."""

    sessions: sessionmaker
    kind: str = "loopback"

    def deliver(self, *, payload: dict[str, Any]) -> DeliveryResult:
        try:
            with self.sessions() as db:
                rec = receive_capture(db, payload=payload)
                db.commit()
        except ValidationError as e:
            return DeliveryResult(status="FAILED", retryable=False, reason=f"{RemoteRejected.code}:{e.error_count()} validation errors")
        except SQLAlchemyError as e:
            return DeliveryResult(status="FAILED", retryable=True, reason=f"{RemoteRejected.code}:{type(e).__name__}")
        return DeliveryResult(status="SENT", remote_id=rec.id)
