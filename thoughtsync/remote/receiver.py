"""Reference implementation of the remote endpoint: idempotent upsert keyed by capture id.

Conflict policy is last-write-wins by client: a repeated delivery overwrites the stored
payload and bumps delivery_count, it never creates a second record.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from thoughtsync.models.tables import RemoteCapture
from thoughtsync.schemas.messages import RemoteCapturePayload
from thoughtsync.util.time import now_utc

log = logging.getLogger("remote_receiver")


def receive_capture(db: Session, *, payload: dict[str, Any]) -> RemoteCapture:
    body = RemoteCapturePayload.model_validate(payload)
    data = body.model_dump(by_alias=True, mode="json")

    now = now_utc()
    rec = db.get(RemoteCapture, body.id)
    if rec is None:
        rec = RemoteCapture(id=body.id, payload=data, delivery_count=1, received_at=now, updated_at=now)
        db.add(rec)
    else:
        rec.payload = data
        rec.delivery_count = (rec.delivery_count or 0) + 1
        rec.updated_at = now
        log.info("Capture %s redelivered (%s deliveries)", body.id, rec.delivery_count)
    db.flush()
    return rec


def list_received(db: Session, *, limit: int = 200) -> list[RemoteCapture]:
    return db.query(RemoteCapture).order_by(RemoteCapture.received_at.desc()).limit(limit).all()
