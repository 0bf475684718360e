from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError
from sqlalchemy.orm import Session

from thoughtsync.api.deps import get_db
from thoughtsync.remote.receiver import list_received, receive_capture

router = APIRouter()


@router.post("/sync")
def sync_capture(payload: dict, db: Session = Depends(get_db)) -> dict:
    """Idempotent upsert of one capture keyed by its id."""

    try:
        rec = receive_capture(db, payload=payload)
    except ValidationError as e:
        db.rollback()
        raise HTTPException(status_code=422, detail=f"invalid capture: {e.error_count()} validation errors")
    db.commit()
    return {"success": True, "id": rec.id, "deliveryCount": rec.delivery_count}


@router.get("/captures")
def captures(db: Session = Depends(get_db)) -> dict:
    items = list_received(db)
    return {
        "success": True,
        "captures": [
            {
                "id": r.id,
                "payload": r.payload,
                "deliveryCount": r.delivery_count,
                "receivedAt": r.received_at,
                "updatedAt": r.updated_at,
            }
            for r in items
        ],
    }
