from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response

from thoughtsync.api.deps import get_background
from thoughtsync.models.states import CaptureSource
from thoughtsync.service import BackgroundService

router = APIRouter()


@router.post("/{surface}", response_model=None)
def post_message(surface: str, message: dict, bg: BackgroundService = Depends(get_background)) -> dict | Response:
    """One request/response channel per front-end surface; the channel fixes the capture source."""

    try:
        source = CaptureSource(surface)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown surface: {surface}")

    out = bg.router.dispatch(message, source=source)
    if out is None:
        return Response(status_code=204)
    return out
