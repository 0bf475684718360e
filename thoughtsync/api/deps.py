from __future__ import annotations

from typing import Iterator

from fastapi import Request
from sqlalchemy.orm import Session

from thoughtsync.service import BackgroundService


def get_background(request: Request) -> BackgroundService:
    return request.app.state.background


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.background.store.session_factory()
    try:
        yield db
    finally:
        db.close()
