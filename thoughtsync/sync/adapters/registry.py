from __future__ import annotations

from sqlalchemy.orm import sessionmaker

from thoughtsync.core.config import settings
from thoughtsync.sync.adapters.base import RemoteAdapter
from thoughtsync.sync.adapters.http import HttpRemoteAdapter
from thoughtsync.sync.adapters.loopback import LoopbackAdapter


def get_adapter(kind: str, *, sessions: sessionmaker | None = None) -> RemoteAdapter:
    if kind == "http":
        return HttpRemoteAdapter(
            base_url=settings.REMOTE_BASE_URL,
            sync_path=settings.REMOTE_SYNC_PATH,
            auth_token=settings.REMOTE_AUTH_TOKEN,
            timeout_s=settings.REMOTE_TIMEOUT_S,
        )
    if kind == "loopback":
        if sessions is None:
            raise ValueError("loopback adapter needs a session factory")
        return LoopbackAdapter(sessions=sessions)
    raise ValueError(f"No adapter for kind={kind}")
