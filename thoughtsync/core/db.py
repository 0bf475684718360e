from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from thoughtsync.core.config import settings


def make_engine(url: str) -> Engine:
    if url.startswith("sqlite") and ":memory:" in url:
        # For in-memory SQLite (tests) we need a single shared connection across threads.
        # StaticPool makes the same connection reused for the whole process.
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            pool_pre_ping=True,
        )
    if url.startswith("sqlite"):
        # Timer threads and the request thread share the file.
        return create_engine(url, connect_args={"check_same_thread": False, "timeout": 15}, pool_pre_ping=True)
    return create_engine(url, pool_pre_ping=True)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, expire_on_commit=False)


engine = make_engine(settings.DATABASE_URL)

SessionLocal = make_session_factory(engine)
