"""Local Store: persistent home of captures and the sync status singleton.

Writes are atomic per call (one SQLAlchemy session, one transaction) and raise
StorageUnavailable on any database failure. Reads never raise: a broken medium
degrades to an empty result so status surfaces keep rendering.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Iterable, Iterator

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from thoughtsync.core.config import settings
from thoughtsync.core.errors import CaptureNotFound, InvalidTransition, StorageUnavailable
from thoughtsync.models.base import Base
from thoughtsync.models.states import ALLOWED_TRANSITIONS, UNSYNCED_STATES, SyncState
from thoughtsync.models.tables import Capture, SyncStatusRow
from thoughtsync.util.time import now_utc

log = logging.getLogger("local_store")

STATUS_ROW_ID = 1

# Fields the sync engine may patch; everything else on a capture is immutable once stored.
SYNC_FIELDS = frozenset({"sync_state", "synced_at", "retry_count", "last_attempt_at", "last_error"})


class LocalStore:
    def __init__(self, bind: Engine | None = None, *, initial_online: bool | None = None) -> None:
        if bind is None:
            from thoughtsync.core.db import SessionLocal, engine

            bind = engine
            self._sessions: sessionmaker = SessionLocal
        else:
            from thoughtsync.core.db import make_session_factory

            self._sessions = make_session_factory(bind)
        self.bind = bind
        self.initial_online = settings.INITIAL_ONLINE if initial_online is None else initial_online

    @property
    def session_factory(self) -> sessionmaker:
        return self._sessions

    def init_schema(self) -> None:
        try:
            Base.metadata.create_all(bind=self.bind)
        except SQLAlchemyError as e:
            raise StorageUnavailable(f"cannot initialize local store: {e}") from e

    @contextmanager
    def _write(self) -> Iterator[Session]:
        db = self._sessions()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageUnavailable(f"local store write failed: {e}") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # --- captures -----------------------------------------------------------

    def put(self, capture: Capture) -> Capture:
        with self._write() as db:
            db.add(capture)
            db.flush()
            self._refresh_pending(db)
        return capture

    def get(self, capture_id: str) -> Capture | None:
        try:
            with self._sessions() as db:
                return db.get(Capture, capture_id)
        except SQLAlchemyError as e:
            log.warning("Read of capture %s degraded: %s", capture_id, str(e))
            return None

    def get_by_token(self, client_token: str) -> Capture | None:
        try:
            with self._sessions() as db:
                return db.query(Capture).filter(Capture.client_token == client_token).one_or_none()
        except SQLAlchemyError as e:
            log.warning("Token lookup degraded: %s", str(e))
            return None

    def exists(self, capture_id: str) -> bool:
        return self.get(capture_id) is not None

    def list(
        self,
        states: Iterable[SyncState | str] | None = None,
        *,
        limit: int | None = None,
        offset: int = 0,
        oldest_first: bool = False,
        max_retry_count: int | None = None,
    ) -> list[Capture]:
        """Captures ordered by created_at (newest first by default), ties broken by id."""

        q = select(Capture)
        if states is not None:
            q = q.where(Capture.sync_state.in_([SyncState(s).value for s in states]))
        if max_retry_count is not None:
            q = q.where(Capture.retry_count < max_retry_count)
        if oldest_first:
            q = q.order_by(Capture.created_at.asc(), Capture.id.asc())
        else:
            q = q.order_by(Capture.created_at.desc(), Capture.id.desc())
        if offset:
            q = q.offset(offset)
        if limit is not None:
            q = q.limit(limit)

        try:
            with self._sessions() as db:
                return list(db.scalars(q).all())
        except SQLAlchemyError as e:
            log.warning("Capture listing degraded to empty: %s", str(e))
            return []

    def count_unsynced(self) -> int:
        try:
            with self._sessions() as db:
                return self._count_unsynced(db)
        except SQLAlchemyError as e:
            log.warning("Unsynced count degraded: %s", str(e))
            return 0

    def update_sync_fields(self, capture_id: str, patch: dict[str, Any]) -> bool:
        """Apply a sync-field patch. Returns False when the capture no longer exists."""

        unknown = set(patch) - SYNC_FIELDS
        if unknown:
            raise ValueError(f"Not a sync field: {sorted(unknown)}")

        with self._write() as db:
            row = db.get(Capture, capture_id)
            if row is None:
                return False

            values = dict(patch)
            if "sync_state" in values:
                target = SyncState(values["sync_state"])
                current = SyncState(row.sync_state)
                if target not in ALLOWED_TRANSITIONS[current]:
                    raise InvalidTransition(f"{capture_id}: {current.value} -> {target.value}")
                values["sync_state"] = target.value
                if target is SyncState.SYNCED:
                    values.setdefault("synced_at", now_utc())
            elif "synced_at" in values:
                raise InvalidTransition("synced_at is only set on the transition to synced")

            for k, v in values.items():
                setattr(row, k, v)
            db.flush()
            self._refresh_pending(db)
        return True

    def retry(self, capture_id: str) -> Capture:
        """User-initiated retry of one failed capture: failed -> pending, retry_count reset."""

        with self._write() as db:
            row = db.get(Capture, capture_id)
            if row is None:
                raise CaptureNotFound(capture_id)
            if row.sync_state != SyncState.FAILED.value:
                raise InvalidTransition(f"{capture_id}: only failed captures can be retried (is {row.sync_state})")
            row.sync_state = SyncState.PENDING.value
            row.retry_count = 0
            db.flush()
            self._refresh_pending(db)
        return row

    def reset_exhausted(self, max_retries: int) -> int:
        """Move failed captures at or over the retry ceiling back to pending with retry_count 0."""

        with self._write() as db:
            res = db.execute(
                update(Capture)
                .where(Capture.sync_state == SyncState.FAILED.value, Capture.retry_count >= max_retries)
                .values(sync_state=SyncState.PENDING.value, retry_count=0)
            )
            return res.rowcount or 0

    def fail_interrupted(self, reason: str) -> int:
        """Captures left in syncing by a pass that never finished count as failed attempts."""

        with self._write() as db:
            res = db.execute(
                update(Capture)
                .where(Capture.sync_state == SyncState.SYNCING.value)
                .values(
                    sync_state=SyncState.FAILED.value,
                    retry_count=Capture.retry_count + 1,
                    last_error=reason,
                )
            )
            return res.rowcount or 0

    def delete_all(self) -> int:
        with self._write() as db:
            res = db.execute(delete(Capture))
            self._refresh_pending(db)
            return res.rowcount or 0

    def cleanup(self, keep_synced: int | None = None) -> int:
        """Retention: keep every unsynced capture and only the newest `keep_synced` synced ones."""

        keep = settings.STORE_KEEP_SYNCED if keep_synced is None else keep_synced
        with self._write() as db:
            keep_ids = (
                select(Capture.id)
                .where(Capture.sync_state == SyncState.SYNCED.value)
                .order_by(Capture.created_at.desc(), Capture.id.desc())
                .limit(keep)
            )
            res = db.execute(
                delete(Capture)
                .where(Capture.sync_state == SyncState.SYNCED.value, Capture.id.not_in(keep_ids))
                .execution_options(synchronize_session=False)
            )
            row = self._status_row(db)
            row.last_cleanup = now_utc()
            self._refresh_pending(db)
            removed = res.rowcount or 0

        if removed:
            log.info("Retention removed %s synced captures", removed)
        return removed

    def count_all(self) -> int:
        try:
            with self._sessions() as db:
                return db.scalar(select(func.count()).select_from(Capture)) or 0
        except SQLAlchemyError as e:
            log.warning("Capture count degraded: %s", str(e))
            return 0

    def stats(self, *, max_retries: int) -> dict[str, Any]:
        empty = {"total": 0, "synced": 0, "unsynced": 0, "exhausted": 0, "last_cleanup": None}
        try:
            with self._sessions() as db:
                by_state = dict(
                    db.execute(select(Capture.sync_state, func.count()).group_by(Capture.sync_state)).all()
                )
                exhausted = db.scalar(
                    select(func.count())
                    .select_from(Capture)
                    .where(Capture.sync_state == SyncState.FAILED.value, Capture.retry_count >= max_retries)
                )
                status = db.get(SyncStatusRow, STATUS_ROW_ID)
        except SQLAlchemyError as e:
            log.warning("Storage stats degraded: %s", str(e))
            return empty

        synced = by_state.get(SyncState.SYNCED.value, 0)
        return {
            "total": sum(by_state.values()),
            "synced": synced,
            "unsynced": sum(by_state.get(s, 0) for s in UNSYNCED_STATES),
            "exhausted": exhausted or 0,
            "last_cleanup": status.last_cleanup if status else None,
        }

    # --- sync status singleton ----------------------------------------------

    def get_status(self) -> SyncStatusRow | None:
        try:
            with self._sessions() as db:
                return db.get(SyncStatusRow, STATUS_ROW_ID)
        except SQLAlchemyError as e:
            log.warning("Sync status read degraded: %s", str(e))
            return None

    def set_online(self, online: bool) -> bool:
        """Record a connectivity signal. Returns the previous value."""

        with self._write() as db:
            row = self._status_row(db)
            previous = bool(row.is_online)
            row.is_online = online
        return previous

    def try_acquire_sync_lease(self, *, now: datetime, lease_s: float, owner: str) -> bool:
        """Compare-and-set the persisted `syncing` flag; an expired lease may be taken over."""

        with self._write() as db:
            self._status_row(db)
            db.flush()
            res = db.execute(
                update(SyncStatusRow)
                .where(
                    SyncStatusRow.id == STATUS_ROW_ID,
                    or_(SyncStatusRow.syncing.is_(False), SyncStatusRow.sync_lease_expires_at < now),
                )
                .values(
                    syncing=True,
                    sync_lease_owner=owner,
                    sync_lease_expires_at=now + timedelta(seconds=lease_s),
                )
            )
            return res.rowcount == 1

    def renew_sync_lease(self, *, now: datetime, lease_s: float, owner: str) -> bool:
        """Push the expiry out; False once another pass has taken the lease over."""

        with self._write() as db:
            res = db.execute(
                update(SyncStatusRow)
                .where(
                    SyncStatusRow.id == STATUS_ROW_ID,
                    SyncStatusRow.syncing.is_(True),
                    SyncStatusRow.sync_lease_owner == owner,
                )
                .values(sync_lease_expires_at=now + timedelta(seconds=lease_s))
            )
            return res.rowcount == 1

    def finish_sync_pass(
        self,
        *,
        now: datetime,
        succeeded: bool,
        error: str | None,
        owner: str,
        refresh_pending: bool = True,
    ) -> bool:
        """Release the lease and fold one pass outcome into the status row.

        Only the lease owner may do this; returns False when the lease was lost.
        An aborted pass skips the pending recount so the lease and the error
        still land when the captures table is what failed.
        """

        with self._write() as db:
            row = db.get(SyncStatusRow, STATUS_ROW_ID)
            if row is None or row.sync_lease_owner != owner:
                return False
            row.syncing = False
            row.sync_lease_owner = None
            row.sync_lease_expires_at = None
            if succeeded:
                row.last_sync = now
            row.error = error
            if refresh_pending:
                self._refresh_pending(db)
        return True

    def get_user_settings(self) -> dict[str, Any]:
        row = self.get_status()
        return dict(row.user_settings or {}) if row else {}

    def update_user_settings(self, changes: dict[str, Any]) -> dict[str, Any]:
        with self._write() as db:
            row = self._status_row(db)
            merged = dict(row.user_settings or {})
            merged.update(changes)
            row.user_settings = merged
        return merged

    # --- internals ----------------------------------------------------------

    def _status_row(self, db: Session) -> SyncStatusRow:
        row = db.get(SyncStatusRow, STATUS_ROW_ID)
        if row is None:
            row = SyncStatusRow(
                id=STATUS_ROW_ID,
                is_online=self.initial_online,
                pending_count=self._count_unsynced(db),
                last_sync=None,
                syncing=False,
                sync_lease_expires_at=None,
                sync_lease_owner=None,
                error=None,
                last_cleanup=None,
                user_settings={},
            )
            db.add(row)
        return row

    @staticmethod
    def _count_unsynced(db: Session) -> int:
        return (
            db.scalar(select(func.count()).select_from(Capture).where(Capture.sync_state.in_(UNSYNCED_STATES))) or 0
        )

    def _refresh_pending(self, db: Session) -> None:
        row = self._status_row(db)
        row.pending_count = self._count_unsynced(db)
