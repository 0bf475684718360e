from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from thoughtsync import __version__
from thoughtsync.core.errors import NetworkError, RemoteRejected
from thoughtsync.sync.adapters.base import DeliveryResult


def _truncate(s: str, n: int = 200) -> str:
    s = s or ""
    return s if len(s) <= n else s[:n] + "…"


@dataclass(frozen=True)
class HttpRemoteAdapter:
    """POSTs one capture per call; the remote upserts by id, so redelivery is safe."""

    base_url: str
    sync_path: str = "/api/extension/sync"
    auth_token: str | None = None
    timeout_s: float = 10.0
    kind: str = "http"

    def deliver(self, *, payload: dict[str, Any]) -> DeliveryResult:
        url = f"{self.base_url.rstrip('/')}/{self.sync_path.lstrip('/')}"
        headers = {
            "Content-Type": "application/json",
            "User-Agent": f"thoughtsync/{__version__}",
        }
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        try:
            resp = httpx.post(url, headers=headers, json=payload, timeout=self.timeout_s)
        except httpx.HTTPError as e:
            return DeliveryResult(
                status="FAILED",
                retryable=True,
                reason=f"{NetworkError.code}:{type(e).__name__}:{str(e)}",
            )

        if resp.status_code >= 400:
            return DeliveryResult(
                status="FAILED",
                retryable=resp.status_code >= 500 or resp.status_code == 429,
                reason=f"{RemoteRejected.code}:http_{resp.status_code}:{_truncate(resp.text, 200)}",
            )

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if isinstance(body, dict) and body.get("success") is False:
            return DeliveryResult(
                status="FAILED",
                retryable=True,
                reason=f"{RemoteRejected.code}:{_truncate(str(body.get('error') or 'rejected'), 200)}",
            )

        remote_id = body.get("id") if isinstance(body, dict) else None
        return DeliveryResult(status="SENT", remote_id=remote_id or payload.get("id"))
