from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class DeliveryResult:
    status: str  # SENT | FAILED
    retryable: bool = False
    reason: str | None = None
    remote_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "SENT"


class RemoteAdapter(Protocol):
    kind: str

    def deliver(self, *, payload: dict[str, Any]) -> DeliveryResult: ...
