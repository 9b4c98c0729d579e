from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from services.api.app.services.auth_context import AuthContext
from services.api.app.services.reconciler import CheckoutReconciler

logger = logging.getLogger(__name__)


@dataclass
class SessionRecord:
    session_id: str
    auth: AuthContext
    reconciler: CheckoutReconciler
    last_seen: float = field(default_factory=time.monotonic)


class InMemoryStore:
    """Live checkout sessions.

    A session leaves the store once its order is placed, when the client abandons it, or
    after ``max_idle_seconds`` without a request.
    """

    def __init__(
        self,
        max_idle_seconds: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sessions: dict[str, SessionRecord] = {}
        self._max_idle_seconds = max_idle_seconds
        self._clock = clock

    @classmethod
    def from_env(cls) -> "InMemoryStore":
        return cls(max_idle_seconds=float(os.getenv("FOODHUB_SESSION_IDLE_SECONDS", "1800")))

    def save_session(self, record: SessionRecord) -> None:
        self.evict_idle()
        record.last_seen = self._clock()
        self._sessions[record.session_id] = record

    def get_session(self, session_id: str) -> SessionRecord | None:
        self.evict_idle()
        record = self._sessions.get(session_id)
        if record is not None:
            record.last_seen = self._clock()
        return record

    def discard_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def evict_idle(self) -> int:
        cutoff = self._clock() - self._max_idle_seconds
        idle = [sid for sid, r in self._sessions.items() if r.last_seen < cutoff]
        for session_id in idle:
            self._sessions.pop(session_id).reconciler.abandon()
        if idle:
            logger.info("Evicted %d idle checkout session(s)", len(idle))
        return len(idle)

    def __len__(self) -> int:
        return len(self._sessions)


store = InMemoryStore.from_env()
