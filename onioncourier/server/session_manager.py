"""
Session management for the file gateway.
"""

from __future__ import annotations

import hmac
import logging
import secrets
import threading
import time
from typing import Callable

from onioncourier.common.exceptions import AuthorizationError
from onioncourier.common.models import SessionData

logger = logging.getLogger(__name__)


class SessionRegistry:
    """In-memory registry of sessions guarded by a single lock.

    Callers always receive copies; only the registry mutates stored
    sessions. A session moves from unauthenticated to authenticated once
    and is closed by removal (quit, idle timeout or shutdown). At most
    ``max_pending`` unauthenticated sessions are kept; creating another
    evicts the least recently active one.
    """

    def __init__(
        self,
        session_ttl: int,
        clock: Callable[[], float] = time.time,
        max_pending: int = 256,
    ):
        self.session_ttl = session_ttl
        self.max_pending = max_pending
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, SessionData] = {}

    def create(self) -> SessionData:
        """Create a new unauthenticated session rooted at ``/``."""
        now = self._clock()
        session = SessionData(
            session_id=secrets.token_urlsafe(32),
            created_at=now,
            last_active=now,
        )
        with self._lock:
            self._drop_expired(now)
            self._evict_pending()
            self._sessions[session.session_id] = session
        logger.debug("Session %s… created", session.session_id[:6])
        return session.model_copy()

    def get(self, session_id: str) -> SessionData | None:
        """Look up a session and mark it active. Idle sessions are dropped."""
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if now - session.last_active > self.session_ttl:
                del self._sessions[session_id]
                logger.info("Session %s… expired", session_id[:6])
                return None
            session.last_active = now
            return session.model_copy()

    def authenticate(self, session_id: str, credential: str, expected: str) -> bool:
        """Mark the session authenticated if ``credential`` matches ``expected``."""
        if not expected or not hmac.compare_digest(
            credential.strip().lower().encode(), expected.lower().encode()
        ):
            logger.warning("Rejected login for session %s…", session_id[:6])
            return False
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.authenticated = True
            session.last_active = self._clock()
        logger.info("Session %s… authenticated", session_id[:6])
        return True

    def set_cwd(self, session_id: str, cwd: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise AuthorizationError
            session.cwd = cwd

    def remove(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def clean_expired_sessions(self) -> None:
        with self._lock:
            dropped = self._drop_expired(self._clock())
        if dropped:
            logger.info("Dropped %d idle sessions", dropped)

    def _drop_expired(self, now: float) -> int:
        expired = [
            sid
            for sid, sess in self._sessions.items()
            if now - sess.last_active > self.session_ttl
        ]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)

    def _evict_pending(self) -> None:
        # Caller holds the lock. Authenticated sessions are never evicted.
        pending = sorted(
            (sess for sess in self._sessions.values() if not sess.authenticated),
            key=lambda sess: sess.last_active,
        )
        for sess in pending[: max(len(pending) - self.max_pending + 1, 0)]:
            del self._sessions[sess.session_id]
            logger.debug("Session %s… evicted before login", sess.session_id[:6])

    def close_all(self) -> None:
        with self._lock:
            count = len(self._sessions)
            self._sessions.clear()
        logger.info("Closed %d sessions", count)

    def active_count(self) -> int:
        with self._lock:
            return len(self._sessions)
