"""Session and login handling for the gateway.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from onioncourier.common.exceptions import AuthorizationError

if TYPE_CHECKING:
    from onioncourier.common.models import SessionData
    from onioncourier.server.session_manager import SessionRegistry
    from onioncourier.server.state import OnionStateCell


class SessionRejected(AuthorizationError):
    """Authorization failure that may carry a freshly issued session id."""

    def __init__(self, message: str, session_id: str | None = None) -> None:
        super().__init__(message)
        self.session_id = session_id


class AuthHandler:
    """Gates requests on an authenticated session."""

    def __init__(self, sessions: SessionRegistry, state_cell: OnionStateCell):
        self.sessions = sessions
        self.state_cell = state_cell
        self.logger = logging.getLogger(__name__)

    def require_session(self, session_id: str | None) -> SessionData:
        """Return the authenticated session or raise ``SessionRejected``.

        A caller without a known session gets a new unauthenticated one so
        it can log in with the id it is handed back.
        """
        session = self.sessions.get(session_id) if session_id else None
        if session is None:
            session = self.sessions.create()
            raise SessionRejected("authentication required", session.session_id)
        if not session.authenticated:
            raise SessionRejected("authentication required")
        return session

    def login(self, session_id: str | None, key: str) -> SessionData:
        """Authenticate with the current cycle key, creating a session if needed."""
        self.sessions.clean_expired_sessions()
        session = self.sessions.get(session_id) if session_id else None
        if session is None:
            session = self.sessions.create()

        state = self.state_cell.snapshot()
        expected = state.key_hex if state is not None else ""
        if not self.sessions.authenticate(session.session_id, key, expected):
            raise SessionRejected("invalid credential", session.session_id)

        refreshed = self.sessions.get(session.session_id)
        if refreshed is None:
            raise SessionRejected("session expired")
        return refreshed

    def quit(self, session: SessionData) -> None:
        self.sessions.remove(session.session_id)
        self.logger.info("Session %s… closed by client", session.session_id[:6])
