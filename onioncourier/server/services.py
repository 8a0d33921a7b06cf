"""Business logic services for the gateway.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from onioncourier.common.exceptions import ValidationError
from onioncourier.common.models import OnionStatus
from onioncourier.server.domain.auth_handler import AuthHandler
from onioncourier.server.domain.file_handler import FileHandler

if TYPE_CHECKING:
    from onioncourier.common.config import Config
    from onioncourier.common.interfaces import IFileStore
    from onioncourier.common.models import FileListResponse, SessionData
    from onioncourier.server.session_manager import SessionRegistry
    from onioncourier.server.state import OnionStateCell


class GatewayService:
    """Handles business logic behind the HTTP gateway."""

    def __init__(
        self,
        config: Config,
        state_cell: OnionStateCell,
        sessions: SessionRegistry,
        store: IFileStore,
    ):
        self.config = config
        self.state_cell = state_cell
        self.sessions = sessions
        self.auth_handler = AuthHandler(sessions, state_cell)
        self.file_handler = FileHandler(store, sessions)

    def health(self) -> dict[str, Any]:
        """Health check endpoint."""
        return {"status": "ok", "timestamp": int(time.time())}

    def onion_status(self) -> OnionStatus:
        state = self.state_cell.snapshot()
        if state is None:
            msg = "no onion address published yet"
            raise ValidationError(msg, 503)
        return OnionStatus.from_state(state, self.config.TIME_FORMAT)

    def require_session(self, session_id: str | None) -> SessionData:
        return self.auth_handler.require_session(session_id)

    def login(self, session_id: str | None, key: str) -> SessionData:
        return self.auth_handler.login(session_id, key)

    def quit(self, session: SessionData) -> None:
        self.auth_handler.quit(session)

    def list_files(self, session: SessionData, path: str | None) -> FileListResponse:
        return self.file_handler.list_files(session, path)

    def upload(self, session: SessionData, path: str | None, data: bytes) -> str:
        return self.file_handler.upload(session, path, data)

    def download(self, session: SessionData, path: str | None) -> tuple[str, bytes]:
        return self.file_handler.download(session, path)

    def delete(self, session: SessionData, path: str | None) -> str:
        return self.file_handler.delete(session, path)

    def change_directory(self, session: SessionData, path: str | None) -> str:
        return self.file_handler.change_directory(session, path)

    def make_directory(self, session: SessionData, path: str | None) -> str:
        return self.file_handler.make_directory(session, path)

    def view_file(self, session: SessionData, path: str | None) -> str:
        return self.file_handler.view_file(session, path)
