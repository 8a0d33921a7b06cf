"""File request handler for the gateway.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from onioncourier.common.exceptions import (
    MissingParameterError,
    NotFoundError,
    ValidationError,
)
from onioncourier.common.models import FileListResponse

if TYPE_CHECKING:
    from onioncourier.common.interfaces import IFileStore
    from onioncourier.common.models import SessionData
    from onioncourier.server.session_manager import SessionRegistry


def _require(name: str, value: str | None) -> str:
    if value is None or not value.strip():
        raise MissingParameterError(name)
    return value.strip()


class FileHandler:
    """Runs file operations relative to a session's working directory."""

    def __init__(self, store: IFileStore, sessions: SessionRegistry):
        self.store = store
        self.sessions = sessions
        self.logger = logging.getLogger(__name__)

    def list_files(self, session: SessionData, path: str | None = None) -> FileListResponse:
        entries = self.store.list_dir(session.cwd, path or ".")
        return FileListResponse(cwd=session.cwd, entries=entries)

    def upload(self, session: SessionData, path: str | None, data: bytes) -> str:
        path = _require("path", path)
        self.store.write_bytes(session.cwd, path, data)
        return self.store.to_relative(self.store.resolve(session.cwd, path))

    def download(self, session: SessionData, path: str | None) -> tuple[str, bytes]:
        path = _require("path", path)
        target = self.store.resolve(session.cwd, path)
        return target.name, self.store.read_bytes(session.cwd, path)

    def delete(self, session: SessionData, path: str | None) -> str:
        path = _require("path", path)
        target = self.store.resolve(session.cwd, path)
        self.store.delete(session.cwd, path)
        return self.store.to_relative(target)

    def change_directory(self, session: SessionData, path: str | None) -> str:
        """Move the session's working directory; it stays put on any error."""
        path = _require("path", path)
        target = self.store.resolve(session.cwd, path)
        if not target.exists():
            msg = f"no such directory: {path}"
            raise NotFoundError(msg)
        if not target.is_dir():
            msg = f"not a directory: {path}"
            raise ValidationError(msg, 400)
        cwd = self.store.to_relative(target)
        self.sessions.set_cwd(session.session_id, cwd)
        return cwd

    def make_directory(self, session: SessionData, path: str | None) -> str:
        path = _require("path", path)
        self.store.make_dir(session.cwd, path)
        return self.store.to_relative(self.store.resolve(session.cwd, path))

    def view_file(self, session: SessionData, path: str | None) -> str:
        path = _require("path", path)
        return self.store.read_text(session.cwd, path)
