"""
Interfaces and protocols for dependency injection.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pathlib import Path

    from onioncourier.common.models import FileEntry, NotificationResult, SessionData


class IOnionListener(Protocol):
    """An acquired hidden-service endpoint."""

    id: str

    def close(self) -> None: ...


class IOnionTransport(Protocol):
    """Protocol for the anonymity-network transport provider."""

    def start(self, data_dir: Path | None) -> None: ...

    def listen(
        self, remote_ports: list[int], local_port: int, *, version3: bool = True
    ) -> IOnionListener: ...

    def close(self) -> None: ...


class IFileStore(Protocol):
    """Protocol for root-confined file operations."""

    root: Path

    def resolve(self, cwd: str, path: str) -> Path: ...

    def to_relative(self, path: Path) -> str: ...

    def list_dir(self, cwd: str, path: str = ".") -> list[FileEntry]: ...

    def read_bytes(self, cwd: str, path: str) -> bytes: ...

    def read_text(self, cwd: str, path: str) -> str: ...

    def write_bytes(self, cwd: str, path: str, data: bytes) -> None: ...

    def delete(self, cwd: str, path: str) -> None: ...

    def make_dir(self, cwd: str, path: str) -> None: ...


class ISessionRegistry(Protocol):
    """Protocol for session management."""

    def create(self) -> SessionData: ...

    def get(self, session_id: str) -> SessionData | None: ...

    def remove(self, session_id: str) -> None: ...

    def clean_expired_sessions(self) -> None: ...

    def close_all(self) -> None: ...


class INotifier(Protocol):
    """Protocol for the encrypted announcement dispatcher."""

    def notify(
        self,
        address: str,
        port: int,
        key: bytes,
        valid_until: str,
        duration: float,
        subscribers: list[str],
    ) -> NotificationResult: ...
