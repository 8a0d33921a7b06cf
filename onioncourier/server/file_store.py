"""
Root-confined local file store used by the session-gated endpoints.
"""

from __future__ import annotations

import logging
from pathlib import Path

from onioncourier.common.exceptions import (
    NotFoundError,
    PathTraversalError,
    ValidationError,
)
from onioncourier.common.models import FileEntry

logger = logging.getLogger(__name__)


class LocalFileStore:
    """File operations rooted at a fixed directory.

    Working directories are passed around as root-relative POSIX strings
    where ``"/"`` is the root itself. Every path is resolved (symlinks
    included) before use and rejected if it lands outside the root.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.expanduser().resolve()

    def resolve(self, cwd: str, path: str) -> Path:
        """Resolve ``path`` against ``cwd``; absolute paths start at the root."""
        if "\x00" in path:
            msg = f"invalid path: {path!r}"
            raise ValidationError(msg, 400)
        base = self.root / cwd.lstrip("/")
        if path.startswith("/"):
            base = self.root
        try:
            target = (base / path.lstrip("/")).resolve()
        except (OSError, RuntimeError, ValueError) as err:
            msg = f"invalid path: {path!r}"
            raise ValidationError(msg, 400) from err
        if not target.is_relative_to(self.root):
            logger.warning("Rejected path outside file root: %r (cwd %r)", path, cwd)
            raise PathTraversalError
        return target

    def to_relative(self, path: Path) -> str:
        rel = path.relative_to(self.root).as_posix()
        return "/" if rel == "." else f"/{rel}"

    def list_dir(self, cwd: str, path: str = ".") -> list[FileEntry]:
        target = self._existing(cwd, path)
        if not target.is_dir():
            msg = f"not a directory: {path}"
            raise ValidationError(msg, 400)
        entries = []
        for child in sorted(target.iterdir(), key=lambda p: p.name):
            is_dir = child.is_dir()
            entries.append(
                FileEntry(
                    name=child.name,
                    is_dir=is_dir,
                    size=0 if is_dir else child.stat().st_size,
                )
            )
        return entries

    def read_bytes(self, cwd: str, path: str) -> bytes:
        target = self._existing(cwd, path)
        if target.is_dir():
            msg = f"is a directory: {path}"
            raise ValidationError(msg, 400)
        return target.read_bytes()

    def read_text(self, cwd: str, path: str) -> str:
        return self.read_bytes(cwd, path).decode("utf-8", errors="replace")

    def write_bytes(self, cwd: str, path: str, data: bytes) -> None:
        target = self.resolve(cwd, path)
        if target == self.root or target.is_dir():
            msg = f"is a directory: {path}"
            raise ValidationError(msg, 400)
        if not target.parent.is_dir():
            msg = f"parent directory does not exist: {path}"
            raise NotFoundError(msg)
        target.write_bytes(data)
        logger.info("Stored %d bytes at %s", len(data), self.to_relative(target))

    def delete(self, cwd: str, path: str) -> None:
        target = self._existing(cwd, path)
        if target == self.root:
            msg = "refusing to delete the file root"
            raise ValidationError(msg, 400)
        if target.is_dir():
            if any(target.iterdir()):
                msg = f"directory not empty: {path}"
                raise ValidationError(msg, 409)
            target.rmdir()
        else:
            target.unlink()
        logger.info("Deleted %s", self.to_relative(target))

    def make_dir(self, cwd: str, path: str) -> None:
        target = self.resolve(cwd, path)
        if target.exists():
            msg = f"already exists: {path}"
            raise ValidationError(msg, 409)
        if not target.parent.is_dir():
            msg = f"parent directory does not exist: {path}"
            raise NotFoundError(msg)
        target.mkdir()

    def _existing(self, cwd: str, path: str) -> Path:
        target = self.resolve(cwd, path)
        if not target.exists():
            msg = f"no such file or directory: {path}"
            raise NotFoundError(msg)
        return target
