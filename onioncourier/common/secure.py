"""
Zero-on-release storage for the operator password.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class SecureBuffer:
    """Mutable byte buffer that is overwritten with zeros when released.

    Plaintext is only handed out through ``borrow()`` so callers cannot keep
    a reference past the ``with`` block without copying it on purpose.
    """

    def __init__(self, data: bytes | bytearray) -> None:
        self._buf = bytearray(data)
        self._lock = threading.Lock()
        self._destroyed = False
        if isinstance(data, bytearray):
            # Wipe the caller's copy as well.
            data[:] = b"\x00" * len(data)

    @classmethod
    def from_str(cls, value: str) -> SecureBuffer:
        return cls(value.encode("utf-8"))

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def __len__(self) -> int:
        return len(self._buf)

    def __repr__(self) -> str:
        state = "destroyed" if self._destroyed else f"{len(self._buf)} bytes"
        return f"<SecureBuffer {state}>"

    @contextmanager
    def borrow(self) -> Iterator[bytes]:
        """Yield the plaintext for the duration of the block."""
        with self._lock:
            if self._destroyed:
                msg = "secure buffer already released"
                raise ValueError(msg)
            view = bytes(self._buf)
        yield view

    def release(self) -> None:
        """Overwrite the contents with zeros. Safe to call more than once."""
        with self._lock:
            for i in range(len(self._buf)):
                self._buf[i] = 0
            self._destroyed = True
