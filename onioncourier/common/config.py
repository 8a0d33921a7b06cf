"""
Configuration settings for the rotating onion service.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Central configuration class for all system settings."""

    def __init__(self) -> None:
        # Rotation settings
        self.ROTATION_DURATION: float = float(
            os.getenv("ONIONCOURIER_DURATION", str(1440 * 60))
        )  # Seconds between address rotations (default: one day)
        self.ACQUIRE_BACKOFF: float = 5.0  # Delay before retrying a failed cycle
        self.NOTIFY_DRAIN_TIMEOUT: float = 30.0  # Max wait for mail at teardown
        self.REMOTE_PORT: int = 80  # Port announced on the onion address

        # Server settings
        self.SERVER_HOST: str = os.getenv("ONIONCOURIER_SERVER_HOST", "127.0.0.1")
        self.SERVER_PORT: int = int(os.getenv("ONIONCOURIER_SERVER_PORT", "8080"))
        self.PASSWORD: str | None = os.getenv("ONIONCOURIER_PASSWORD")
        self.FILE_ROOT: str | None = os.getenv("ONIONCOURIER_FILE_ROOT")
        self.TOR_DATA_DIR: str | None = os.getenv("ONIONCOURIER_TOR_DATA_DIR")
        self.TOR_CONTROL_PORT: int = int(
            os.getenv("ONIONCOURIER_TOR_CONTROL_PORT", "9051")
        )

        # Session settings
        self.SESSION_TTL: int = 30 * 60  # Idle seconds before a session is dropped
        self.MAX_PENDING_SESSIONS: int = int(
            os.getenv("ONIONCOURIER_MAX_PENDING_SESSIONS", "256")
        )  # Unauthenticated sessions kept before the oldest is evicted
        self.SESSION_HEADER: str = "X-Session-ID"
        self.SESSION_COOKIE: str = "session_id"

        # Notification settings
        self.ENABLE_MAIL: bool = _env_flag("ONIONCOURIER_ENABLE_MAIL")
        self.SMTP_HOST: str = os.getenv("ONIONCOURIER_SMTP_HOST", "localhost")
        self.SMTP_PORT: int = int(os.getenv("ONIONCOURIER_SMTP_PORT", "25"))
        self.SMTP_VERIFY_TLS: bool = _env_flag("ONIONCOURIER_SMTP_VERIFY_TLS")
        self.MAIL_SENDER: str = "noreply@oc2mx.net"
        self.MAIL_SENDER_NAME: str = "Onion Courier"
        self.MAIL_SUBJECT: str = "New Onion Address"
        self.SUBSCRIBERS_FILE: Path = Path(
            os.getenv("ONIONCOURIER_SUBSCRIBERS_FILE", "subscribers.txt")
        )

        # Key derivation
        self.KDF_SALT: bytes = b"ephemeral_onion_salt_secure"
        self.KDF_TIME_COST: int = 3
        self.KDF_MEMORY_COST: int = 64 * 1024  # KiB
        self.KDF_PARALLELISM: int = 4
        self.KEY_LENGTH: int = 32

        # Display
        self.TIME_FORMAT: str = "%Y-%m-%d %H:%M:%S"
        self.SHOW_KEY: bool = _env_flag("ONIONCOURIER_SHOW_KEY")

        # Logging
        self.LOG_LEVEL: int = logging.INFO
