"""
Pydantic models for configuration, published state and request/response bodies.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from onioncourier.common.config import Config
from onioncourier.common.exceptions import ConfigurationError
from onioncourier.common.secure import SecureBuffer


class ServiceConfig(BaseModel):
    """Immutable runtime configuration, built once at startup."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    duration: float = Field(gt=0)
    port: int = Field(ge=1, le=65535)
    host: str = "127.0.0.1"
    password: SecureBuffer = Field(repr=False)
    tor_data_dir: Path | None = None
    tor_control_port: int = 9051
    enable_mail: bool = False
    file_root: Path
    subscribers_file: Path = Path("subscribers.txt")
    smtp_host: str = "localhost"
    smtp_port: int = 25
    smtp_verify_tls: bool = False
    show_key: bool = False

    @field_validator("password")
    @classmethod
    def _password_not_empty(cls, value: SecureBuffer) -> SecureBuffer:
        if len(value) == 0:
            msg = "password must not be empty"
            raise ValueError(msg)
        return value

    @field_validator("file_root")
    @classmethod
    def _root_is_directory(cls, value: Path) -> Path:
        root = value.expanduser().resolve()
        if not root.is_dir():
            msg = f"file root {value} is not a directory"
            raise ValueError(msg)
        return root

    @classmethod
    def from_config(cls, config: Config, **overrides: Any) -> ServiceConfig:
        """Build from ``Config`` defaults, letting non-None overrides win."""
        values: dict[str, Any] = {
            "duration": config.ROTATION_DURATION,
            "port": config.SERVER_PORT,
            "host": config.SERVER_HOST,
            "password": config.PASSWORD,
            "tor_data_dir": config.TOR_DATA_DIR,
            "tor_control_port": config.TOR_CONTROL_PORT,
            "enable_mail": config.ENABLE_MAIL,
            "file_root": config.FILE_ROOT,
            "subscribers_file": config.SUBSCRIBERS_FILE,
            "smtp_host": config.SMTP_HOST,
            "smtp_port": config.SMTP_PORT,
            "smtp_verify_tls": config.SMTP_VERIFY_TLS,
            "show_key": config.SHOW_KEY,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})

        if not values.get("password"):
            msg = "password is required"
            raise ConfigurationError(msg)
        if not values.get("file_root"):
            msg = "file root is required"
            raise ConfigurationError(msg)
        if isinstance(values["password"], str):
            values["password"] = SecureBuffer.from_str(values["password"])

        try:
            return cls(**values)
        except PydanticValidationError as err:
            raise ConfigurationError(str(err)) from err


class OnionServiceState(BaseModel):
    """One rotation cycle's published identity."""

    model_config = ConfigDict(frozen=True)

    address: str
    started_at: datetime
    valid_until: datetime
    key_hex: str = Field(repr=False)

    @classmethod
    def begin(
        cls, address: str, started_at: datetime, duration: float, key_hex: str
    ) -> OnionServiceState:
        return cls(
            address=address,
            started_at=started_at,
            valid_until=started_at + timedelta(seconds=duration),
            key_hex=key_hex,
        )

    @property
    def onion_url(self) -> str:
        return f"http://{self.address}.onion"


class OnionStatus(BaseModel):
    """Read-only view returned by ``GET /api/onion``."""

    model_config = ConfigDict(populate_by_name=True)

    onion_address: str = Field(alias="onionAddress")
    valid_until: str = Field(alias="validUntil")

    @classmethod
    def from_state(cls, state: OnionServiceState, time_format: str) -> OnionStatus:
        return cls(
            onion_address=state.onion_url,
            valid_until=state.valid_until.strftime(time_format),
        )


class SessionData(BaseModel):
    session_id: str
    created_at: float
    last_active: float
    cwd: str = "/"
    authenticated: bool = False


class LoginRequest(BaseModel):
    key: str


class LoginResponse(BaseModel):
    session_id: str
    authenticated: bool


class FileEntry(BaseModel):
    name: str
    is_dir: bool
    size: int


class FileListResponse(BaseModel):
    cwd: str
    entries: list[FileEntry]


class NotificationResult(BaseModel):
    delivered: list[str] = Field(default_factory=list)
    failures: dict[str, str] = Field(default_factory=dict)

    @property
    def success_count(self) -> int:
        return len(self.delivered)
