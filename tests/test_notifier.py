import smtplib
import ssl
from pathlib import Path

import pytest

from onioncourier.common.crypto import CryptoUtils
from onioncourier.common.exceptions import NotificationError
from onioncourier.server.notifier import (
    NotificationDispatcher,
    build_announcement,
    format_duration,
    load_subscribers,
)

KEY = bytes(range(32))


class FakeSMTP:
    """Records what the dispatcher does with its relay connection."""

    instances: list["FakeSMTP"] = []
    refuse_connect = False
    refuse_starttls = False
    rejected: set[str] = set()
    disconnect_on: set[str] = set()

    def __init__(self, host: str, port: int, timeout: float | None = None):
        if self.refuse_connect:
            raise ConnectionRefusedError("connection refused")
        self.host = host
        self.port = port
        self.tls_context: ssl.SSLContext | None = None
        self.sent: list[tuple[str, str, str]] = []
        self.resets = 0
        self.closed = False
        FakeSMTP.instances.append(self)

    def __enter__(self) -> "FakeSMTP":
        return self

    def __exit__(self, *exc) -> None:
        self.closed = True

    def starttls(self, context: ssl.SSLContext | None = None) -> None:
        if self.refuse_starttls:
            raise smtplib.SMTPNotSupportedError("STARTTLS extension not supported")
        self.tls_context = context

    def send_message(self, msg, from_addr=None, to_addrs=None) -> None:
        recipient = to_addrs[0]
        if recipient in self.disconnect_on:
            raise smtplib.SMTPServerDisconnected("gone")
        if recipient in self.rejected:
            raise smtplib.SMTPRecipientsRefused({recipient: (550, b"no such user")})
        self.sent.append((recipient, msg["From"], msg.get_content().strip()))

    def rset(self) -> None:
        self.resets += 1


@pytest.fixture(autouse=True)
def reset_fake_smtp():
    FakeSMTP.instances = []
    FakeSMTP.refuse_connect = False
    FakeSMTP.refuse_starttls = False
    FakeSMTP.rejected = set()
    FakeSMTP.disconnect_on = set()
    yield


@pytest.fixture
def dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher("localhost", 25, smtp_factory=FakeSMTP)


def _notify(dispatcher: NotificationDispatcher, subscribers: list[str]):
    return dispatcher.notify(
        "abcdef", 8080, KEY, "2026-10-19 12:00:00", 86400, subscribers
    )


def test_format_duration() -> None:
    assert format_duration(86400) == "24h0m0s"
    assert format_duration(90) == "1m30s"
    assert format_duration(2) == "2s"


def test_build_announcement() -> None:
    text = build_announcement("abcdef", 8080, "2026-10-19 12:00:00", 120)
    assert text == (
        "Onion Address: http://abcdef.onion\n"
        "Port: 8080\n"
        "Valid Until: 2026-10-19 12:00:00 UTC\n"
        "Duration: 2m0s"
    )


def test_notify_delivers_encrypted_payload(dispatcher: NotificationDispatcher) -> None:
    result = _notify(dispatcher, ["a@example.org", "b@example.org"])

    assert result.delivered == ["a@example.org", "b@example.org"]
    assert result.failures == {}
    conn = FakeSMTP.instances[0]
    assert conn.closed
    assert conn.tls_context is not None
    assert conn.tls_context.verify_mode == ssl.CERT_NONE

    bodies = {body for _, _, body in conn.sent}
    assert len(bodies) == 1
    body = bodies.pop()
    assert "abcdef" not in body
    assert CryptoUtils.decrypt_message(body, KEY).startswith(
        "Onion Address: http://abcdef.onion"
    )
    assert "Onion Courier" in conn.sent[0][1]


def test_consecutive_sends_differ(dispatcher: NotificationDispatcher) -> None:
    _notify(dispatcher, ["a@example.org"])
    _notify(dispatcher, ["a@example.org"])
    first = FakeSMTP.instances[0].sent[0][2]
    second = FakeSMTP.instances[1].sent[0][2]
    assert first != second
    assert CryptoUtils.decrypt_message(first, KEY) == CryptoUtils.decrypt_message(
        second, KEY
    )


def test_bad_recipient_does_not_abort(dispatcher: NotificationDispatcher) -> None:
    FakeSMTP.rejected = {"bad@example.org"}
    result = _notify(dispatcher, ["a@example.org", "bad@example.org", "c@example.org"])
    assert result.delivered == ["a@example.org", "c@example.org"]
    assert list(result.failures) == ["bad@example.org"]
    assert result.success_count == 2  # noqa: PLR2004
    assert FakeSMTP.instances[0].resets == 1
    assert FakeSMTP.instances[0].closed


def test_unreachable_relay_raises(dispatcher: NotificationDispatcher) -> None:
    FakeSMTP.refuse_connect = True
    with pytest.raises(NotificationError, match="SMTP relay"):
        _notify(dispatcher, ["a@example.org"])


def test_starttls_failure_raises_and_closes(dispatcher: NotificationDispatcher) -> None:
    FakeSMTP.refuse_starttls = True
    with pytest.raises(NotificationError):
        _notify(dispatcher, ["a@example.org"])
    assert FakeSMTP.instances[0].closed
    assert FakeSMTP.instances[0].sent == []


def test_disconnect_mid_send_raises(dispatcher: NotificationDispatcher) -> None:
    FakeSMTP.disconnect_on = {"b@example.org"}
    with pytest.raises(NotificationError, match="disconnected"):
        _notify(dispatcher, ["a@example.org", "b@example.org"])
    assert FakeSMTP.instances[0].closed


def test_no_subscribers_skips_relay(dispatcher: NotificationDispatcher) -> None:
    result = _notify(dispatcher, [])
    assert result.success_count == 0
    assert FakeSMTP.instances == []


def test_verified_tls_context() -> None:
    dispatcher = NotificationDispatcher(
        "relay.example.org", 587, verify_tls=True, smtp_factory=FakeSMTP
    )
    _notify(dispatcher, ["a@example.org"])
    assert FakeSMTP.instances[0].tls_context.verify_mode == ssl.CERT_REQUIRED


def test_load_subscribers(tmp_path: Path) -> None:
    path = tmp_path / "subscribers.txt"
    path.write_text("a@example.org\n\n  b@example.org  \n")
    assert load_subscribers(path) == ["a@example.org", "b@example.org"]
    with pytest.raises(NotificationError):
        load_subscribers(tmp_path / "missing.txt")
