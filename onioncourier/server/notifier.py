"""
Encrypted announcement of a new onion address to mail subscribers.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr
from typing import TYPE_CHECKING

from onioncourier.common.config import Config
from onioncourier.common.crypto import CryptoUtils
from onioncourier.common.exceptions import NotificationError
from onioncourier.common.models import NotificationResult

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

SMTP_TIMEOUT = 30


def load_subscribers(path: Path) -> list[str]:
    """Read one recipient address per line, skipping blanks."""
    try:
        lines = path.read_text().splitlines()
    except OSError as err:
        msg = f"failed to read subscribers from {path}: {err}"
        raise NotificationError(msg) from err
    return [line.strip() for line in lines if line.strip()]


def format_duration(seconds: float) -> str:
    """Render a duration like ``24h0m0s``."""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


def build_announcement(address: str, port: int, valid_until: str, duration: float) -> str:
    return (
        f"Onion Address: http://{address}.onion\n"
        f"Port: {port}\n"
        f"Valid Until: {valid_until} UTC\n"
        f"Duration: {format_duration(duration)}"
    )


class NotificationDispatcher:
    """Sends one encrypted announcement per rotation over an SMTP relay.

    The relay connection is opened per send and closed on every exit path.
    With ``verify_tls`` off, STARTTLS still encrypts the hop to the relay
    but does not authenticate it.
    """

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        sender: str | None = None,
        sender_name: str | None = None,
        subject: str | None = None,
        *,
        verify_tls: bool = False,
        smtp_factory: type[smtplib.SMTP] = smtplib.SMTP,
    ):
        config = Config()
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.sender = sender or config.MAIL_SENDER
        self.sender_name = sender_name or config.MAIL_SENDER_NAME
        self.subject = subject or config.MAIL_SUBJECT
        self.verify_tls = verify_tls
        self.smtp_factory = smtp_factory

    def _tls_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self.verify_tls:
            logger.warning(
                "SMTP relay certificate is not verified (%s:%s)",
                self.smtp_host,
                self.smtp_port,
            )
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _build_message(self, recipient: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = formataddr((self.sender_name, self.sender))
        msg["To"] = recipient
        msg["Subject"] = self.subject
        # Keep the blob on one line so it can be piped straight into decrypt.
        msg.set_content(body, cte="7bit")
        return msg

    def notify(
        self,
        address: str,
        port: int,
        key: bytes,
        valid_until: str,
        duration: float,
        subscribers: list[str],
    ) -> NotificationResult:
        """Encrypt the announcement once and deliver it to each subscriber.

        Raises:
            NotificationError: The relay could not be reached or refused
                STARTTLS. Individual recipient failures are collected in
                the result instead.
        """
        result = NotificationResult()
        if not subscribers:
            logger.info("No subscribers to notify")
            return result

        plaintext = build_announcement(address, port, valid_until, duration)
        payload = CryptoUtils.encrypt_message(plaintext, key)

        try:
            with self.smtp_factory(
                self.smtp_host, self.smtp_port, timeout=SMTP_TIMEOUT
            ) as conn:
                conn.starttls(context=self._tls_context())
                for recipient in subscribers:
                    self._deliver(conn, recipient, payload, result)
        except (smtplib.SMTPException, ssl.SSLError, OSError) as err:
            msg = f"SMTP relay {self.smtp_host}:{self.smtp_port} failed: {err}"
            raise NotificationError(msg) from err

        logger.info(
            "Notification delivered to %d of %d subscribers",
            result.success_count,
            len(subscribers),
        )
        return result

    def _deliver(
        self,
        conn: smtplib.SMTP,
        recipient: str,
        payload: str,
        result: NotificationResult,
    ) -> None:
        try:
            conn.send_message(
                self._build_message(recipient, payload),
                from_addr=self.sender,
                to_addrs=[recipient],
            )
        except smtplib.SMTPServerDisconnected as err:
            msg = f"SMTP relay disconnected while sending to {recipient}"
            raise NotificationError(msg) from err
        except smtplib.SMTPException as err:
            logger.warning("Mail to %s failed: %s", recipient, err)
            result.failures[recipient] = str(err)
            try:
                conn.rset()
            except smtplib.SMTPServerDisconnected as rset_err:
                msg = "SMTP relay disconnected after a failed recipient"
                raise NotificationError(msg) from rset_err
            return
        result.delivered.append(recipient)
