"""
Command-line interface for the onion courier.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

import click

from onioncourier.common.config import Config
from onioncourier.common.crypto import CryptoUtils
from onioncourier.common.exceptions import (
    ConfigurationError,
    DecryptionError,
    TransportError,
)
from onioncourier.common.models import ServiceConfig
from onioncourier.server import start_server

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(h|m|s)")
_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}


class DurationType(click.ParamType):
    """Accepts ``90``, ``90s``, ``30m``, ``24h`` or ``1h30m``; yields seconds."""

    name = "duration"

    def convert(self, value, param, ctx):  # noqa: ANN001, ANN201
        if isinstance(value, (int, float)):
            return float(value)
        text = value.strip().lower()
        try:
            return float(text)
        except ValueError:
            pass
        parts = _DURATION_PART.findall(text)
        if not parts or "".join(n + u for n, u in parts) != text:
            self.fail(f"{value!r} is not a valid duration", param, ctx)
        return float(sum(float(n) * _UNIT_SECONDS[u] for n, u in parts))


DURATION = DurationType()


@click.group()
def cli() -> None:
    """Onion Courier: rotating onion service with encrypted address mail"""


@cli.command()
@click.option(
    "-d",
    "--duration",
    type=DURATION,
    default=None,
    help="Time between address rotations, e.g. 30m or 24h (default: 1440m)",
)
@click.option("-p", "--port", type=int, default=None, help="Local port to serve on")
@click.option(
    "-s",
    "--password",
    envvar="ONIONCOURIER_PASSWORD",
    default=None,
    help="Encryption password (required, or ONIONCOURIER_PASSWORD)",
)
@click.option("-t", "--tor-data-dir", default=None, help="Tor data directory")
@click.option(
    "-m", "--mail/--no-mail", "enable_mail", default=None, help="Enable email notifications"
)
@click.option("-f", "--root", "file_root", default=None, help="Root folder for file management")
@click.option("--subscribers", "subscribers_file", default=None, help="Subscriber list file")
@click.option("--smtp-host", default=None, help="SMTP relay host (default: localhost)")
@click.option("--smtp-port", type=int, default=None, help="SMTP relay port (default: 25)")
@click.option(
    "--verify-tls/--no-verify-tls",
    "smtp_verify_tls",
    default=None,
    help="Verify the SMTP relay certificate",
)
@click.option(
    "--show-key/--hide-key",
    default=None,
    help="Print the full cycle key in the rotation banner",
)
@click.option("--log-level", default="INFO", show_default=True, help="Logging level")
def serve(  # noqa: PLR0913
    duration: float | None,
    port: int | None,
    password: str | None,
    tor_data_dir: str | None,
    enable_mail: bool | None,  # noqa: FBT001
    file_root: str | None,
    subscribers_file: str | None,
    smtp_host: str | None,
    smtp_port: int | None,
    smtp_verify_tls: bool | None,  # noqa: FBT001
    show_key: bool | None,  # noqa: FBT001
    log_level: str,
) -> None:
    """Start the rotating onion service"""
    try:
        service_config = ServiceConfig.from_config(
            Config(),
            duration=duration,
            port=port,
            password=password,
            tor_data_dir=tor_data_dir,
            enable_mail=enable_mail,
            file_root=file_root,
            subscribers_file=subscribers_file,
            smtp_host=smtp_host,
            smtp_port=smtp_port,
            smtp_verify_tls=smtp_verify_tls,
            show_key=show_key,
        )
    except ConfigurationError as err:
        msg = f"ERROR: {err}"
        raise click.ClickException(msg) from err

    try:
        start_server(
            service_config, log_level=getattr(logging, log_level.upper(), logging.INFO)
        )
    except TransportError as err:
        msg = f"ERROR: {err}"
        raise click.ClickException(msg) from err


@cli.command()
@click.argument("keyfile", type=click.Path(dir_okay=False, path_type=Path))
def keygen(keyfile: Path) -> None:
    """Generate a 256-bit key file"""
    CryptoUtils.save_key(keyfile, CryptoUtils.generate_key())
    click.echo(f"256-bit key successfully generated and saved to {keyfile}")


def _load_key(keyfile: Path) -> bytes:
    try:
        return CryptoUtils.load_key(keyfile)
    except (OSError, ValueError) as err:
        msg = f"Error loading key: {err}"
        raise click.ClickException(msg) from err


@cli.command()
@click.argument("keyfile", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def encrypt(keyfile: Path) -> None:
    """Encrypt stdin to stdout"""
    key = _load_key(keyfile)
    plaintext = click.get_text_stream("stdin").read()
    click.echo(CryptoUtils.encrypt_message(plaintext, key), nl=False)


@cli.command()
@click.argument("keyfile", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def decrypt(keyfile: Path) -> None:
    """Decrypt stdin to stdout"""
    key = _load_key(keyfile)
    blob = click.get_text_stream("stdin").read()
    try:
        click.echo(CryptoUtils.decrypt_message(blob, key), nl=False)
    except DecryptionError as err:
        msg = f"Decryption failed: {err}"
        raise click.ClickException(msg) from err


@cli.command()
@click.option("--password", prompt=True, hide_input=True, help="Service password")
@click.option("--keyfile", type=click.Path(dir_okay=False, path_type=Path), default=None)
def derive(password: str, keyfile: Path | None) -> None:
    """Derive the notification key from the service password"""
    key = CryptoUtils.derive_key(password.encode("utf-8"))
    if keyfile is not None:
        CryptoUtils.save_key(keyfile, key)
        click.echo(f"Key saved to {keyfile}")
    else:
        click.echo(key.hex())


if __name__ == "__main__":
    cli()
