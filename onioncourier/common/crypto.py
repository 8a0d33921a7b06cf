"""Common cryptographic utilities.
"""

from __future__ import annotations

import base64
import binascii
import os
from typing import TYPE_CHECKING

from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from onioncourier.common.config import Config
from onioncourier.common.exceptions import DecryptionError

if TYPE_CHECKING:
    from pathlib import Path

NONCE_SIZE = 12
KEY_SIZE = 32


class CryptoUtils:
    """Utility class for cryptographic operations."""

    @staticmethod
    def derive_key(password: bytes, config: Config | None = None) -> bytes:
        """Derive a 32-byte key from the operator password with Argon2id.

        The salt is fixed for the deployment, so the same password always
        yields the same key.
        """
        config = config or Config()
        return hash_secret_raw(
            secret=password,
            salt=config.KDF_SALT,
            time_cost=config.KDF_TIME_COST,
            memory_cost=config.KDF_MEMORY_COST,
            parallelism=config.KDF_PARALLELISM,
            hash_len=config.KEY_LENGTH,
            type=Type.ID,
        )

    @staticmethod
    def derive_key_hex(password: bytes, config: Config | None = None) -> str:
        return CryptoUtils.derive_key(password, config).hex()

    @staticmethod
    def encrypt_message(plaintext: str, key: bytes) -> str:
        """Encrypt with AES-256-GCM and return base64(nonce || ciphertext)."""
        nonce = os.urandom(NONCE_SIZE)
        sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    @staticmethod
    def decrypt_message(blob: str, key: bytes) -> str:
        """Inverse of ``encrypt_message``."""
        try:
            raw = base64.b64decode(blob.strip(), validate=True)
        except (binascii.Error, ValueError) as err:
            msg = "failed to decode base64"
            raise DecryptionError(msg) from err
        if len(raw) < NONCE_SIZE:
            msg = "ciphertext too short"
            raise DecryptionError(msg)
        nonce, sealed = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        try:
            plaintext = AESGCM(key).decrypt(nonce, sealed, None)
        except InvalidTag as err:
            msg = "decryption failed"
            raise DecryptionError(msg) from err
        return plaintext.decode("utf-8")

    @staticmethod
    def redact_key(hex_key: str) -> str:
        """Shorten a hex key for operator display."""
        return f"{hex_key[:8]}…"

    @staticmethod
    def generate_key() -> bytes:
        return AESGCM.generate_key(bit_length=KEY_SIZE * 8)

    @staticmethod
    def save_key(path: Path, key: bytes) -> None:
        """Write a key as hex, readable by the owner only."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(key.hex())

    @staticmethod
    def load_key(path: Path) -> bytes:
        """Read a hex key file written by ``save_key``."""
        hex_key = "".join(path.read_text().split())
        try:
            key = bytes.fromhex(hex_key)
        except ValueError as err:
            msg = f"invalid hex key in {path}"
            raise ValueError(msg) from err
        if len(key) != KEY_SIZE:
            msg = "invalid key length. Expected 32 bytes (256-bit key)"
            raise ValueError(msg)
        return key
