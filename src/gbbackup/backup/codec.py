"""
Password-based encryption of backup payloads.

Implements the ``.gbpos`` envelope, a JSON document with hex-encoded binary
fields:

    {
        "version": "1.0.0",
        "algorithm": "aes-256-gcm",
        "salt": "<32 bytes hex>",
        "iv": "<16 bytes hex>",
        "tag": "<16 bytes hex>",
        "data": "<ciphertext hex>",
        "timestamp": "2024-01-15T10:30:00+00:00"
    }

Key derivation: PBKDF2-HMAC-SHA256, 100,000 iterations, 32-byte key.
Encryption: AES-256-GCM over the gzip-compressed canonical JSON of the
payload, bound to a fixed associated-data string.

Security Design:
    - Fresh random salt and nonce for every backup
    - Tag verification happens before any plaintext is released
    - Every decryption failure raises the same InvalidBackupError, so a
      wrong password cannot be told apart from a corrupted file

Threat Model:
    - Protects against: reading or modifying a backup file at rest
    - Does NOT protect against: a compromised password, or an attacker
      who can observe the process while it runs. No forward secrecy.
"""

from __future__ import annotations

import gzip
import json
import secrets
import zlib
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from gbbackup.backup.errors import (
    InvalidBackupError,
    PasswordMismatchError,
)
from gbbackup.backup.payload import BackupPayload

# Format parameters - changing any of these breaks existing backups
ENVELOPE_FORMAT_VERSION = "1.0.0"
ALGORITHM = "aes-256-gcm"
ASSOCIATED_DATA = b"GadgetBoyPOS-Backup-v1"
KDF_ITERATIONS = 100_000
KEY_LENGTH = 32  # AES-256
SALT_LENGTH = 32
NONCE_LENGTH = 16
TAG_LENGTH = 16
ENCRYPTED_EXTENSION = ".gbpos"

ENVELOPE_FIELDS = ("version", "algorithm", "salt", "iv", "tag", "data", "timestamp")


@dataclass
class EncryptedEnvelope:
    """
    On-disk container for an encrypted backup.

    Attributes:
        format_version: Envelope layout version.
        algorithm: Cipher identifier, always "aes-256-gcm".
        salt: Key derivation salt (32 bytes).
        nonce: AES-GCM nonce (16 bytes).
        auth_tag: AES-GCM authentication tag (16 bytes).
        ciphertext: Encrypted, compressed payload.
        created_at: ISO 8601 timestamp of encryption.
    """

    format_version: str
    algorithm: str
    salt: bytes
    nonce: bytes
    auth_tag: bytes
    ciphertext: bytes
    created_at: str

    def to_dict(self) -> dict[str, str]:
        """Convert to the on-disk layout with hex-encoded binary fields."""
        return {
            "version": self.format_version,
            "algorithm": self.algorithm,
            "salt": self.salt.hex(),
            "iv": self.nonce.hex(),
            "tag": self.auth_tag.hex(),
            "data": self.ciphertext.hex(),
            "timestamp": self.created_at,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: Any) -> EncryptedEnvelope:
        """
        Parse an envelope from its on-disk layout.

        Raises:
            InvalidBackupError: If a field is missing, not hex, or the wrong size.
        """
        if not looks_like_envelope(data):
            raise InvalidBackupError()

        try:
            envelope = cls(
                format_version=data["version"],
                algorithm=data["algorithm"],
                salt=bytes.fromhex(data["salt"]),
                nonce=bytes.fromhex(data["iv"]),
                auth_tag=bytes.fromhex(data["tag"]),
                ciphertext=bytes.fromhex(data["data"]),
                created_at=data["timestamp"],
            )
        except ValueError:
            raise InvalidBackupError() from None

        if (
            envelope.algorithm.lower() != ALGORITHM
            or len(envelope.salt) != SALT_LENGTH
            or len(envelope.nonce) != NONCE_LENGTH
            or len(envelope.auth_tag) != TAG_LENGTH
        ):
            raise InvalidBackupError()

        return envelope

    @classmethod
    def from_json(cls, raw: str | bytes) -> EncryptedEnvelope:
        try:
            data = json.loads(raw)
        except (ValueError, UnicodeDecodeError):
            raise InvalidBackupError() from None
        return cls.from_dict(data)


def looks_like_envelope(data: Any) -> bool:
    """True if a parsed JSON document has every envelope field as a string."""
    if not isinstance(data, Mapping):
        return False
    return all(isinstance(data.get(name), str) and data.get(name) for name in ENVELOPE_FIELDS)


def confirm_password(password: str, confirmation: str | None) -> str:
    """
    Check an export password and its confirmation.

    Runs before any key derivation.

    Raises:
        ValueError: If the password is empty.
        PasswordMismatchError: If the confirmation differs.
    """
    if not password:
        raise ValueError("Password must not be empty.")
    if confirmation is not None and not secrets.compare_digest(
        password.encode("utf-8"), confirmation.encode("utf-8")
    ):
        raise PasswordMismatchError("Passwords do not match.")
    return password


def derive_key(password: str, salt: bytes) -> bytes:
    """
    Derive an AES-256 key from a password and salt.

    Deliberately slow (PBKDF2-HMAC-SHA256, 100,000 iterations).
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def canonical_bytes(payload: BackupPayload) -> bytes:
    """Serialize a payload to its canonical JSON byte form."""
    return json.dumps(
        payload.to_dict(),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def encrypt(payload: BackupPayload, password: str) -> EncryptedEnvelope:
    """
    Compress and encrypt a payload.

    Args:
        payload: Payload to protect. Collections must be JSON-serializable.
        password: Non-empty password.

    Returns:
        EncryptedEnvelope ready to be written to disk.

    Raises:
        ValueError: If the password is empty.
        TypeError: If the payload holds values JSON cannot represent.
    """
    confirm_password(password, None)

    salt = secrets.token_bytes(SALT_LENGTH)
    nonce = secrets.token_bytes(NONCE_LENGTH)
    key = derive_key(password, salt)

    compressed = gzip.compress(canonical_bytes(payload))
    sealed = AESGCM(key).encrypt(nonce, compressed, ASSOCIATED_DATA)

    return EncryptedEnvelope(
        format_version=ENVELOPE_FORMAT_VERSION,
        algorithm=ALGORITHM,
        salt=salt,
        nonce=nonce,
        auth_tag=sealed[-TAG_LENGTH:],
        ciphertext=sealed[:-TAG_LENGTH],
        created_at=datetime.now(UTC).isoformat(),
    )


def decrypt(envelope: EncryptedEnvelope, password: str) -> BackupPayload:
    """
    Authenticate, decrypt and decode an envelope.

    Args:
        envelope: Envelope read from disk.
        password: Password used at export time.

    Returns:
        The original BackupPayload.

    Raises:
        InvalidBackupError: On a wrong password, tampering, truncation, or
            any decoding problem. The cause is never chained.
    """
    if not password:
        raise InvalidBackupError()

    try:
        key = derive_key(password, envelope.salt)
        # AESGCM verifies the tag before returning any plaintext.
        compressed = AESGCM(key).decrypt(
            envelope.nonce,
            envelope.ciphertext + envelope.auth_tag,
            ASSOCIATED_DATA,
        )
        document = json.loads(gzip.decompress(compressed).decode("utf-8"))
        return BackupPayload.from_dict(document)
    except (
        InvalidTag,
        InvalidBackupError,
        ValueError,
        OSError,
        EOFError,
        zlib.error,
    ):
        raise InvalidBackupError() from None


def decrypt_bytes(raw: str | bytes, password: str) -> BackupPayload:
    """Parse an envelope file's contents and decrypt it."""
    return decrypt(EncryptedEnvelope.from_json(raw), password)


def encrypt_to_json(payload: BackupPayload, password: str) -> str:
    """Encrypt a payload and render the envelope as JSON text."""
    return encrypt(payload, password).to_json()
