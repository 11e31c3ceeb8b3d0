"""
Module: hr_kernel.services.sensitive_data
Responsibility: Field-level encryption and keyed lookup hashing for employee
    personal data.
Architecture position: Kernel > Services.  Injected into the automation
    strategies through the ``SensitiveDataService`` protocol; the strategies
    never touch keys or ciphers directly.

Ciphertext format (scheme v1):

    enc:v1:<key_id>:<iv b64url>:<tag b64url>:<payload b64url>

    AES-256-GCM, 12-byte random IV, 16-byte tag, unpadded URL-safe base64.

Invariants enforced:
    - ``is_encrypted`` is a pure prefix check, so re-running encryption over
      an already-encrypted field is a no-op.
    - ``decrypt`` never raises: plaintext input is returned unchanged and
      undecryptable ciphertext yields None.
    - Hashes are HMAC-SHA256 over the value as given.  Callers normalize
      (trim, lower-case email) before hashing.

Failure modes:
    - SensitiveDataError if encryption itself fails.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os
import re
from typing import Protocol, runtime_checkable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from hr_kernel.exceptions import SensitiveDataError
from hr_kernel.logging_config import get_logger

logger = get_logger("services.sensitive_data")

SCHEME_VERSION = "v1"
ENCRYPTED_PREFIX = f"enc:{SCHEME_VERSION}:"

_IV_BYTES = 12
_TAG_BYTES = 16
_DEV_KEY = "hr-automation-dev-key-not-for-production"
_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")


@runtime_checkable
class SensitiveDataService(Protocol):
    """Capability the automation strategies need for personal data."""

    def encrypt(self, plaintext: str) -> str: ...

    def decrypt(self, value: str | None) -> str | None: ...

    def is_encrypted(self, value: str | None) -> bool: ...

    def hash(self, value: str) -> str: ...

    def current_scheme_version(self) -> str: ...


def normalize_key(raw: str) -> bytes:
    """Turn a configured key string into 32 bytes of AES key material.

    A 64-character hex string is decoded as is, a base64 string decoding to
    exactly 32 bytes is used as is, anything else is hashed with SHA-256.
    """
    value = raw.strip()
    if _HEX_KEY.match(value):
        return bytes.fromhex(value)
    try:
        decoded = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        decoded = b""
    if len(decoded) == 32:
        return decoded
    return hashlib.sha256(value.encode("utf-8")).digest()


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _unb64(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class AesGcmSensitiveDataService:
    """
    AES-256-GCM implementation of ``SensitiveDataService``.

    Contract:
        ``encrypt`` produces a fresh IV per call, so two encryptions of the
        same plaintext differ.  Equality lookups go through ``hash``.

    Non-goals:
        - Key rotation: ciphertexts carry a key id but only one key is
          loaded at a time.
    """

    def __init__(
        self,
        encryption_key: str | None,
        hash_key: str | None = None,
        key_id: str = "default",
    ) -> None:
        if ":" in key_id:
            raise ValueError(f"Key id must not contain ':': {key_id!r}")
        if not encryption_key:
            logger.warning("sensitive_data_dev_key_in_use")
            encryption_key = _DEV_KEY
        self._key = normalize_key(encryption_key)
        self._hash_key = (hash_key or encryption_key).encode("utf-8")
        self._key_id = key_id
        self._aead = AESGCM(self._key)

    def current_scheme_version(self) -> str:
        return SCHEME_VERSION

    def is_encrypted(self, value: str | None) -> bool:
        return isinstance(value, str) and value.startswith(ENCRYPTED_PREFIX)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt the trimmed ``plaintext``; values already encrypted pass through."""
        plaintext = plaintext.strip()
        if self.is_encrypted(plaintext):
            return plaintext
        iv = os.urandom(_IV_BYTES)
        try:
            sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        except (TypeError, ValueError, OverflowError) as exc:
            raise SensitiveDataError(f"Encryption failed: {type(exc).__name__}") from exc
        payload, tag = sealed[:-_TAG_BYTES], sealed[-_TAG_BYTES:]
        return ENCRYPTED_PREFIX + ":".join(
            (self._key_id, _b64(iv), _b64(tag), _b64(payload))
        )

    def decrypt(self, value: str | None) -> str | None:
        if value is None:
            return None
        if not self.is_encrypted(value):
            return value
        parts = value[len(ENCRYPTED_PREFIX):].split(":")
        if len(parts) != 4:
            logger.warning("sensitive_data_malformed_ciphertext")
            return None
        _key_id, iv_text, tag_text, payload_text = parts
        try:
            iv = _unb64(iv_text)
            sealed = _unb64(payload_text) + _unb64(tag_text)
            return self._aead.decrypt(iv, sealed, None).decode("utf-8")
        except (InvalidTag, binascii.Error, ValueError):
            logger.warning("sensitive_data_decrypt_failed")
            return None

    def hash(self, value: str) -> str:
        return hmac.new(self._hash_key, value.encode("utf-8"), hashlib.sha256).hexdigest()


def normalize_email(value: str) -> str:
    return value.strip().lower()


def normalize_national_id(value: str) -> str:
    return value.strip()
