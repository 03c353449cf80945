"""Fernet encryption for biometric measurements at rest.

Measurement values are stored as one encrypted JSON object per visit;
patient ids and timepoints stay in clear text so rows can be looked up.

``ENCRYPTION_KEY`` may list several comma-separated keys. The first one
encrypts; the rest are retired keys that can still decrypt until
:meth:`FieldEncryptor.rotate` has re-sealed every token.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


def _load_key(key: str) -> Fernet:
    try:
        return Fernet(key.strip().encode("utf-8"))
    except (ValueError, TypeError) as exc:
        raise EncryptionError(f"Invalid encryption key: {exc}") from exc


class FieldEncryptor:
    """Seals JSON-serializable values with the current key, opens with any known key.

    Usage::

        encryptor = FieldEncryptor(f"{new_key},{old_key}")
        token = encryptor.encrypt({"gait_speed": 0.9})
        encryptor.decrypt(token)  # {"gait_speed": 0.9}
    """

    def __init__(self, key: str) -> None:
        keys = [k for k in (key or "").split(",") if k.strip()]
        if not keys:
            raise EncryptionError("Encryption key must not be empty")
        self._fernet = MultiFernet([_load_key(k) for k in keys])
        self._key_count = len(keys)
        if self._key_count > 1:
            logger.info("Encryption keyring loaded with %d retired key(s)", self._key_count - 1)

    @property
    def key_count(self) -> int:
        return self._key_count

    def encrypt(self, data: Any) -> str:
        """Encrypt a JSON-serializable value; None encrypts to ``""``."""
        if data is None:
            return ""
        try:
            plaintext = json.dumps(data, separators=(",", ":"), sort_keys=True)
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, token: str) -> Any:
        """Decrypt a token from :meth:`encrypt`; ``""`` decrypts to None.

        Raises:
            EncryptionError: If no key in the ring can open the token.
        """
        if not token:
            return None
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        try:
            return json.loads(plaintext)
        except ValueError as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc

    def rotate(self, token: str) -> str:
        """Re-seal ``token`` under the current key. The plaintext is unchanged."""
        if not token:
            return token
        try:
            return self._fernet.rotate(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise EncryptionError("Rotation failed: invalid token or wrong key") from exc

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("utf-8")
