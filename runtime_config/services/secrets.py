"""Authenticated encryption for secret config values, plus bundle checksums."""

from __future__ import annotations

import hashlib
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

log = logging.getLogger(__name__)

TOKEN_PREFIX = "enc:v1:"

_SALT_BYTES = 16
_IV_BYTES = 12
_TAG_BYTES = 16
_KEY_BYTES = 32


@dataclass(frozen=True)
class EncryptedSecret:
    ciphertext: bytes
    iv: bytes
    auth_tag: bytes
    salt: bytes

    def to_token(self) -> str:
        parts = (self.salt, self.iv, self.auth_tag, self.ciphertext)
        return TOKEN_PREFIX + ":".join(p.hex() for p in parts)

    @classmethod
    def from_token(cls, token: str) -> "EncryptedSecret":
        if not is_encrypted_token(token):
            raise ValueError("not an encrypted token")
        parts = token[len(TOKEN_PREFIX):].split(":")
        if len(parts) != 4:
            raise ValueError("malformed encrypted token")
        salt, iv, tag, ct = (bytes.fromhex(p) for p in parts)
        return cls(ciphertext=ct, iv=iv, auth_tag=tag, salt=salt)


def is_encrypted_token(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(TOKEN_PREFIX)


def max_plaintext_bytes(token_limit: int) -> int:
    """Largest plaintext whose token is at most ``token_limit`` characters."""
    overhead = len(TOKEN_PREFIX) + 2 * (_SALT_BYTES + _IV_BYTES + _TAG_BYTES) + 3
    return max(0, (token_limit - overhead) // 2)


class EncryptionHelper:
    """
    AES-256-GCM with a scrypt-derived key. Every secret gets its own random
    salt and IV, both stored alongside the ciphertext.
    """

    def __init__(self, passphrase: str) -> None:
        if not passphrase:
            raise ValueError("encryption passphrase is required")
        self._passphrase = passphrase.encode("utf-8")

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = Scrypt(salt=salt, length=_KEY_BYTES, n=2**14, r=8, p=1)
        return kdf.derive(self._passphrase)

    def encrypt(self, plaintext: Union[str, bytes]) -> EncryptedSecret:
        data = plaintext.encode("utf-8") if isinstance(plaintext, str) else bytes(plaintext)
        salt = os.urandom(_SALT_BYTES)
        iv = os.urandom(_IV_BYTES)
        sealed = AESGCM(self._derive_key(salt)).encrypt(iv, data, None)
        return EncryptedSecret(
            ciphertext=sealed[:-_TAG_BYTES],
            iv=iv,
            auth_tag=sealed[-_TAG_BYTES:],
            salt=salt,
        )

    def decrypt_bytes(self, secret: EncryptedSecret) -> Optional[bytes]:
        try:
            key = self._derive_key(secret.salt)
            return AESGCM(key).decrypt(secret.iv, secret.ciphertext + secret.auth_tag, None)
        except (InvalidTag, ValueError, TypeError) as exc:
            log.error("decryption failed: %s", type(exc).__name__)
            return None

    def decrypt(self, secret: EncryptedSecret) -> Optional[str]:
        raw = self.decrypt_bytes(secret)
        if raw is None:
            return None
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            log.error("decryption failed: plaintext is not utf-8")
            return None

    def decrypt_token(self, token: str) -> Optional[str]:
        try:
            secret = EncryptedSecret.from_token(token)
        except ValueError as exc:
            log.error("decryption failed: %s", exc)
            return None
        return self.decrypt(secret)


def checksum(config_map: Mapping[str, Any]) -> str:
    """Order-independent short digest of a config map. Integrity aid, not a MAC."""
    canonical = json.dumps(config_map, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]
