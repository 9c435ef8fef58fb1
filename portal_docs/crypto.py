"""
At-rest protection for cache payloads.

Payloads of sensitive cache families are JSON-encoded and encrypted with
Fernet (AES-128-CBC + HMAC-SHA256) before they reach a store. Any failure to
authenticate, decrypt or decode a token raises CacheCorruptionError, which
the cache manager turns into a purge-and-miss.
"""

import base64
import hashlib
import json
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken

from .exceptions import CacheCorruptionError
from .logger import get_module_logger

logger = get_module_logger("crypto")


class PayloadCipher:
    """Encrypts and decrypts JSON-serializable cache payloads."""

    def __init__(self, secret_key: Optional[str] = None):
        self.ephemeral = not secret_key
        self._fernet = self._build_fernet(secret_key)

    @staticmethod
    def _build_fernet(secret_key: Optional[str] = None) -> Fernet:
        """
        Build a Fernet instance from a secret key.

        Without a key a random one is generated for this process only;
        records written by earlier processes then fail to decrypt and heal
        as cache misses.
        """
        if not secret_key:
            logger.warning("No cache encryption key configured, using an ephemeral key")
            return Fernet(Fernet.generate_key())

        # Fernet needs a url-safe base64 encoded 32-byte key
        derived = hashlib.sha256(secret_key.encode("utf-8")).digest()
        return Fernet(base64.urlsafe_b64encode(derived))

    def encrypt(self, payload: Any) -> str:
        """
        Encrypt a JSON-serializable payload.

        Returns:
            Fernet token as text, ready for a JSON record.
        """
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        return self._fernet.encrypt(data).decode("ascii")

    def decrypt(self, token: Any, key: Optional[str] = None) -> Any:
        """
        Decrypt a token produced by encrypt().

        Raises:
            CacheCorruptionError: wrong key, tampered token or undecodable data
        """
        if not isinstance(token, str):
            raise CacheCorruptionError("Encrypted payload is not a token string", key=key)
        try:
            decrypted = self._fernet.decrypt(token.encode("ascii"))
        except (InvalidToken, UnicodeEncodeError):
            raise CacheCorruptionError(
                "Failed to decrypt payload, the encryption key may have changed",
                key=key,
            )
        try:
            return json.loads(decrypted.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CacheCorruptionError(f"Corrupted payload data: {e}", key=key)
