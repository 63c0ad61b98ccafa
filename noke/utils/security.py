# noke/utils/security.py
import logging
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken
from base64 import urlsafe_b64decode

logger = logging.getLogger(__name__)

# Marks values produced by FernetEncryptor; anything without it is legacy plaintext
CIPHERTEXT_PREFIX = "fernet:"


class CipherError(Exception):
    """Raised when encryption or decryption cannot be performed."""


def generate_fernet_key() -> str:
    """Generates a new Fernet key and returns it as a string."""
    key_bytes = Fernet.generate_key()
    return key_bytes.decode('utf-8')


def is_encrypted(value: Optional[str]) -> bool:
    return bool(value) and value.startswith(CIPHERTEXT_PREFIX)


class FernetEncryptor:
    """
    Handles encryption and decryption of short secrets using Fernet.

    Ciphertexts are stored as ``fernet:<token>``. ``decrypt`` hands back any
    value lacking that prefix unchanged, so records written before encryption
    was introduced keep working.
    """

    def __init__(self, encryption_key: Optional[str]):
        """
        Args:
            encryption_key: Base64-encoded Fernet key string, or None. A
                missing or malformed key leaves the encryptor unusable for
                ciphertext (``key_valid`` is False) instead of failing startup.
        """
        self.fernet_instance: Optional[Fernet] = self._load_key(encryption_key)
        self.key_valid = self.fernet_instance is not None

    @staticmethod
    def _load_key(encryption_key: Optional[str]) -> Optional[Fernet]:
        if not encryption_key:
            logger.critical(
                "CRITICAL: NOKE_ENCRYPTION_KEY is not set. "
                "Rolling keys, TOTP secrets and entry passwords cannot be encrypted."
            )
            return None
        key_bytes = encryption_key.encode('utf-8')
        try:
            # Fernet keys decode to exactly 32 bytes
            raw_length = len(urlsafe_b64decode(key_bytes))
            if raw_length != 32:
                logger.error(f"NOKE_ENCRYPTION_KEY decodes to {raw_length} bytes, expected 32.")
                return None
            fernet = Fernet(key_bytes)
        except ValueError as e:
            logger.error(f"NOKE_ENCRYPTION_KEY is not a valid Fernet key: {e}")
            return None
        logger.info("FernetEncryptor ready.")
        return fernet

    def encrypt(self, data: str) -> str:
        """
        Encrypt a string.

        Empty values are returned unchanged.

        Raises:
            CipherError: If no valid key is configured.
        """
        if not data:
            return data
        if not self.fernet_instance or not self.key_valid:
            logger.error("Cannot encrypt: Fernet instance not available or key is invalid.")
            raise CipherError("Encryption key is not configured.")
        token = self.fernet_instance.encrypt(data.encode('utf-8')).decode('utf-8')
        return f"{CIPHERTEXT_PREFIX}{token}"

    def decrypt(self, encrypted_data: str) -> str:
        """
        Decrypt a value produced by ``encrypt``.

        Values without the ciphertext prefix are legacy plaintext and are
        returned as-is.

        Raises:
            CipherError: If the key is missing or the ciphertext does not
                verify (wrong key or corrupted data).
        """
        if not is_encrypted(encrypted_data):
            return encrypted_data
        if not self.fernet_instance or not self.key_valid:
            logger.error("Cannot decrypt: Fernet instance not available or key is invalid.")
            raise CipherError("Encryption key is not configured.")
        token = encrypted_data[len(CIPHERTEXT_PREFIX):]
        try:
            return self.fernet_instance.decrypt(token.encode('utf-8')).decode('utf-8')
        except InvalidToken:
            logger.error(
                "Decryption failed: Invalid token. "
                "This may be due to an incorrect key or corrupted data."
            )
            raise CipherError("Stored ciphertext could not be decrypted.")
