"""
Token encryption at rest

AES-256-GCM with a key derived from an operator secret via scrypt.
Stored format is hex ``iv:auth_tag:ciphertext`` so encrypted values can be
told apart from legacy plaintext tokens.
"""
import logging
import os
from functools import lru_cache
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from whoop_mcp.config import settings

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_SALT = b"whoop-mcp-token-encryption"

# scrypt cost parameters (N=2^14, r=8, p=1)
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1


class TokenEncryptionError(Exception):
    """Base class for token encryption errors"""
    pass


class EncryptionConfigError(TokenEncryptionError):
    """No encryption secret configured"""
    pass


class InvalidEncryptedPayload(TokenEncryptionError):
    """Stored ciphertext is malformed or fails authentication"""
    pass


@lru_cache(maxsize=4)
def _derive_key(secret: str) -> bytes:
    kdf = Scrypt(salt=KEY_SALT, length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(secret.encode("utf-8"))


def get_encryption_key(secret: Optional[str] = None) -> bytes:
    """
    Derive the AES key

    Args:
        secret: operator secret (defaults to ENCRYPTION_SECRET / WHOOP_CLIENT_SECRET)

    Returns:
        32-byte key

    Raises:
        EncryptionConfigError: no secret available
    """
    secret = secret or settings.encryption_secret
    if not secret:
        raise EncryptionConfigError(
            "No encryption secret available (set ENCRYPTION_SECRET or WHOOP_CLIENT_SECRET)"
        )
    return _derive_key(secret)


def encrypt(text: str, secret: Optional[str] = None) -> str:
    """Encrypt text into ``iv:tag:ciphertext`` hex form"""
    key = get_encryption_key(secret)
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(key).encrypt(iv, text.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"


def decrypt(encrypted_data: str, secret: Optional[str] = None) -> str:
    """
    Decrypt an ``iv:tag:ciphertext`` value

    Raises:
        EncryptionConfigError: no secret available
        InvalidEncryptedPayload: malformed value or authentication failure
    """
    key = get_encryption_key(secret)

    parts = encrypted_data.split(":")
    if len(parts) != 3 or not all(parts):
        raise InvalidEncryptedPayload("Invalid encrypted data format")

    try:
        iv = bytes.fromhex(parts[0])
        tag = bytes.fromhex(parts[1])
        ciphertext = bytes.fromhex(parts[2])
    except ValueError as e:
        raise InvalidEncryptedPayload(f"Invalid encrypted data encoding: {e}") from e

    if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
        raise InvalidEncryptedPayload("Invalid IV or auth tag length")

    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        raise InvalidEncryptedPayload("Decryption failed: authentication tag mismatch") from e

    return plaintext.decode("utf-8")


def is_encrypted(data: str) -> bool:
    """Format sniffing: three colon-separated parts with a hex IV of the right length"""
    parts = data.split(":")
    if len(parts) != 3 or len(parts[0]) != IV_LENGTH * 2:
        return False
    try:
        bytes.fromhex(parts[0])
    except ValueError:
        return False
    return True


def decrypt_stored(value: str, secret: Optional[str] = None) -> str:
    """Decrypt a stored value, passing legacy plaintext through unchanged"""
    if not is_encrypted(value):
        logger.warning("Loaded a plaintext token from storage; it will be encrypted on next save")
        return value
    return decrypt(value, secret)
