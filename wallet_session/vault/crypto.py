"""
Vault Crypto Core — Password key derivation and authenticated encryption.

Record layout (base64 in the ``encryptedKey`` field):
    [salt 64B][nonce 16B][GCM tag 16B][ciphertext]

- Key derivation: PBKDF2-HMAC-SHA256(password, salt) → 32-byte AES key.
  The iteration count is fixed per record format version.
- Encryption: AES-256-GCM with a fresh random salt and nonce per call.

Security Note:
    Never log passwords, plaintext, ciphertext or derived keys.
    A wrong password and a tampered blob both surface as
    AuthenticationFailedError with the same message.
"""
import os
import base64
import binascii
import logging
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import AuthenticationFailedError, UnsupportedFormatError

logger = logging.getLogger("wallet.vault")

SALT_SIZE = 64
NONCE_SIZE = 16
TAG_SIZE = 16
KEY_LENGTH = 32  # AES-256
HEADER_SIZE = SALT_SIZE + NONCE_SIZE + TAG_SIZE

# Work factor per record format version. Bumping the iteration count means
# adding a new version here; existing entries must never change.
KDF_ITERATIONS: dict[str, int] = {
    "1.0": 100_000,
}
FORMAT_VERSION = "1.0"


def iterations_for(version: str) -> int:
    """Return the PBKDF2 iteration count for a record format version.

    Raises:
        UnsupportedFormatError: If the version is unknown.
    """
    try:
        return KDF_ITERATIONS[version]
    except KeyError:
        raise UnsupportedFormatError(version) from None


def _as_bytes(password: Union[str, bytes]) -> bytes:
    if isinstance(password, str):
        return password.encode("utf-8")
    return password


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(
    password: Union[str, bytes],
    salt: bytes,
    iterations: Optional[int] = None,
) -> bytes:
    """Derive a 32-byte AES key from a password using PBKDF2-HMAC-SHA256.

    Deterministic: the same password, salt and iteration count always yield
    the same key. Password strength is not checked here.

    Args:
        password: User password (str is UTF-8 encoded).
        salt: Per-record random salt.
        iterations: Work factor; defaults to the current format version's.

    Returns:
        32-byte derived key.
    """
    if iterations is None:
        iterations = KDF_ITERATIONS[FORMAT_VERSION]
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(_as_bytes(password))


# ---------------------------------------------------------------------------
# Authenticated encryption
# ---------------------------------------------------------------------------

def encrypt(
    plaintext: bytes,
    password: Union[str, bytes],
    iterations: Optional[int] = None,
) -> bytes:
    """Encrypt plaintext under a password.

    Format: [salt 64B][nonce 16B][tag 16B][ciphertext]

    Args:
        plaintext: Secret bytes to protect.
        password: Password the key is derived from.
        iterations: Work factor; defaults to the current format version's.

    Returns:
        Opaque blob in the layout above.
    """
    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(NONCE_SIZE)
    key = derive_key(password, salt, iterations)
    sealed = AESGCM(key).encrypt(nonce, plaintext, None)
    # AESGCM appends the tag; the stored layout puts it before the ciphertext
    ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    return salt + nonce + tag + ciphertext


def decrypt(
    blob: bytes,
    password: Union[str, bytes],
    iterations: Optional[int] = None,
) -> bytes:
    """Decrypt a blob produced by :func:`encrypt`.

    Args:
        blob: Bytes in [salt][nonce][tag][ciphertext] layout.
        password: Password to derive the key from.
        iterations: Work factor the blob was written with.

    Returns:
        The exact original plaintext.

    Raises:
        AuthenticationFailedError: Wrong password, truncated or altered blob.
    """
    if len(blob) < HEADER_SIZE:
        raise AuthenticationFailedError()
    salt = blob[:SALT_SIZE]
    nonce = blob[SALT_SIZE:SALT_SIZE + NONCE_SIZE]
    tag = blob[SALT_SIZE + NONCE_SIZE:HEADER_SIZE]
    ciphertext = blob[HEADER_SIZE:]
    key = derive_key(password, salt, iterations)
    try:
        return AESGCM(key).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag:
        raise AuthenticationFailedError() from None


# ---------------------------------------------------------------------------
# Text encoding for the record document
# ---------------------------------------------------------------------------

def encrypt_to_text(
    plaintext: bytes,
    password: Union[str, bytes],
    iterations: Optional[int] = None,
) -> str:
    """Encrypt and return the blob as a base64 string."""
    return base64.b64encode(encrypt(plaintext, password, iterations)).decode("ascii")


def decrypt_from_text(
    encoded: str,
    password: Union[str, bytes],
    iterations: Optional[int] = None,
) -> bytes:
    """Decode a base64 blob and decrypt it.

    Raises:
        AuthenticationFailedError: Malformed base64 or failed authentication.
    """
    try:
        blob = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise AuthenticationFailedError() from None
    return decrypt(blob, password, iterations)
