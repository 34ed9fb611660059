"""Wallet Vault — Password-encrypted signing keys and unlocked sessions.

Security Note (Threat Model):
    Keys are encrypted at rest with AES-256-GCM under a PBKDF2-derived key.
    While a session is unlocked the plaintext key lives in process memory
    for at most the session TTL. A memory dump during that window exposes
    it; this is an accepted limitation.
"""

from .config import VaultConfig
from .crypto import FORMAT_VERSION, KDF_ITERATIONS, derive_key, encrypt, decrypt
from .store import VaultStore
from .session_manager import SessionManager
from .rotation import rewrap_record, seal_record, upgrade_records

__all__ = [
    "VaultConfig",
    "FORMAT_VERSION",
    "KDF_ITERATIONS",
    "derive_key",
    "encrypt",
    "decrypt",
    "VaultStore",
    "SessionManager",
    "rewrap_record",
    "seal_record",
    "upgrade_records",
]
