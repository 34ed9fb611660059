"""Wallet Session.

Encrypted wallet vault with time-bounded unlocked sessions.
"""
from .version import __version__
from .data import Session, UnlockedWallet, WalletRecord
from .exceptions import (
    VaultError,
    AlreadyExistsError,
    NotFoundError,
    WeakPasswordError,
    InvalidCredentialFormatError,
    AuthenticationFailedError,
    UnsupportedFormatError,
    NotUnlockedError,
    AlreadyLockedError,
    IOFailureError,
)
from .vault import SessionManager, VaultConfig, VaultStore

__all__ = (
    "__version__",
    "Session",
    "UnlockedWallet",
    "WalletRecord",
    "VaultError",
    "AlreadyExistsError",
    "NotFoundError",
    "WeakPasswordError",
    "InvalidCredentialFormatError",
    "AuthenticationFailedError",
    "UnsupportedFormatError",
    "NotUnlockedError",
    "AlreadyLockedError",
    "IOFailureError",
    "SessionManager",
    "VaultConfig",
    "VaultStore",
)
