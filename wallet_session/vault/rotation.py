"""
Vault Rotation — Re-encryption of wallet records.

Used for password changes and for moving records written under an older
format version (older work factor) to the current one. Records are
re-encrypted with a fresh salt and nonce every time.

Security Note:
    Plaintext exists in memory only during re-encryption of each record.
    Never log plaintext, passwords or ciphertext values.
"""
import logging
from collections.abc import Mapping
from typing import Any, Optional

from ..data import WalletRecord
from ..exceptions import VaultError
from .crypto import (
    FORMAT_VERSION,
    KDF_ITERATIONS,
    decrypt_from_text,
    encrypt_to_text,
    iterations_for,
)

logger = logging.getLogger("wallet.vault")


def rewrap_record(
    record: WalletRecord,
    password: str,
    new_password: Optional[str] = None,
) -> WalletRecord:
    """Decrypt a record and encrypt it again under the current format version.

    Args:
        record: Stored record, any supported version.
        password: Password the record is currently encrypted with.
        new_password: Password to encrypt with; defaults to ``password``.

    Returns:
        A new record for the same user with the original ``created_at``.

    Raises:
        AuthenticationFailedError: If ``password`` does not open the record.
        UnsupportedFormatError: If the record version is unknown.
    """
    plaintext = decrypt_from_text(
        record.encrypted_key, password, iterations_for(record.version),
    )
    return seal_record(
        record, plaintext, new_password if new_password is not None else password,
    )


def seal_record(record: WalletRecord, plaintext: bytes, password: str) -> WalletRecord:
    """Encrypt already-decrypted key material as a current-version record.

    Keeps the user id and ``created_at`` of ``record``; salt and nonce are
    fresh.
    """
    encrypted_key = encrypt_to_text(
        plaintext, password, KDF_ITERATIONS[FORMAT_VERSION],
    )
    return WalletRecord(
        version=FORMAT_VERSION,
        user_id=record.user_id,
        encrypted_key=encrypted_key,
        created_at=record.created_at,
    )


def upgrade_records(store: Any, credentials: Mapping[str, str]) -> dict:
    """Upgrade many wallet records to the current format version.

    Records can only be re-encrypted with their owner's password, so the
    caller supplies a mapping of user id to password (typically collected
    as users unlock). Failures are logged and counted; the batch continues.

    Args:
        store: A ``VaultStore``.
        credentials: Mapping of user id to that user's password.

    Returns:
        Stats dict with keys: total, rotated, errors, skipped.
    """
    stats = {"total": 0, "rotated": 0, "errors": 0, "skipped": 0}

    logger.info(
        "Starting wallet upgrade to v%s (%d record(s))",
        FORMAT_VERSION, len(credentials),
    )

    for user_id, password in credentials.items():
        stats["total"] += 1
        try:
            if store.upgrade(user_id, password):
                stats["rotated"] += 1
            else:
                stats["skipped"] += 1
        except (VaultError, ValueError) as err:
            logger.error("Error upgrading wallet user=%s: %s", user_id, err)
            stats["errors"] += 1

    logger.info("Wallet upgrade complete: %s", stats)
    return stats
