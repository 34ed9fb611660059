"""
VaultStore — Password-encrypted wallet records, one file per user.

Provides the persistence API used by the command layer:
- ``exists(user_id)`` — is a wallet record present
- ``create(user_id, password)`` — generate, encrypt and persist a new key
- ``import_key(user_id, password, raw_secret)`` — persist a caller-supplied key
- ``load(user_id, password)`` — decrypt and validate a stored key
- ``remove(user_id, password)`` — delete a record after password verification
- ``change_password()`` / ``upgrade()`` — re-encrypt an existing record

Operations on the same user id are serialized by a per-user lock; different
users never contend on a shared lock.

Security Note:
    Never log passwords, private keys or ciphertext values. Only log user
    IDs and operations.
"""
import os
import re
import logging
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import orjson
from pydantic import ValidationError

from ..data import UnlockedWallet, WalletRecord
from ..exceptions import (
    AlreadyExistsError,
    AuthenticationFailedError,
    InvalidCredentialFormatError,
    IOFailureError,
    NotFoundError,
    WeakPasswordError,
)
from .config import VaultConfig
from .crypto import (
    FORMAT_VERSION,
    decrypt_from_text,
    encrypt_to_text,
    iterations_for,
)
from .keys import address_for, generate_private_key, normalize_private_key
from .rotation import seal_record

logger = logging.getLogger("wallet.vault")

WALLET_SUFFIX = ".wallet"
_USER_ID_PATTERN = re.compile(r"^-?[A-Za-z0-9_]{1,128}$")


class VaultStore:
    """Encrypted wallet records stored as JSON files.

    Each user id maps to ``<wallet_dir>/<user_id>.wallet``. Files are
    replaced atomically, so a crash mid-write never leaves a half record.
    New records never replace an existing file, even one written by
    another store instance.
    """

    def __init__(
        self,
        wallet_dir: Optional[Path] = None,
        min_password_length: Optional[int] = None,
        config: Optional[VaultConfig] = None,
    ):
        config = config or VaultConfig()
        self._wallet_dir = Path(wallet_dir or config.wallet_dir).expanduser()
        self._min_password_length = (
            min_password_length
            if min_password_length is not None
            else config.min_password_length
        )
        # user id -> [lock, number of threads holding or waiting on it]
        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @property
    def wallet_dir(self) -> Path:
        return self._wallet_dir

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_user_id(self, user_id: str) -> str:
        """Validate a user id; it becomes a filename.

        Raises:
            ValueError: If the id is empty, too long or has unsafe characters.
        """
        user_id = str(user_id)
        if not _USER_ID_PATTERN.match(user_id):
            raise ValueError(f"Invalid wallet user id: {user_id!r}")
        return user_id

    def _check_password(self, password: str) -> None:
        if not isinstance(password, str) or len(password) < self._min_password_length:
            raise WeakPasswordError(self._min_password_length)

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------

    def _path(self, user_id: str) -> Path:
        return self._wallet_dir / f"{user_id}{WALLET_SUFFIX}"

    @contextmanager
    def _user_lock(self, user_id: str) -> Iterator[None]:
        """Hold the lock serializing operations for one user.

        Entries are dropped when the last holder or waiter leaves, so the
        map is bounded by the number of in-flight operations.
        """
        with self._locks_guard:
            entry = self._locks.get(user_id)
            if entry is None:
                entry = self._locks[user_id] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[user_id]

    def _read_record(self, user_id: str) -> WalletRecord:
        """Read and parse a record.

        Raises:
            NotFoundError: If no record file exists.
            IOFailureError: If the file cannot be read.
            AuthenticationFailedError: If the file is not a valid record.
        """
        path = self._path(user_id)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            raise NotFoundError(user_id) from None
        except OSError as err:
            raise IOFailureError(f"Cannot read wallet for user {user_id}: {err}") from err
        try:
            record = WalletRecord.from_json(data)
        except (orjson.JSONDecodeError, ValidationError):
            logger.warning("Unreadable wallet record for user=%s", user_id)
            raise AuthenticationFailedError() from None
        if record.user_id != user_id:
            logger.warning("Wallet record owner mismatch for user=%s", user_id)
            raise AuthenticationFailedError()
        return record

    def _write_record(self, record: WalletRecord, exclusive: bool = False) -> None:
        """Atomically write a record with owner-only permissions.

        With ``exclusive`` the record is published with a hard link, which
        fails if any process created the user's file in the meantime;
        otherwise an existing file is replaced.

        Raises:
            AlreadyExistsError: If ``exclusive`` and a record already exists.
            IOFailureError: If the directory or file cannot be written.
        """
        path = self._path(record.user_id)
        tmp_name = None
        try:
            self._wallet_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{record.user_id}.", suffix=".tmp", dir=self._wallet_dir,
            )
            with os.fdopen(fd, "wb") as fh:
                fh.write(record.to_json())
                fh.flush()
                os.fsync(fh.fileno())
            if os.name == "posix":
                os.chmod(tmp_name, 0o600)
            if exclusive:
                try:
                    os.link(tmp_name, path)
                except FileExistsError:
                    raise AlreadyExistsError(record.user_id) from None
            else:
                os.replace(tmp_name, path)
                tmp_name = None
        except OSError as err:
            raise IOFailureError(
                f"Cannot write wallet for user {record.user_id}: {err}"
            ) from err
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug("Could not remove temp file %s", tmp_name)

    def _open(self, record: WalletRecord, password: str) -> UnlockedWallet:
        return self._decrypt(record, password)[1]

    def _decrypt(
        self, record: WalletRecord, password: str,
    ) -> tuple[bytes, UnlockedWallet]:
        """Decrypt a record and re-validate the keypair inside it.

        Returns the raw plaintext as well, so a rewrite can seal it again
        without a second key derivation.

        Raises:
            AuthenticationFailedError: Wrong password, tampered or corrupted.
            UnsupportedFormatError: Unknown record version.
        """
        plaintext = decrypt_from_text(
            record.encrypted_key, password, iterations_for(record.version),
        )
        try:
            private_key = normalize_private_key(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, InvalidCredentialFormatError):
            raise AuthenticationFailedError() from None
        return plaintext, UnlockedWallet(private_key, address_for(private_key))

    def _persist_new(self, user_id: str, private_key: str, password: str) -> None:
        encrypted_key = encrypt_to_text(
            private_key.encode("utf-8"), password, iterations_for(FORMAT_VERSION),
        )
        self._write_record(
            WalletRecord(
                version=FORMAT_VERSION,
                user_id=user_id,
                encrypted_key=encrypted_key,
            ),
            exclusive=True,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def exists(self, user_id: str) -> bool:
        """Check if a wallet record exists for a user."""
        user_id = self._validate_user_id(user_id)
        return self._path(user_id).is_file()

    def create(self, user_id: str, password: str) -> UnlockedWallet:
        """Generate a new signing key and persist it encrypted.

        Args:
            user_id: Owner of the wallet.
            password: Password to encrypt the key with.

        Returns:
            The new key and its address, for one-time display.

        Raises:
            AlreadyExistsError: If the user already has a wallet.
            WeakPasswordError: If the password is too short.
            IOFailureError: If the record cannot be written.
        """
        user_id = self._validate_user_id(user_id)
        with self._user_lock(user_id):
            if self._path(user_id).is_file():
                raise AlreadyExistsError(user_id)
            self._check_password(password)
            private_key, address = generate_private_key()
            self._persist_new(user_id, private_key, password)
        logger.info("Wallet created: user=%s address=%s", user_id, address)
        return UnlockedWallet(private_key, address)

    def import_key(self, user_id: str, password: str, raw_secret: str) -> str:
        """Persist a caller-supplied signing key encrypted.

        Returns:
            Address of the imported key.

        Raises:
            AlreadyExistsError: If the user already has a wallet.
            WeakPasswordError: If the password is too short.
            InvalidCredentialFormatError: If the key is not a valid keypair.
            IOFailureError: If the record cannot be written.
        """
        user_id = self._validate_user_id(user_id)
        with self._user_lock(user_id):
            if self._path(user_id).is_file():
                raise AlreadyExistsError(user_id)
            self._check_password(password)
            private_key = normalize_private_key(raw_secret)
            address = address_for(private_key)
            self._persist_new(user_id, private_key, password)
        logger.info("Wallet imported: user=%s address=%s", user_id, address)
        return address

    def load(self, user_id: str, password: str) -> UnlockedWallet:
        """Decrypt a stored wallet. Performs no mutation.

        Raises:
            NotFoundError: If the user has no wallet.
            AuthenticationFailedError: Wrong password, tampered or corrupted.
            IOFailureError: If the record cannot be read.
        """
        user_id = self._validate_user_id(user_id)
        with self._user_lock(user_id):
            record = self._read_record(user_id)
            return self._open(record, password)

    def remove(self, user_id: str, password: str) -> None:
        """Delete a wallet after verifying the password opens it.

        Raises:
            NotFoundError: If the user has no wallet.
            AuthenticationFailedError: If the password does not open it.
            IOFailureError: If the record cannot be deleted.
        """
        user_id = self._validate_user_id(user_id)
        with self._user_lock(user_id):
            record = self._read_record(user_id)
            self._open(record, password)
            try:
                self._path(user_id).unlink()
            except FileNotFoundError:
                raise NotFoundError(user_id) from None
            except OSError as err:
                raise IOFailureError(
                    f"Cannot delete wallet for user {user_id}: {err}"
                ) from err
        logger.info("Wallet removed: user=%s", user_id)

    def change_password(self, user_id: str, password: str, new_password: str) -> None:
        """Re-encrypt a wallet under a new password.

        Raises:
            NotFoundError: If the user has no wallet.
            AuthenticationFailedError: If ``password`` does not open it.
            WeakPasswordError: If ``new_password`` is too short.
        """
        user_id = self._validate_user_id(user_id)
        self._check_password(new_password)
        with self._user_lock(user_id):
            record = self._read_record(user_id)
            plaintext, _ = self._decrypt(record, password)
            self._write_record(seal_record(record, plaintext, new_password))
        logger.info("Wallet password changed: user=%s", user_id)

    def upgrade(self, user_id: str, password: str) -> bool:
        """Re-encrypt a wallet written by an older format version.

        Returns:
            True if the record was rewritten, False if already current.
        """
        user_id = self._validate_user_id(user_id)
        with self._user_lock(user_id):
            record = self._read_record(user_id)
            plaintext, _ = self._decrypt(record, password)
            if record.version == FORMAT_VERSION:
                return False
            old_version = record.version
            self._write_record(seal_record(record, plaintext, password))
        logger.info(
            "Wallet upgraded: user=%s v%s -> v%s", user_id, old_version, FORMAT_VERSION,
        )
        return True
