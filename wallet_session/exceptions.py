"""
Vault Errors — typed outcomes reported to the command layer.

Every failure of a vault or session operation is one of these classes so the
caller can render distinct feedback per outcome. None of them is fatal to
the process.
"""


class VaultError(Exception):
    """Base class for all wallet vault errors."""


class AlreadyExistsError(VaultError):
    """A wallet record already exists for this user."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Wallet already exists for user {user_id}")


class NotFoundError(VaultError):
    """No wallet record exists for this user."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(
            f"Wallet not found for user {user_id}. Please create a wallet first."
        )


class WeakPasswordError(VaultError):
    """Password is shorter than the configured minimum."""

    def __init__(self, min_length: int):
        self.min_length = min_length
        super().__init__(
            f"Password must be at least {min_length} characters long"
        )


class InvalidCredentialFormatError(VaultError):
    """Supplied secret does not decode to a valid keypair."""

    def __init__(self, message: str = "Invalid private key format"):
        super().__init__(message)


class AuthenticationFailedError(VaultError):
    """Wrong password, or the stored record was altered or corrupted.

    The message is fixed: callers must not be able to tell the causes apart.
    """

    MESSAGE = "Invalid password or corrupted wallet"

    def __init__(self):
        super().__init__(self.MESSAGE)


class UnsupportedFormatError(VaultError):
    """Stored record carries a format version this build cannot read."""

    def __init__(self, version: str):
        self.version = version
        super().__init__(f"Unsupported wallet format version: {version!r}")


class NotUnlockedError(VaultError):
    """No live session for this user."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(
            f"Wallet for user {user_id} is locked. Unlock it first."
        )


class AlreadyLockedError(VaultError):
    """Lock requested for a user whose wallet is already locked."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Wallet for user {user_id} is already locked")


class IOFailureError(VaultError):
    """Underlying wallet storage is unavailable."""
