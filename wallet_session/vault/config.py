"""
Vault Configuration — validated settings for the wallet store and sessions.

Reads settings from environment variables:
    WALLET_VAULT_DIR = <directory holding one ``<user_id>.wallet`` per user>
    WALLET_SESSION_TTL = <seconds an unlocked session stays valid>
    WALLET_MIN_PASSWORD_LENGTH = <integer>

Security Note:
    Passwords and keys are never part of the configuration.
"""
import os
import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("wallet.vault")

DEFAULT_WALLET_DIR = Path.home() / ".wallets"
DEFAULT_SESSION_TTL = 900.0
DEFAULT_MIN_PASSWORD_LENGTH = 8


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    wallet_dir: Path = Field(default=DEFAULT_WALLET_DIR)
    session_ttl: float = Field(default=DEFAULT_SESSION_TTL, gt=0)
    min_password_length: int = Field(default=DEFAULT_MIN_PASSWORD_LENGTH, ge=1)

    @field_validator("wallet_dir")
    @classmethod
    def expand_wallet_dir(cls, v: Path) -> Path:
        """Expand ``~`` so the directory is stable across working dirs."""
        return v.expanduser()

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        values = {}
        wallet_dir = os.environ.get("WALLET_VAULT_DIR")
        if wallet_dir:
            values["wallet_dir"] = wallet_dir
        session_ttl = os.environ.get("WALLET_SESSION_TTL")
        if session_ttl:
            values["session_ttl"] = session_ttl
        min_length = os.environ.get("WALLET_MIN_PASSWORD_LENGTH")
        if min_length:
            values["min_password_length"] = min_length
        config = cls(**values)
        logger.debug(
            "Vault config: wallet_dir=%s session_ttl=%s min_password_length=%d",
            config.wallet_dir, config.session_ttl, config.min_password_length,
        )
        return config
