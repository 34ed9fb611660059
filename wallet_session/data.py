"""Wallet data types.

``WalletRecord`` is the persisted document, one per user identity.
``Session`` is the in-memory unlocked state; it is never serialized.
"""
import asyncio
from typing import Any, NamedTuple, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone

import orjson
from pydantic import AliasChoices, BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WalletRecord(BaseModel):
    """Encrypted wallet document stored at rest.

    On disk the fields use camelCase keys (``userId``, ``encryptedKey``,
    ``createdAt``). Older records keyed by ``chatId`` are accepted too.
    """

    version: str
    user_id: str = Field(
        validation_alias=AliasChoices("userId", "chatId", "user_id"),
        serialization_alias="userId",
    )
    encrypted_key: str = Field(
        validation_alias=AliasChoices("encryptedKey", "encrypted_key"),
        serialization_alias="encryptedKey",
    )
    created_at: datetime = Field(
        default_factory=_utcnow,
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_user_id(cls, v: Any) -> Any:
        """Chat ids were written as JSON numbers by earlier runs."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    def to_json(self) -> bytes:
        """Serialize to the on-disk JSON document."""
        return orjson.dumps(
            self.model_dump(mode="json", by_alias=True),
            option=orjson.OPT_INDENT_2,
        )

    @classmethod
    def from_json(cls, data: bytes) -> "WalletRecord":
        """Parse an on-disk JSON document.

        Raises:
            orjson.JSONDecodeError: If the document is not JSON.
            pydantic.ValidationError: If required fields are missing.
        """
        return cls.model_validate(orjson.loads(data))


class UnlockedWallet(NamedTuple):
    """Decrypted signing key handed to a signing operation."""
    private_key: str
    address: str


@dataclass(eq=False)
class Session:
    """Unlocked wallet held in memory until lock or expiry.

    ``expires_at`` is a ``time.monotonic()`` deadline.
    """

    user_id: str
    secret: bytearray = field(repr=False)
    address: str
    expires_at: float
    handle: Optional[asyncio.TimerHandle] = field(default=None, repr=False)

    def expired(self, now: float) -> bool:
        return now >= self.expires_at

    def wallet(self) -> UnlockedWallet:
        return UnlockedWallet(self.secret.decode("utf-8"), self.address)

    def end(self) -> None:
        """Cancel the expiry timer and overwrite the secret with zeros.

        Best effort: copies already handed out by :meth:`wallet` are not
        reachable from here.
        """
        if self.handle is not None:
            self.handle.cancel()
            self.handle = None
        for i in range(len(self.secret)):
            self.secret[i] = 0
        self.secret.clear()
