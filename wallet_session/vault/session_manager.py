"""
SessionManager — Time-bounded unlocked wallets held in memory.

Per user the state is either Locked (no entry) or Unlocked (entry whose
deadline is in the future):

- ``unlock(user_id, password)`` — decrypt via the store, install a session
- ``get(user_id)`` — return the live key and address
- ``lock(user_id)`` — end the session
- expiry timer — ends the session after the TTL and notifies ``on_expire``

Same-user transitions are serialized by a per-user ``asyncio.Lock``. The
expiry handle lives on the session and is cancelled on every exit from
Unlocked, so a timer scheduled for an older session can never evict a
newer one.

Security Note:
    Decrypted keys exist in process memory for at most the TTL. They are
    zeroed when the session ends; copies returned by ``get()`` belong to
    the caller. Never log key material.
"""
import time
import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any, Optional

from ..data import Session, UnlockedWallet
from ..exceptions import AlreadyLockedError, NotUnlockedError
from .config import VaultConfig
from .store import VaultStore

logger = logging.getLogger("wallet.vault")

ExpireCallback = Callable[[str], Any]


class SessionManager:
    """In-memory cache of unlocked wallets with cancellable expiry.

    Blocking store calls (file I/O and key derivation) run in worker
    threads, so unlocking one user never stalls another.
    """

    def __init__(
        self,
        store: VaultStore,
        session_ttl: Optional[float] = None,
        on_expire: Optional[ExpireCallback] = None,
        config: Optional[VaultConfig] = None,
    ):
        config = config or VaultConfig()
        self._store = store
        self._ttl = float(session_ttl if session_ttl is not None else config.session_ttl)
        if self._ttl <= 0:
            raise ValueError("session_ttl must be positive")
        self._on_expire = on_expire
        self._sessions: dict[str, Session] = {}
        # user id -> [lock, number of tasks holding or waiting on it]
        self._locks: dict[str, list] = {}
        self._callbacks: set[asyncio.Future] = set()
        self._closed = False

    @property
    def session_ttl(self) -> float:
        return self._ttl

    @property
    def store(self) -> VaultStore:
        return self._store

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        """Hold the lock serializing transitions for one user.

        The entry is dropped once no task holds or awaits it, so the map
        only contains users with an operation in flight.
        """
        entry = self._locks.get(user_id)
        if entry is None:
            entry = self._locks[user_id] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if not entry[1]:
                del self._locks[user_id]

    # ------------------------------------------------------------------
    # Session transitions
    # ------------------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Session manager is closed")

    def _install(self, session: Session) -> None:
        """Replace any current session for the user with ``session``.

        Runs without suspension points: the prior timer is cancelled and
        the new one scheduled before any other task can observe the cache.
        """
        prior = self._sessions.pop(session.user_id, None)
        if prior is not None:
            prior.end()
        loop = asyncio.get_running_loop()
        session.handle = loop.call_later(self._ttl, self._expire, session)
        self._sessions[session.user_id] = session

    def _expire(self, session: Session) -> None:
        """Timer body: end ``session`` if it is still the current one."""
        if self._sessions.get(session.user_id) is not session:
            return
        del self._sessions[session.user_id]
        session.handle = None
        session.end()
        logger.info("Session expired: user=%s", session.user_id)
        self._notify_expired(session.user_id)

    def _notify_expired(self, user_id: str) -> None:
        if self._on_expire is None:
            return
        try:
            result = self._on_expire(user_id)
        except Exception:
            logger.exception("Expiry callback failed for user=%s", user_id)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._callbacks.add(task)
            task.add_done_callback(self._callback_done)

    def _callback_done(self, task: asyncio.Future) -> None:
        self._callbacks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Expiry callback failed: %s", task.exception(),
                exc_info=task.exception(),
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def unlock(self, user_id: str, password: str) -> str:
        """Decrypt a wallet and start (or restart) its session.

        Args:
            user_id: Owner of the wallet.
            password: Wallet password.

        Returns:
            The wallet address.

        Raises:
            NotFoundError: If the user has no wallet.
            AuthenticationFailedError: Wrong password or corrupted record;
                any existing session is left untouched.
            RuntimeError: If the manager was closed before the session
                could be installed.
        """
        user_id = str(user_id)
        self._check_open()
        async with self._user_lock(user_id):
            wallet = await asyncio.to_thread(self._store.load, user_id, password)
            # close() may have run while the key was being derived
            self._check_open()
            session = Session(
                user_id=user_id,
                secret=bytearray(wallet.private_key.encode("utf-8")),
                address=wallet.address,
                expires_at=time.monotonic() + self._ttl,
            )
            self._install(session)
        logger.info("Session unlocked: user=%s ttl=%ss", user_id, self._ttl)
        return session.address

    def get(self, user_id: str) -> UnlockedWallet:
        """Return the unlocked key and address for a signing operation.

        An entry past its deadline is treated as absent even if its timer
        has not fired yet.

        Raises:
            NotUnlockedError: If no live session exists.
        """
        user_id = str(user_id)
        session = self._sessions.get(user_id)
        if session is None or session.expired(time.monotonic()):
            raise NotUnlockedError(user_id)
        return session.wallet()

    async def lock(self, user_id: str) -> bool:
        """End a user's session.

        Returns:
            True when a live session was ended.

        Raises:
            AlreadyLockedError: If no live session existed.
        """
        user_id = str(user_id)
        async with self._user_lock(user_id):
            session = self._sessions.pop(user_id, None)
            if session is None:
                raise AlreadyLockedError(user_id)
            expired = session.expired(time.monotonic())
            session.end()
            if expired:
                raise AlreadyLockedError(user_id)
        logger.info("Session locked: user=%s", user_id)
        return True

    def is_unlocked(self, user_id: str) -> bool:
        session = self._sessions.get(str(user_id))
        return session is not None and not session.expired(time.monotonic())

    def expires_in(self, user_id: str) -> Optional[float]:
        """Seconds until the user's session expires, or None if locked."""
        session = self._sessions.get(str(user_id))
        if session is None:
            return None
        remaining = session.expires_at - time.monotonic()
        return remaining if remaining > 0 else None

    async def create(self, user_id: str, password: str) -> UnlockedWallet:
        """Create a wallet in a worker thread. Does not unlock it."""
        user_id = str(user_id)
        async with self._user_lock(user_id):
            return await asyncio.to_thread(self._store.create, user_id, password)

    async def import_key(self, user_id: str, password: str, raw_secret: str) -> str:
        """Import a wallet key in a worker thread. Does not unlock it."""
        user_id = str(user_id)
        async with self._user_lock(user_id):
            return await asyncio.to_thread(
                self._store.import_key, user_id, password, raw_secret,
            )

    async def remove(self, user_id: str, password: str) -> None:
        """Delete a wallet and end any session backed by it.

        Raises:
            NotFoundError: If the user has no wallet.
            AuthenticationFailedError: If the password does not open it.
        """
        user_id = str(user_id)
        async with self._user_lock(user_id):
            await asyncio.to_thread(self._store.remove, user_id, password)
            session = self._sessions.pop(user_id, None)
            if session is not None:
                session.end()
        logger.info(
            "Wallet removed: user=%s session_ended=%s", user_id, session is not None,
        )

    async def close(self) -> None:
        """End every session (process shutdown). No expiry notifications.

        The manager stays closed: an ``unlock`` still deriving its key when
        this runs is refused instead of installing a session, and pending
        expiry callbacks are cancelled.
        """
        self._closed = True
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            session.end()
        callbacks = list(self._callbacks)
        for task in callbacks:
            task.cancel()
        if callbacks:
            await asyncio.gather(*callbacks, return_exceptions=True)
        logger.info("Session manager closed: %d session(s) ended", len(sessions))
