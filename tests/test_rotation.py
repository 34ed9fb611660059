"""
Tests for record re-encryption: password change, format upgrade and the
batch upgrade helper.
"""
import orjson
import pytest

from wallet_session.data import WalletRecord
from wallet_session.exceptions import (
    AuthenticationFailedError,
    UnsupportedFormatError,
    WeakPasswordError,
)
from wallet_session.vault import crypto
from wallet_session.vault.crypto import encrypt_to_text
from wallet_session.vault.rotation import rewrap_record, upgrade_records

PASSWORD = "correcthorse"
KNOWN_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
KNOWN_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
LEGACY = "0.9"


@pytest.fixture
def legacy_version(monkeypatch):
    """Register an older format version with a different work factor."""
    monkeypatch.setitem(crypto.KDF_ITERATIONS, LEGACY, 500)
    return LEGACY


def write_legacy(store, user_id, password=PASSWORD):
    store.wallet_dir.mkdir(parents=True, exist_ok=True)
    document = {
        "version": LEGACY,
        "userId": user_id,
        "encryptedKey": encrypt_to_text(KNOWN_KEY.encode(), password, 500),
        "createdAt": "2023-06-01T12:00:00Z",
    }
    (store.wallet_dir / f"{user_id}.wallet").write_bytes(orjson.dumps(document))


def read_document(store, user_id):
    return orjson.loads((store.wallet_dir / f"{user_id}.wallet").read_bytes())


def count_derivations(monkeypatch):
    """Record the work factor of every key derivation."""
    calls = []
    derive_key = crypto.derive_key

    def counting(password, salt, iterations=None):
        calls.append(iterations)
        return derive_key(password, salt, iterations)

    monkeypatch.setattr(crypto, "derive_key", counting)
    return calls


class TestChangePassword:
    """Tests for re-encrypting under a new password."""

    def test_change_password(self, store):
        wallet = store.create("42", PASSWORD)
        before = read_document(store, "42")
        store.change_password("42", PASSWORD, "new password!")
        after = read_document(store, "42")
        assert after["encryptedKey"] != before["encryptedKey"]
        assert after["createdAt"] == before["createdAt"]
        assert store.load("42", "new password!") == wallet
        with pytest.raises(AuthenticationFailedError):
            store.load("42", PASSWORD)

    def test_change_password_wrong_old(self, store):
        store.create("42", PASSWORD)
        with pytest.raises(AuthenticationFailedError):
            store.change_password("42", "wrong", "new password!")
        store.load("42", PASSWORD)

    def test_change_password_weak_new(self, store):
        store.create("42", PASSWORD)
        with pytest.raises(WeakPasswordError):
            store.change_password("42", PASSWORD, "short")
        store.load("42", PASSWORD)


    def test_change_password_derives_twice(self, store, monkeypatch):
        """The old key is derived once to open and the new key once to seal."""
        store.create("42", PASSWORD)
        calls = count_derivations(monkeypatch)
        store.change_password("42", PASSWORD, "new password!")
        assert len(calls) == 2


class TestUpgrade:
    """Tests for moving a record to the current format version."""

    def test_legacy_record_readable(self, store, legacy_version):
        write_legacy(store, "42")
        assert store.load("42", PASSWORD).address == KNOWN_ADDRESS

    def test_upgrade_legacy(self, store, legacy_version):
        write_legacy(store, "42")
        assert store.upgrade("42", PASSWORD) is True
        document = read_document(store, "42")
        assert document["version"] == crypto.FORMAT_VERSION
        assert store.load("42", PASSWORD).private_key == KNOWN_KEY

    def test_upgrade_current_is_noop(self, store):
        store.create("42", PASSWORD)
        before = read_document(store, "42")
        assert store.upgrade("42", PASSWORD) is False
        assert read_document(store, "42") == before

    def test_upgrade_wrong_password(self, store, legacy_version):
        write_legacy(store, "42")
        with pytest.raises(AuthenticationFailedError):
            store.upgrade("42", "wrong")
        assert read_document(store, "42")["version"] == LEGACY

    def test_upgrade_derives_twice(self, store, legacy_version, monkeypatch):
        """Upgrading reuses the plaintext it validated instead of decrypting again."""
        write_legacy(store, "42")
        calls = count_derivations(monkeypatch)
        assert store.upgrade("42", PASSWORD) is True
        assert calls == [500, crypto.KDF_ITERATIONS[crypto.FORMAT_VERSION]]

    def test_unknown_version(self, store):
        store.wallet_dir.mkdir(parents=True, exist_ok=True)
        document = {
            "version": "7.0",
            "userId": "42",
            "encryptedKey": encrypt_to_text(KNOWN_KEY.encode(), PASSWORD, 10),
            "createdAt": "2023-06-01T12:00:00Z",
        }
        (store.wallet_dir / "42.wallet").write_bytes(orjson.dumps(document))
        with pytest.raises(UnsupportedFormatError):
            store.load("42", PASSWORD)


class TestRewrapRecord:
    """Tests for the standalone record re-encryption helper."""

    def test_rewrap_legacy_record(self, store, legacy_version):
        """A legacy record comes back current, same owner and creation time."""
        write_legacy(store, "42")
        record = WalletRecord.from_json((store.wallet_dir / "42.wallet").read_bytes())
        rewrapped = rewrap_record(record, PASSWORD, "new password!")
        assert rewrapped.version == crypto.FORMAT_VERSION
        assert rewrapped.user_id == "42"
        assert rewrapped.created_at == record.created_at
        plaintext = crypto.decrypt_from_text(
            rewrapped.encrypted_key, "new password!",
            crypto.KDF_ITERATIONS[crypto.FORMAT_VERSION],
        )
        assert plaintext == KNOWN_KEY.encode()

    def test_rewrap_wrong_password(self, store):
        """The helper refuses a password that does not open the record."""
        store.create("42", PASSWORD)
        record = WalletRecord.from_json((store.wallet_dir / "42.wallet").read_bytes())
        with pytest.raises(AuthenticationFailedError):
            rewrap_record(record, "wrong password")


class TestUpgradeRecords:
    """Tests for the batch upgrade helper."""

    def test_batch_stats(self, store, legacy_version):
        write_legacy(store, "1")
        write_legacy(store, "2")
        store.create("3", PASSWORD)
        stats = upgrade_records(store, {
            "1": PASSWORD,
            "2": "wrong password",
            "3": PASSWORD,
            "4": PASSWORD,
        })
        assert stats == {"total": 4, "rotated": 1, "errors": 2, "skipped": 1}
        assert read_document(store, "1")["version"] == crypto.FORMAT_VERSION
        assert read_document(store, "2")["version"] == LEGACY
