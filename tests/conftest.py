import pytest

from wallet_session.vault import crypto
from wallet_session.vault.store import VaultStore


@pytest.fixture
def fast_kdf(monkeypatch):
    """Lower the current format's work factor so store tests run quickly."""
    monkeypatch.setitem(crypto.KDF_ITERATIONS, crypto.FORMAT_VERSION, 1000)


@pytest.fixture
def wallet_dir(tmp_path):
    return tmp_path / "wallets"


@pytest.fixture
def store(fast_kdf, wallet_dir):
    """VaultStore over a temporary directory."""
    return VaultStore(wallet_dir=wallet_dir, min_password_length=8)
