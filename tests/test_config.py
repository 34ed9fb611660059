"""Tests for VaultConfig."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from wallet_session.vault.config import VaultConfig


class TestVaultConfig:

    def test_defaults(self):
        config = VaultConfig()
        assert config.wallet_dir == Path.home() / ".wallets"
        assert config.session_ttl == 900.0
        assert config.min_password_length == 8

    def test_expands_user(self):
        config = VaultConfig(wallet_dir="~/custom-wallets")
        assert config.wallet_dir == Path.home() / "custom-wallets"

    @pytest.mark.parametrize("ttl", [0, -5])
    def test_rejects_non_positive_ttl(self, ttl):
        with pytest.raises(ValidationError):
            VaultConfig(session_ttl=ttl)

    def test_rejects_zero_password_length(self):
        with pytest.raises(ValidationError):
            VaultConfig(min_password_length=0)

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WALLET_VAULT_DIR", str(tmp_path))
        monkeypatch.setenv("WALLET_SESSION_TTL", "60")
        monkeypatch.setenv("WALLET_MIN_PASSWORD_LENGTH", "12")
        config = VaultConfig.from_env()
        assert config.wallet_dir == tmp_path
        assert config.session_ttl == 60.0
        assert config.min_password_length == 12

    def test_from_env_defaults(self, monkeypatch):
        for name in ("WALLET_VAULT_DIR", "WALLET_SESSION_TTL", "WALLET_MIN_PASSWORD_LENGTH"):
            monkeypatch.delenv(name, raising=False)
        assert VaultConfig.from_env() == VaultConfig()

    def test_from_env_invalid(self, monkeypatch):
        monkeypatch.setenv("WALLET_SESSION_TTL", "soon")
        with pytest.raises(ValidationError):
            VaultConfig.from_env()
