"""Tests for credential resolution and the JSON account store."""

import json
import logging
import subprocess
from unittest.mock import MagicMock

import pytest

from auth.credentials import CredentialResolver
from core.accounts import AccountStoreError, JsonAccountStore
from core.config import Config
from core.errors import ConfigurationMissing
from core.models import AccountRecord, IMAPCredentials, OAuthClientConfig, OAuthCredentials


@pytest.fixture
def config() -> Config:
    config = Config()
    config.imap.host = "imap.example.com"
    config.imap.user = "env-user"
    config.imap.password = "env-pass"
    config.gmail.refresh_token = "env-refresh"
    config.gmail.client_id = "gmail-client"
    config.gmail.client_secret = "gmail-secret"
    return config


def write_store(path, accounts=None, oauth_clients=None):
    path.write_text(json.dumps({
        "accounts": accounts or [],
        "oauth_clients": oauth_clients or {},
    }))
    return JsonAccountStore(str(path))


class TestResolve:
    def test_store_wins_over_config(self, config) -> None:
        store = MagicMock()
        store.get_account.return_value = AccountRecord(
            id="7", provider="imap", imap_host="mail.stored.org",
            imap_port=143, imap_username="stored", imap_password="pw", imap_use_tls=False,
        )
        creds = CredentialResolver(config, store=store).resolve("imap")
        assert creds == IMAPCredentials(
            host="mail.stored.org", port=143, user="stored", password="pw", use_tls=False,
        )
        store.get_account.assert_called_once_with("imap", None)

    def test_config_fallback_when_store_is_empty(self, config) -> None:
        store = MagicMock()
        store.get_account.return_value = None
        creds = CredentialResolver(config, store=store).resolve("google")
        assert creds == OAuthCredentials(refresh_token="env-refresh")

    def test_store_error_is_logged_then_config_used(self, config, caplog) -> None:
        store = MagicMock()
        store.get_account.side_effect = AccountStoreError("disk on fire")
        with caplog.at_level(logging.WARNING):
            creds = CredentialResolver(config, store=store).resolve("imap")
        assert creds.user == "env-user"
        assert "disk on fire" in caplog.text

    def test_incomplete_stored_imap_account_falls_back(self, config) -> None:
        store = MagicMock()
        store.get_account.return_value = AccountRecord(id="1", provider="imap", imap_host="x")
        assert CredentialResolver(config, store=store).resolve("imap").host == "imap.example.com"

    def test_stored_oauth_tokens(self, config) -> None:
        store = MagicMock()
        store.get_account.return_value = AccountRecord(
            id="2", provider="microsoft", oauth_access_token="at", oauth_refresh_token="rt",
        )
        creds = CredentialResolver(config, store=store).resolve("outlook", account_id="2")
        assert creds == OAuthCredentials(access_token="at", refresh_token="rt")
        store.get_account.assert_called_once_with("microsoft", "2")

    def test_nothing_configured(self) -> None:
        resolver = CredentialResolver(Config())
        assert resolver.resolve("microsoft") is None
        assert resolver.resolve("imap") is None
        with pytest.raises(ConfigurationMissing) as exc_info:
            resolver.require("imap")
        assert exc_info.value.kind == "configuration_missing"

    def test_unknown_provider(self, config) -> None:
        with pytest.raises(ValueError):
            CredentialResolver(config).resolve("yahoo")


class TestSecretReferences:
    def test_op_reference_is_read(self, config, monkeypatch) -> None:
        config.imap.password = "op://Private/IMAP/password"
        run = MagicMock(return_value=subprocess.CompletedProcess([], 0, stdout="s3cret\n"))
        monkeypatch.setattr("auth.onepassword.subprocess.run", run)

        creds = CredentialResolver(config, op_account="work").resolve("imap")
        assert creds.password == "s3cret"
        cmd = run.call_args[0][0]
        assert cmd == ["op", "read", "op://Private/IMAP/password", "--account", "work"]

    def test_unreadable_reference_means_no_credentials(self, config, monkeypatch, caplog) -> None:
        config.imap.password = "op://Private/IMAP/password"
        monkeypatch.setattr("auth.onepassword.subprocess.run", MagicMock(side_effect=FileNotFoundError))
        with caplog.at_level(logging.WARNING):
            assert CredentialResolver(config).resolve("imap") is None
        assert "1Password CLI not found" in caplog.text


class TestOAuthClient:
    def test_config_client(self, config) -> None:
        client = CredentialResolver(config).resolve_oauth_client("gmail")
        assert client == OAuthClientConfig("gmail-client", "gmail-secret", "")

    def test_stored_client_wins(self, config, tmp_path) -> None:
        store = write_store(tmp_path / "accounts.json", oauth_clients={
            "google": {"client_id": "stored-id", "client_secret": "stored-secret"},
        })
        client = CredentialResolver(config, store=store).resolve_oauth_client("gmail")
        assert client.client_id == "stored-id"

    def test_incomplete_client(self, config) -> None:
        assert CredentialResolver(config).resolve_oauth_client("microsoft") is None
        assert CredentialResolver(config).resolve_oauth_client("imap") is None


class TestJsonAccountStore:
    def test_primary_active_account_preferred(self, tmp_path) -> None:
        store = write_store(tmp_path / "a.json", accounts=[
            {"id": 1, "provider": "imap", "is_active": False, "is_primary": True},
            {"id": 2, "provider": "gmail", "is_primary": True},
            {"id": 3, "provider": "imap"},
            {"id": 4, "provider": "imap", "is_primary": True},
        ])
        assert store.get_account("imap").id == "4"
        assert store.get_account("imap", account_id=3).id == "3"
        assert store.get_account("imap", account_id="99") is None

    def test_first_active_when_no_primary(self, tmp_path) -> None:
        store = write_store(tmp_path / "a.json", accounts=[
            {"id": "a", "provider": "outlook", "is_active": False},
            {"id": "b", "provider": "outlook"},
            {"id": "c", "provider": "microsoft"},
        ])
        assert store.get_account("microsoft").id == "b"

    def test_malformed_entries_are_skipped(self, tmp_path) -> None:
        store = write_store(tmp_path / "a.json", accounts=[
            "junk", {"provider": "imap"}, {"id": "ok", "provider": "imap"},
        ])
        assert store.get_account("imap").id == "ok"

    def test_missing_file(self, tmp_path) -> None:
        store = JsonAccountStore(str(tmp_path / "missing.json"))
        assert store.get_account("imap") is None
        assert store.get_oauth_client("gmail") is None

    def test_corrupt_file_raises(self, tmp_path) -> None:
        path = tmp_path / "a.json"
        path.write_text("{not json")
        with pytest.raises(AccountStoreError):
            JsonAccountStore(str(path)).get_account("imap")

    def test_corrupt_file_does_not_break_resolution(self, config, tmp_path) -> None:
        path = tmp_path / "a.json"
        path.write_text("[1, 2")
        resolver = CredentialResolver(config, store=JsonAccountStore(str(path)))
        assert resolver.resolve("imap").host == "imap.example.com"
