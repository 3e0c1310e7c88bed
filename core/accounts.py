"""
Read access to stored mailbox accounts.

The account store is owned by an external system; this module only defines
the lookup interface the credential resolver depends on, plus a JSON-file
implementation used by the CLI.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional, Protocol

from core.models import AccountRecord, OAuthClientConfig, normalize_provider

logger = logging.getLogger(__name__)


class AccountStoreError(Exception):
    """The account store could not be read."""


class AccountStore(Protocol):
    """Lookup interface for stored per-user accounts and OAuth app registrations."""

    def get_account(
        self,
        provider: str,
        account_id: Optional[str] = None,
    ) -> Optional[AccountRecord]:
        ...

    def get_oauth_client(self, provider: str) -> Optional[OAuthClientConfig]:
        ...


class JsonAccountStore:
    """
    Account store backed by a JSON file.

    File layout:
        {
          "accounts": [{"id": "1", "provider": "imap", "imap_host": ...}, ...],
          "oauth_clients": {"gmail": {"client_id": ..., "client_secret": ...}}
        }

    When no account_id is given, the primary active account for the provider
    is returned, else the first active one.

    Example:
        store = JsonAccountStore("~/.config/unified_inbox/accounts.json")
        record = store.get_account("imap")
    """

    def __init__(self, filename: str):
        """
        Initialize the store.

        Args:
            filename: Path to the accounts JSON file
        """
        self.filename = os.path.expanduser(filename)

    def _load(self) -> Dict[str, Any]:
        """Read the file on every lookup; records are never cached."""
        if not os.path.exists(self.filename):
            return {}
        try:
            with open(self.filename, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise AccountStoreError(f"Failed to read account store {self.filename}: {e}") from e
        if not isinstance(data, dict):
            raise AccountStoreError(f"Account store {self.filename} is not a JSON object")
        return data

    def _records(self, provider: str) -> List[AccountRecord]:
        records = []
        for raw in self._load().get("accounts", []):
            if not isinstance(raw, dict):
                continue
            try:
                if normalize_provider(raw.get("provider", "")) != provider:
                    continue
                records.append(AccountRecord(
                    id=str(raw["id"]),
                    provider=provider,
                    email=raw.get("email", ""),
                    label=raw.get("label", ""),
                    is_active=raw.get("is_active", True),
                    is_primary=raw.get("is_primary", False),
                    oauth_access_token=raw.get("oauth_access_token"),
                    oauth_refresh_token=raw.get("oauth_refresh_token"),
                    imap_host=raw.get("imap_host"),
                    imap_port=raw.get("imap_port"),
                    imap_username=raw.get("imap_username"),
                    imap_password=raw.get("imap_password"),
                    imap_use_tls=raw.get("imap_use_tls"),
                ))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed account entry in {self.filename}: {e}")
        return records

    def get_account(
        self,
        provider: str,
        account_id: Optional[str] = None,
    ) -> Optional[AccountRecord]:
        """Find a stored account for the provider."""
        provider = normalize_provider(provider)
        records = self._records(provider)
        if account_id is not None:
            for record in records:
                if record.id == str(account_id):
                    return record
            return None

        active = [r for r in records if r.is_active]
        for record in active:
            if record.is_primary:
                return record
        return active[0] if active else None

    def get_oauth_client(self, provider: str) -> Optional[OAuthClientConfig]:
        """Find a stored OAuth app registration for the provider."""
        provider = normalize_provider(provider)
        for name, raw in (self._load().get("oauth_clients") or {}).items():
            try:
                if normalize_provider(name) != provider:
                    continue
            except ValueError:
                continue
            if isinstance(raw, dict) and raw.get("client_id") and raw.get("client_secret"):
                return OAuthClientConfig(
                    client_id=raw["client_id"],
                    client_secret=raw["client_secret"],
                    redirect_uri=raw.get("redirect_uri", ""),
                )
        return None
