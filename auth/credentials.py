"""
Credential resolution.

Resolves usable credentials for a provider by trying the per-account store
first and the explicitly passed configuration second. The resolver is
read-only and keeps nothing between calls.
"""

import logging
from typing import Optional

from auth.onepassword import resolve_secret
from core.accounts import AccountStore
from core.config import Config
from core.errors import ConfigurationMissing
from core.models import (
    GMAIL,
    IMAP,
    AccountRecord,
    Credentials,
    IMAPCredentials,
    OAuthClientConfig,
    OAuthCredentials,
    normalize_provider,
)

logger = logging.getLogger(__name__)


class CredentialResolver:
    """
    Yields OAuth tokens or IMAP credentials for a provider.

    Lookup order:
        1. Stored account record (refresh/access token, or IMAP secret)
        2. Defaults from the Config object (refresh token, or IMAP settings)

    A failing account store is logged and treated as "no stored credential"
    so the configured defaults still apply.

    Example:
        resolver = CredentialResolver(load_config(), store=JsonAccountStore(path))
        creds = resolver.resolve("imap")
        if creds is None:
            ...  # feature unavailable
    """

    def __init__(
        self,
        config: Config,
        store: Optional[AccountStore] = None,
        op_account: Optional[str] = None,
    ):
        """
        Initialize the resolver.

        Args:
            config: Loaded configuration holding environment-level defaults
            store: Optional per-account store consulted first
            op_account: 1Password account used for op:// references
        """
        self.config = config
        self.store = store
        self.op_account = op_account

    def resolve(
        self,
        provider: str,
        account_id: Optional[str] = None,
    ) -> Optional[Credentials]:
        """
        Resolve credentials for a provider.

        Args:
            provider: Provider name ("gmail", "microsoft"/"outlook", "imap")
            account_id: Specific stored account to use (optional)

        Returns:
            OAuthCredentials / IMAPCredentials, or None if neither source has any
        """
        provider = normalize_provider(provider)

        creds = self._from_store(provider, account_id)
        if creds is not None:
            logger.debug(f"Using stored {provider} credentials")
            return creds

        creds = self._from_config(provider)
        if creds is not None:
            logger.debug(f"Using configured {provider} credentials")
        return creds

    def require(self, provider: str, account_id: Optional[str] = None) -> Credentials:
        """Like resolve(), but raises ConfigurationMissing instead of returning None."""
        creds = self.resolve(provider, account_id)
        if creds is None:
            raise ConfigurationMissing(
                f"No {normalize_provider(provider)} credentials configured",
                provider=provider,
            )
        return creds

    def resolve_oauth_client(self, provider: str) -> Optional[OAuthClientConfig]:
        """
        Resolve the OAuth app registration (client id/secret/redirect URI).

        Stored per-user registrations win over configured ones.
        """
        provider = normalize_provider(provider)
        if provider == IMAP:
            return None

        if self.store is not None:
            try:
                client = self.store.get_oauth_client(provider)
                if client is not None:
                    return client
            except Exception as e:
                logger.warning(f"Error fetching {provider} OAuth client from account store: {e}")

        section = self.config.gmail if provider == GMAIL else self.config.outlook
        client_secret = self._secret(section.client_secret, f"{provider} client secret")
        if section.client_id and client_secret:
            return OAuthClientConfig(
                client_id=section.client_id,
                client_secret=client_secret,
                redirect_uri=section.redirect_uri or "",
            )
        return None

    def _secret(self, value: Optional[str], description: str) -> Optional[str]:
        try:
            return resolve_secret(value, account=self.op_account)
        except RuntimeError as e:
            logger.warning(f"Could not read {description}: {e}")
            return None

    def _from_store(self, provider: str, account_id: Optional[str]) -> Optional[Credentials]:
        if self.store is None:
            return None
        try:
            record = self.store.get_account(provider, account_id)
        except Exception as e:
            logger.warning(f"Error fetching {provider} account from account store: {e}")
            return None
        if record is None:
            return None
        return self._from_record(provider, record)

    def _from_record(self, provider: str, record: AccountRecord) -> Optional[Credentials]:
        if provider == IMAP:
            if not (record.imap_host and record.imap_username and record.imap_password):
                logger.debug(f"Stored IMAP account {record.id} is incomplete")
                return None
            return IMAPCredentials(
                host=record.imap_host,
                port=record.imap_port or 993,
                user=record.imap_username,
                password=record.imap_password,
                use_tls=True if record.imap_use_tls is None else record.imap_use_tls,
                verify_tls=self.config.imap.verify_tls,
            )

        if record.oauth_access_token or record.oauth_refresh_token:
            return OAuthCredentials(
                access_token=record.oauth_access_token,
                refresh_token=record.oauth_refresh_token,
            )
        return None

    def _from_config(self, provider: str) -> Optional[Credentials]:
        if provider == IMAP:
            imap = self.config.imap
            if not (imap.host and imap.user and imap.password):
                return None
            password = self._secret(imap.password, "IMAP password")  # allow-secret
            if not password:
                return None
            return IMAPCredentials(
                host=imap.host,
                port=imap.port,
                user=imap.user,
                password=password,
                use_tls=imap.use_tls,
                verify_tls=imap.verify_tls,
            )

        section = self.config.gmail if provider == GMAIL else self.config.outlook
        refresh_token = self._secret(section.refresh_token, f"{provider} refresh token")
        if refresh_token:
            return OAuthCredentials(refresh_token=refresh_token)
        return None

