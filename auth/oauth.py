"""
OAuth2 token helpers for Gmail and Microsoft Graph.

Turns resolved OAuthCredentials into something each API client can use:
google-auth Credentials for the Gmail API, a bearer access token for Graph.
Also covers the authorization-code flow used when an account is first
connected.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Tuple

import msal
import requests
from google.auth.exceptions import RefreshError
from google.auth.exceptions import TransportError as GoogleTransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials as GoogleCredentials
from google_auth_oauthlib.flow import Flow

from core.config import GmailConfig, OutlookConfig
from core.errors import (
    AuthenticationFailed,
    ConfigurationMissing,
    OperationTimeout,
    TransportError,
)
from core.models import GMAIL, MICROSOFT, OAuthClientConfig, OAuthCredentials

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"


# ---------------------------------------------------------------------------
# Gmail (google-auth)
# ---------------------------------------------------------------------------

def google_credentials(
    creds: OAuthCredentials,
    client: Optional[OAuthClientConfig],
    config: GmailConfig,
) -> GoogleCredentials:
    """
    Build google-auth Credentials, refreshing the access token if needed.

    Args:
        creds: Resolved access and/or refresh token
        client: OAuth app registration (required to redeem a refresh token)
        config: Gmail settings (scopes, token URI)

    Returns:
        Credentials with a valid access token

    Raises:
        ConfigurationMissing: Only a refresh token is available and no client
        AuthenticationFailed: The refresh token was rejected
        TransportError: The token endpoint could not be reached
    """
    if creds.refresh_token and not creds.access_token and client is None:
        raise ConfigurationMissing(
            "Gmail OAuth client not configured; cannot redeem refresh token",
            provider=GMAIL,
        )

    # A given access token is used as is; the refresh token is left out so a
    # 401 is never silently redeemed.
    google_creds = GoogleCredentials(
        token=creds.access_token,
        refresh_token=None if creds.access_token else creds.refresh_token,
        token_uri=config.token_uri,
        client_id=client.client_id if client else None,
        client_secret=client.client_secret if client else None,
        scopes=config.scopes,
    )

    if creds.access_token or not creds.refresh_token:
        return google_creds

    try:
        google_creds.refresh(Request())
    except RefreshError as e:
        raise AuthenticationFailed(f"Gmail token refresh rejected: {e}", provider=GMAIL) from e
    except GoogleTransportError as e:
        raise TransportError(f"Gmail token refresh failed: {e}", provider=GMAIL) from e
    logger.debug("Refreshed Gmail access token")
    return google_creds


def _google_flow(client: OAuthClientConfig, config: GmailConfig, state: Optional[str] = None) -> Flow:
    client_config = {
        "web": {
            "client_id": client.client_id,
            "client_secret": client.client_secret,
            "auth_uri": GOOGLE_AUTH_URI,
            "token_uri": config.token_uri,
            "redirect_uris": [client.redirect_uri],
        }
    }
    return Flow.from_client_config(
        client_config,
        scopes=config.scopes,
        redirect_uri=client.redirect_uri,
        state=state,
    )


def google_authorization_url(
    client: OAuthClientConfig,
    config: GmailConfig,
    state: Optional[str] = None,
) -> Tuple[str, str]:
    """Return (authorization_url, state) for the Gmail consent screen."""
    flow = _google_flow(client, config, state)
    return flow.authorization_url(
        access_type="offline",
        include_granted_scopes="true",
        prompt="consent",
    )


def exchange_google_code(
    code: str,
    client: OAuthClientConfig,
    config: GmailConfig,
) -> OAuthCredentials:
    """Exchange an authorization code for Gmail access/refresh tokens."""
    flow = _google_flow(client, config)
    try:
        flow.fetch_token(code=code)
    except requests.Timeout as e:
        raise OperationTimeout("Gmail code exchange timed out", provider=GMAIL) from e
    except requests.RequestException as e:
        raise TransportError(f"Gmail code exchange failed: {e}", provider=GMAIL) from e
    except Exception as e:
        raise AuthenticationFailed(f"Gmail code exchange failed: {e}", provider=GMAIL) from e
    creds = flow.credentials
    return OAuthCredentials(access_token=creds.token, refresh_token=creds.refresh_token)


# ---------------------------------------------------------------------------
# Microsoft Graph (MSAL)
# ---------------------------------------------------------------------------

def _msal_app(client: Optional[OAuthClientConfig], config: OutlookConfig) -> msal.ConfidentialClientApplication:
    if client is None:
        raise ConfigurationMissing("Microsoft OAuth credentials not configured", provider=MICROSOFT)
    return msal.ConfidentialClientApplication(
        client.client_id,
        client_credential=client.client_secret,
        authority=config.authority,
    )


@contextmanager
def _msal_errors(description: str) -> Iterator[None]:
    """Translate network failures inside MSAL (token endpoint, authority discovery)."""
    try:
        yield
    except requests.Timeout as e:
        raise OperationTimeout(f"{description}: token endpoint timed out", provider=MICROSOFT) from e
    except requests.RequestException as e:
        raise TransportError(f"{description}: {e}", provider=MICROSOFT) from e


def _token_or_raise(result: Optional[Dict[str, Any]], description: str) -> Dict[str, Any]:
    if not result or "access_token" not in result:
        result = result or {}
        error = result.get("error_description", result.get("error", "Unknown error"))
        raise AuthenticationFailed(f"{description}: {error}", provider=MICROSOFT)
    return result


def microsoft_access_token(
    creds: OAuthCredentials,
    client: Optional[OAuthClientConfig],
    config: OutlookConfig,
) -> str:
    """
    Return a Graph bearer token, redeeming the refresh token when needed.

    Raises:
        ConfigurationMissing: Only a refresh token is available and no client
        AuthenticationFailed: The refresh token was rejected
        OperationTimeout: The token endpoint did not answer in time
        TransportError: The token endpoint could not be reached
    """
    if creds.access_token:
        return creds.access_token

    description = "Failed to refresh Microsoft token"
    with _msal_errors(description):
        app = _msal_app(client, config)
        result = app.acquire_token_by_refresh_token(creds.refresh_token, scopes=config.scopes)
    token = _token_or_raise(result, description)  # allow-secret
    logger.debug("Refreshed Microsoft access token")
    return token["access_token"]


def microsoft_authorization_url(
    client: OAuthClientConfig,
    config: OutlookConfig,
    state: str = "",
) -> str:
    """Return the Microsoft identity platform authorization URL."""
    with _msal_errors("Failed to build Microsoft authorization URL"):
        app = _msal_app(client, config)
        return app.get_authorization_request_url(
            config.scopes,
            redirect_uri=client.redirect_uri or config.redirect_uri,
            state=state,
        )


def exchange_microsoft_code(
    code: str,
    client: OAuthClientConfig,
    config: OutlookConfig,
) -> OAuthCredentials:
    """Exchange an authorization code for Graph access/refresh tokens."""
    description = "Microsoft code exchange failed"
    with _msal_errors(description):
        app = _msal_app(client, config)
        result = app.acquire_token_by_authorization_code(
            code,
            scopes=config.scopes,
            redirect_uri=client.redirect_uri or config.redirect_uri,
        )
    token = _token_or_raise(result, description)  # allow-secret
    return OAuthCredentials(
        access_token=token["access_token"],
        refresh_token=token.get("refresh_token"),
    )
