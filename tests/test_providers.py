"""Tests for provider selection and the shared entry points."""

from unittest.mock import MagicMock

import pytest

from core.config import Config
from core.errors import ConfigurationMissing, NotFound
from core.models import ConnectionTestResult, IMAPCredentials, OAuthCredentials, normalize_provider
from providers import get_message_detail, get_provider, list_messages, test_connection
from providers.base import EmailProvider, clamp_max_results
from providers.gmail import GmailProvider
from providers.imap import IMAPProvider
from providers.outlook import OutlookProvider

CREDS = OAuthCredentials(access_token="token")


@pytest.mark.parametrize("name,cls", [
    ("gmail", GmailProvider),
    ("Google", GmailProvider),
    ("microsoft", OutlookProvider),
    ("outlook", OutlookProvider),
    ("imap", IMAPProvider),
])
def test_get_provider(name, cls) -> None:
    assert isinstance(get_provider(name, Config()), cls)


def test_unknown_provider() -> None:
    with pytest.raises(ValueError, match="Unknown provider"):
        get_provider("yahoo")
    with pytest.raises(ValueError):
        normalize_provider("aol")


def test_provider_uses_config_sections() -> None:
    config = Config()
    config.imap.connection_test_timeout = 3
    assert get_provider("imap", config).config.connection_test_timeout == 3


@pytest.mark.parametrize("requested,expected", [(0, 1), (-5, 1), (1, 1), (20, 20), (50, 50), (500, 50)])
def test_max_results_is_clamped(requested, expected) -> None:
    assert clamp_max_results(requested) == expected
    provider = MagicMock(spec=EmailProvider)
    provider.list_messages.return_value = []
    list_messages(provider, CREDS, requested)
    provider.list_messages.assert_called_once_with(CREDS, expected)


def test_detail_errors_propagate() -> None:
    provider = MagicMock(spec=EmailProvider)
    provider.get_message_detail.side_effect = NotFound("gone")
    with pytest.raises(NotFound):
        get_message_detail(provider, CREDS, "x")


def test_connection_test_never_raises_provider_errors() -> None:
    class Broken(EmailProvider):
        name = "broken"

        def list_messages(self, creds, max_results=20):
            return []

        def get_message_detail(self, creds, message_id):
            raise NotFound(message_id)

        def check_connection(self, creds):
            raise ConfigurationMissing("no client configured")

    assert test_connection(Broken(), CREDS) == ConnectionTestResult(
        success=False, error="no client configured", kind="configuration_missing",
    )


def test_wrong_credential_type() -> None:
    result = test_connection("imap", CREDS)
    assert result.kind == "configuration_missing"
    result = GmailProvider(service=MagicMock()).test_connection(IMAPCredentials("h", "u", "p"))
    assert result.kind == "configuration_missing"
