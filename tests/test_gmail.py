"""Tests for the Gmail provider using a mocked API service."""

import base64
import json
import threading
from unittest.mock import MagicMock, patch

import httplib2
import pytest
from google.auth.exceptions import TransportError as GoogleTransportError
from googleapiclient.errors import HttpError

from core.config import GmailConfig
from core.errors import AuthenticationFailed, ConfigurationMissing, NotFound, TransportError
from core.models import IMAPCredentials, OAuthClientConfig, OAuthCredentials
from providers.gmail import GmailProvider

CREDS = OAuthCredentials(access_token="token")


def b64url(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def http_error(status: int, message: str = "error") -> HttpError:
    content = json.dumps({"error": {"code": status, "message": message}}).encode()
    return HttpError(httplib2.Response({"status": status}), content)


def metadata(subject=None, sender=None, date="Mon, 6 Oct 2025 10:00:00 +0000", snippet="preview"):
    headers = [{"name": "Date", "value": date}]
    if subject is not None:
        headers.append({"name": "Subject", "value": subject})
    if sender is not None:
        headers.append({"name": "From", "value": sender})
    return {"snippet": snippet, "payload": {"headers": headers}}


def make_service(refs, responses):
    """Fake service where messages().get(id=...) executes to responses[id]."""
    service = MagicMock()
    messages = service.users.return_value.messages.return_value
    messages.list.return_value.execute.return_value = {"messages": refs}
    executed = []

    def get(userId, id, format, metadataHeaders=None):
        request = MagicMock()
        value = responses[id]

        def execute():
            executed.append(id)
            if isinstance(value, Exception):
                raise value
            return value

        request.execute.side_effect = execute
        return request

    messages.get.side_effect = get
    return service, executed


class TestListMessages:
    def test_summaries_keep_listing_order(self) -> None:
        refs = [{"id": "m3", "threadId": "t3"}, {"id": "m2", "threadId": "t2"}, {"id": "m1"}]
        service, _ = make_service(refs, {
            "m3": metadata("Newest", '"Jane Doe" <jane@example.com>'),
            "m2": metadata(None, None, snippet=""),
            "m1": metadata("Oldest", "bob@example.com"),
        })
        provider = GmailProvider(service=service)

        summaries = provider.list_messages(CREDS, max_results=3)

        assert [s.id for s in summaries] == ["m3", "m2", "m1"]
        assert summaries[0].thread_id == "t3"
        assert summaries[0].sender == "Jane Doe <jane@example.com>"
        assert summaries[0].subject == "Newest"
        assert summaries[0].date == "Mon, 6 Oct 2025 10:00:00 +0000"
        assert summaries[1].subject == "(no subject)"
        assert summaries[1].sender == "Unknown sender"
        assert summaries[1].snippet == ""
        assert summaries[2].sender == "bob@example.com"

        messages = service.users.return_value.messages.return_value
        messages.list.assert_called_once_with(userId="me", labelIds=["INBOX"], maxResults=3)
        assert messages.get.call_args.kwargs["format"] == "metadata"

    def test_metadata_fetches_run_concurrently(self) -> None:
        refs = [{"id": f"m{i}"} for i in range(4)]
        barrier = threading.Barrier(4, timeout=5)
        service = MagicMock()
        messages = service.users.return_value.messages.return_value
        messages.list.return_value.execute.return_value = {"messages": refs}

        def get(userId, id, format, metadataHeaders=None):
            request = MagicMock()

            def execute():
                barrier.wait()
                return metadata(id, "a@b.com")

            request.execute.side_effect = execute
            return request

        messages.get.side_effect = get
        summaries = GmailProvider(GmailConfig(max_workers=4), service=service).list_messages(CREDS, 4)
        assert [s.subject for s in summaries] == ["m0", "m1", "m2", "m3"]

    def test_one_failed_fetch_fails_the_listing(self) -> None:
        refs = [{"id": "a"}, {"id": "b"}, {"id": "c"}]
        service, executed = make_service(refs, {
            "a": metadata("A", "a@b.com"),
            "b": http_error(500, "Backend Error"),
            "c": metadata("C", "c@b.com"),
        })
        with pytest.raises(TransportError):
            GmailProvider(service=service).list_messages(CREDS)
        assert sorted(executed) == ["a", "b", "c"]

    def test_empty_inbox(self) -> None:
        service, _ = make_service([], {})
        service.users.return_value.messages.return_value.list.return_value.execute.return_value = {}
        assert GmailProvider(service=service).list_messages(CREDS) == []

    def test_expired_token(self) -> None:
        service, _ = make_service([], {})
        listing = service.users.return_value.messages.return_value.list.return_value
        listing.execute.side_effect = http_error(401, "Invalid Credentials")
        with pytest.raises(AuthenticationFailed):
            GmailProvider(service=service).list_messages(CREDS)

    def test_imap_credentials_rejected(self) -> None:
        with pytest.raises(ConfigurationMissing):
            GmailProvider(service=MagicMock()).list_messages(IMAPCredentials("h", "u", "p"))


class TestMessageDetail:
    def _detail(self, payload, snippet="the snippet"):
        service = MagicMock()
        get = service.users.return_value.messages.return_value.get
        get.return_value.execute.return_value = {
            "id": "m1", "threadId": "t1", "snippet": snippet, "payload": payload,
        }
        return GmailProvider(service=service).get_message_detail(CREDS, "m1"), get

    def test_plain_part_preferred(self) -> None:
        detail, get = self._detail({
            "mimeType": "multipart/alternative",
            "headers": [
                {"name": "Subject", "value": "Hello"},
                {"name": "From", "value": '"Jane" <jane@example.com>'},
                {"name": "To", "value": "Bob <bob@example.com>"},
            ],
            "parts": [
                {"mimeType": "text/html", "body": {"data": b64url("<p>Hi</p>")}},
                {"mimeType": "text/plain", "body": {"data": b64url("Hi plain")}},
            ],
        })
        get.assert_called_once_with(userId="me", id="m1", format="full")
        assert detail.body == "Hi plain"
        assert detail.html == "<p>Hi</p>"
        assert detail.sender == "Jane <jane@example.com>"
        assert detail.to == "Bob <bob@example.com>"
        assert detail.thread_id == "t1"

    def test_html_only_is_reduced(self) -> None:
        detail, _ = self._detail({
            "mimeType": "text/html",
            "body": {"data": b64url("<p>Hi <b>there</b></p><script>evil()</script>")},
        })
        assert detail.body == "Hi there"
        assert detail.subject == "(no subject)"
        assert detail.sender == "Unknown sender"
        assert detail.to is None

    def test_no_text_part_falls_back_to_snippet(self) -> None:
        detail, _ = self._detail({
            "mimeType": "multipart/mixed",
            "parts": [{"mimeType": "image/png", "body": {"attachmentId": "x"}}],
        })
        assert detail.body == "the snippet"
        assert detail.html is None

    @pytest.mark.parametrize("error", [
        http_error(404, "Requested entity was not found."),
        http_error(400, "Invalid id value"),
    ])
    def test_unknown_id(self, error) -> None:
        service = MagicMock()
        service.users.return_value.messages.return_value.get.return_value.execute.side_effect = error
        with pytest.raises(NotFound) as exc_info:
            GmailProvider(service=service).get_message_detail(CREDS, "nope")
        assert exc_info.value.kind == "not_found"


class TestConnection:
    def test_success(self) -> None:
        service = MagicMock()
        service.users.return_value.getProfile.return_value.execute.return_value = {
            "emailAddress": "me@example.com",
        }
        result = GmailProvider(service=service).test_connection(CREDS)
        assert result.success is True
        assert result.error is None

    def test_rejected_token(self) -> None:
        service = MagicMock()
        service.users.return_value.getProfile.return_value.execute.side_effect = http_error(401)
        result = GmailProvider(service=service).test_connection(CREDS)
        assert result.success is False
        assert result.kind == "authentication_failed"

    def test_rate_limited_403_is_transport(self) -> None:
        service = MagicMock()
        service.users.return_value.getProfile.return_value.execute.side_effect = http_error(
            403, "rateLimitExceeded",
        )
        assert GmailProvider(service=service).test_connection(CREDS).kind == "transport_error"

    def test_unreachable_token_endpoint(self) -> None:
        service = MagicMock()
        service.users.return_value.getProfile.return_value.execute.side_effect = GoogleTransportError(
            "dns failure",
        )
        result = GmailProvider(service=service).test_connection(CREDS)
        assert result.success is False
        assert result.kind == "transport_error"

    def test_refresh_token_without_client(self) -> None:
        result = GmailProvider().test_connection(OAuthCredentials(refresh_token="rt"))
        assert result.success is False
        assert result.kind == "configuration_missing"

    def test_refresh_token_is_redeemed(self) -> None:
        client = OAuthClientConfig("id", "secret")
        with patch("auth.oauth.GoogleCredentials") as creds_cls, \
                patch("providers.gmail.build") as build, \
                patch("providers.gmail.AuthorizedHttp") as authorized_http:
            build.return_value.users.return_value.getProfile.return_value.execute.return_value = {}
            result = GmailProvider(client=client).test_connection(OAuthCredentials(refresh_token="rt"))

        assert result.success is True
        creds_cls.return_value.refresh.assert_called_once()
        assert creds_cls.call_args.kwargs["client_id"] == "id"
        build.assert_called_once_with(
            "gmail", "v1", credentials=creds_cls.return_value, cache_discovery=False,
        )
        assert authorized_http.call_args[0][0] is creds_cls.return_value
        assert authorized_http.call_args.kwargs["max_refresh_attempts"] == 0
