"""Unit tests for the Cloud Mail client."""

import asyncio
import json

import httpx
import pytest

from infrakit.cloudmail.client import (
    TEST_MESSAGE_BODY,
    TEST_MESSAGE_SUBJECT,
    MailClient,
)
from infrakit.cloudmail.models import Domain, ReceiptRuleset
from infrakit.common.errors import DepaginationError, RemoteAPIError, RetriesExhaustedError


def run_async(coro):
    return asyncio.run(coro)


BASE = "https://cloudmail.googleapis.com/v1alpha3"


class Recorder:
    """httpx handler serving queued responses and recording requests."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def body(self, index):
        return json.loads(self.requests[index].content)


def make_client(handler, metrics, no_sleep, **kwargs):
    return MailClient(
        token="ya29.token",
        transport=httpx.MockTransport(handler),
        metrics=metrics,
        sleep=no_sleep,
        **kwargs,
    )


def google_error(code, message, status):
    return httpx.Response(code, json={"error": {"code": code, "message": message, "status": status}})


class TestCreateDomain:

    def test_returns_domain_id(self, metrics, no_sleep):
        handler = Recorder([
            httpx.Response(200, json={
                "name": "regions/us-central1/domains/d-123",
                "domainName": "abc.cloudmail.example",
                "projectDomain": True,
            }),
        ])
        client = make_client(handler, metrics, no_sleep)

        domain_id = run_async(client.create_domain())

        assert domain_id == "d-123"
        request = handler.requests[0]
        assert request.method == "POST"
        assert str(request.url).startswith(f"{BASE}/projects/knative-tests/domains")
        assert request.url.params["region"] == "us-central1"
        assert handler.body(0) == {"domainName": "", "projectDomain": True}
        assert request.headers["Authorization"] == "Bearer ya29.token"

    def test_uses_overridden_project_and_region(self, metrics, no_sleep):
        handler = Recorder([
            httpx.Response(200, json={"name": "regions/europe-west1/domains/eu-1"}),
        ])
        client = make_client(handler, metrics, no_sleep,
                             project_id="other", region="europe-west1")

        assert run_async(client.create_domain()) == "eu-1"
        assert "/projects/other/domains" in handler.requests[0].url.path

    def test_already_exists_is_not_retried(self, metrics, no_sleep):
        handler = Recorder([google_error(409, "Domain already exists", "ALREADY_EXISTS")])
        client = make_client(handler, metrics, no_sleep)

        with pytest.raises(RemoteAPIError) as exc_info:
            run_async(client.create_domain())

        assert exc_info.value.status_code == 409
        assert "Domain already exists" in str(exc_info.value)
        assert len(handler.requests) == 1

    def test_unavailable_is_retried(self, metrics, no_sleep):
        handler = Recorder([
            google_error(503, "try later", "UNAVAILABLE"),
            httpx.Response(200, json={"name": "regions/us-central1/domains/d-9"}),
        ])
        client = make_client(handler, metrics, no_sleep)

        assert run_async(client.create_domain()) == "d-9"
        assert len(handler.requests) == 2


class TestAddressSetAndSender:

    def test_create_address_set(self, metrics, no_sleep):
        handler = Recorder([httpx.Response(200, json={})])
        client = make_client(handler, metrics, no_sleep)

        run_async(client.create_address_set("d-123"))

        request = handler.requests[0]
        assert request.url.path.endswith(
            "/regions/us-central1/domains/d-123/addressSets"
        )
        assert request.url.params["addressSetId"] == "monitoring-address-set"
        assert handler.body(0) == {"addressPatterns": ["monitoring-alert"]}

    def test_create_sender(self, metrics, no_sleep):
        handler = Recorder([httpx.Response(200, json={})])
        client = make_client(handler, metrics, no_sleep)

        run_async(client.create_sender("d-123"))

        request = handler.requests[0]
        path = "regions/us-central1/domains/d-123/addressSets/monitoring-address-set"
        assert request.url.path.endswith("/projects/knative-tests/senders")
        assert request.url.params["senderId"] == "monitoring-alert-sender"
        assert request.url.params["region"] == "us-central1"
        assert handler.body(0) == {
            "defaultEnvelopeFromAuthority": path,
            "defaultHeaderFromAuthority": path,
        }

    def test_exhausted_create_reports_attempts(self, metrics, no_sleep):
        handler = Recorder([httpx.ReadTimeout("slow")] * 2)
        client = make_client(handler, metrics, no_sleep, max_retries=2)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            run_async(client.create_sender("d-123"))

        assert exc_info.value.attempts == 2
        assert "monitoring-alert-sender" in exc_info.value.description


class TestReceiptRule:

    def test_creates_rule_then_updates_domain_with_field_mask(self, metrics, no_sleep):
        handler = Recorder([
            httpx.Response(200, json={}),
            httpx.Response(200, json={"name": "regions/us-central1/domains/d-123"}),
        ])
        client = make_client(handler, metrics, no_sleep)

        run_async(client.create_and_apply_receipt_rule_drop("d-123"))

        create, update = handler.requests
        assert create.method == "POST"
        assert create.url.path.endswith("/regions/us-central1/domains/d-123/receiptRules")
        assert create.url.params["ruleId"] == "monitoring-receipt-drop-rule"
        assert handler.body(0) == {
            "envelopeToPatterns": [{"pattern": "monitoring-alert", "matchMode": "PREFIX"}],
            "action": {"drop": {}},
        }

        assert update.method == "PATCH"
        assert update.url.path.endswith("/regions/us-central1/domains/d-123")
        assert update.url.params["updateMask"] == "receipt_ruleset"
        assert handler.body(1) == {
            "name": "regions/us-central1/domains/d-123",
            "receiptRuleset": {
                "receiptRules": [
                    "regions/us-central1/domains/d-123/receiptRules/monitoring-receipt-drop-rule"
                ]
            },
        }

    def test_rule_failure_skips_domain_update(self, metrics, no_sleep):
        handler = Recorder([google_error(400, "bad pattern", "INVALID_ARGUMENT")])
        client = make_client(handler, metrics, no_sleep)

        with pytest.raises(RemoteAPIError):
            run_async(client.create_and_apply_receipt_rule_drop("d-123"))

        assert len(handler.requests) == 1

    def test_update_domain_requires_mask(self, metrics, no_sleep):
        client = make_client(Recorder([]), metrics, no_sleep)
        domain = Domain(name="regions/us-central1/domains/d", receipt_ruleset=ReceiptRuleset())

        with pytest.raises(ValueError):
            run_async(client.update_domain(domain, []))

    def test_update_domain_requires_name(self, metrics, no_sleep):
        client = make_client(Recorder([]), metrics, no_sleep)

        with pytest.raises(ValueError):
            run_async(client.update_domain(Domain(), ["receipt_ruleset"]))


class TestSendMessage:

    def test_send_email_message(self, metrics, no_sleep):
        handler = Recorder([httpx.Response(200, json={"rfc822MessageId": "<id@mail>"})])
        client = make_client(handler, metrics, no_sleep)

        message_id = run_async(client.send_email_message(
            "abc.example", "oncall@example.com", "Alert", "Something broke"
        ))

        assert message_id == "<id@mail>"
        request = handler.requests[0]
        assert request.url.path.endswith(
            "/projects/knative-tests/regions/us-central1/senders/monitoring-alert-sender:sendMessage"
        )
        assert handler.body(0) == {
            "envelopeFromAuthority": "",
            "headerFromAuthority": "",
            "envelopeFromAddress": "monitoring-alert@abc.example",
            "simpleMessage": {
                "from": {"addressSpec": "monitoring-alert@abc.example"},
                "to": [{"addressSpec": "oncall@example.com"}],
                "subject": "Alert",
                "textBody": "Something broke",
            },
        }

    def test_send_test_message(self, metrics, no_sleep):
        handler = Recorder([httpx.Response(200, json={"rfc822MessageId": "<t@mail>"})])
        client = make_client(handler, metrics, no_sleep)

        run_async(client.send_test_message("abc.example", "me@example.com"))

        message = handler.body(0)["simpleMessage"]
        assert message["subject"] == TEST_MESSAGE_SUBJECT
        assert message["textBody"] == TEST_MESSAGE_BODY

    def test_send_is_not_repeated_by_default(self, metrics, no_sleep):
        handler = Recorder([google_error(503, "unavailable", "UNAVAILABLE")])
        client = make_client(handler, metrics, no_sleep)

        with pytest.raises(RetriesExhaustedError):
            run_async(client.send_email_message("d", "to@example.com", "s", "b"))

        assert len(handler.requests) == 1

    def test_send_attempts_can_be_raised(self, metrics, no_sleep):
        handler = Recorder([
            google_error(503, "unavailable", "UNAVAILABLE"),
            httpx.Response(200, json={"rfc822MessageId": "<x>"}),
        ])
        client = make_client(handler, metrics, no_sleep, send_attempts=3)

        assert run_async(client.send_email_message("d", "to@example.com", "s", "b")) == "<x>"


class TestListDomains:

    def test_follows_page_tokens(self, metrics, no_sleep):
        handler = Recorder([
            httpx.Response(200, json={
                "domains": [{"name": "regions/us-central1/domains/a", "domainName": "a.example"}],
                "nextPageToken": "tok-2",
            }),
            httpx.Response(200, json={
                "domains": [{"name": "regions/us-central1/domains/b", "domainName": "b.example"}],
            }),
        ])
        client = make_client(handler, metrics, no_sleep)

        domains = run_async(client.list_domains())

        assert [d.domain_name for d in domains] == ["a.example", "b.example"]
        first, second = handler.requests
        assert "pageToken" not in first.url.params
        assert second.url.params["pageToken"] == "tok-2"
        assert first.url.params["region"] == "us-central1"

    def test_repeated_token_fails(self, metrics, no_sleep):
        page = {"domains": [], "nextPageToken": "stuck"}
        handler = Recorder([httpx.Response(200, json=page), httpx.Response(200, json=page)])
        client = make_client(handler, metrics, no_sleep)

        with pytest.raises(DepaginationError):
            run_async(client.list_domains())

        assert len(handler.requests) == 2


class TestPaths:

    def test_domain_id_from_name(self):
        client = MailClient()
        assert client.domain_id_from_name("regions/us-central1/domains/xyz") == "xyz"

    def test_unauthenticated_client_sends_no_token(self, metrics, no_sleep):
        handler = Recorder([httpx.Response(200, json={"domains": []})])
        client = MailClient(transport=httpx.MockTransport(handler),
                            metrics=metrics, sleep=no_sleep)

        run_async(client.list_domains())

        assert "Authorization" not in handler.requests[0].headers
