"""Cloud Mail API client for monitoring alert mail.

This module provides an async wrapper around the Cloud Mail REST API for:
- Creating a project domain and listing domains
- Enabling an address set under the domain
- Creating a sender bound to the address set
- Dropping bounces through a receipt rule applied with a field-mask update
- Sending messages

Create calls are retried on transient errors only, so an "already exists"
conflict is reported on the first attempt instead of being repeated.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx
import structlog

from infrakit.common.context import CallContext
from infrakit.common.errors import RateLimitError, RemoteAPIError
from infrakit.common.metrics import ClientMetrics
from infrakit.common.pagination import ListOptions, Page, depaginate
from infrakit.common.retry import RetryPolicy, Sleep, retry
from infrakit.cloudmail.models import (
    Address,
    AddressSet,
    Domain,
    DropAction,
    ListDomainsResponse,
    MatchMode,
    ReceiptAction,
    ReceiptRule,
    ReceiptRulePattern,
    ReceiptRuleset,
    SendMessageRequest,
    SendMessageResponse,
    Sender,
    SimpleMessage,
)

logger = structlog.get_logger()

PROJECT_ID = "knative-tests"
REGION = "us-central1"

ADDRESS_SET_ID = "monitoring-address-set"
ADDRESS_PATTERN = "monitoring-alert"
SENDER_ID = "monitoring-alert-sender"
RECEIPT_RULE_ID = "monitoring-receipt-drop-rule"

MAX_RETRY_COUNT = 5

TEST_MESSAGE_SUBJECT = "Knative Monitoring Cloud Mail Test"
TEST_MESSAGE_BODY = "This is a test message."


def _error_message(response: httpx.Response) -> str:
    """Extract the message of a Google API error body, if there is one."""
    try:
        payload = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return response.text[:500]


class MailClient:
    """Async Cloud Mail client.

    Resource identifiers default to the monitoring project constants and can
    be overridden per instance.

    Example:
        >>> async with MailClient(token=access_token) as mail:
        ...     domain_id = await mail.create_domain()
        ...     await mail.create_address_set(domain_id)
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = "https://cloudmail.googleapis.com/v1alpha3",
        project_id: str = PROJECT_ID,
        region: str = REGION,
        address_set_id: str = ADDRESS_SET_ID,
        address_pattern: str = ADDRESS_PATTERN,
        sender_id: str = SENDER_ID,
        receipt_rule_id: str = RECEIPT_RULE_ID,
        max_retries: int = MAX_RETRY_COUNT,
        send_attempts: int = 1,
        page_size: int = 100,
        timeout: float = 30.0,
        policy: Optional[RetryPolicy] = None,
        metrics: Optional[ClientMetrics] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize the Cloud Mail client.

        Args:
            token: OAuth access token; requests are unauthenticated without one.
            base_url: Base URL of the versioned Cloud Mail REST API.
            max_retries: Attempts per provisioning call and per listed page.
            send_attempts: Attempts per sent message. Repeating a send may
                deliver the message twice, hence the default of 1.
            page_size: Page size requested from list endpoints.
            timeout: Request timeout in seconds.
            policy: Backoff policy between attempts.
            metrics: Metrics sink for the retry helpers.
            transport: Optional httpx transport, mainly for tests.
            sleep: Coroutine used to wait between attempts.
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.project_id = project_id
        self.region = region
        self.address_set_id = address_set_id
        self.address_pattern = address_pattern
        self.sender_id = sender_id
        self.receipt_rule_id = receipt_rule_id
        self.max_retries = max_retries
        self.send_attempts = send_attempts
        self.page_size = page_size
        self.timeout = timeout
        self.policy = policy
        self.metrics = metrics
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> "MailClient":
        """Build a client from ``InfrakitSettings``."""
        return cls(
            token=settings.cloudmail_token,
            base_url=settings.cloudmail_base_url,
            project_id=settings.cloudmail_project_id,
            region=settings.cloudmail_region,
            address_set_id=settings.cloudmail_address_set_id,
            address_pattern=settings.cloudmail_address_pattern,
            sender_id=settings.cloudmail_sender_id,
            receipt_rule_id=settings.cloudmail_receipt_rule_id,
            max_retries=settings.max_retry_count,
            timeout=settings.cloudmail_timeout,
            policy=settings.retry_policy(),
            **kwargs,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"User-Agent": "infrakit/0.1"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "MailClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Resource paths
    # -------------------------------------------------------------------------
    def project_path(self) -> str:
        return f"projects/{self.project_id}"

    def domain_path(self, domain_id: str) -> str:
        return f"regions/{self.region}/domains/{domain_id}"

    def address_set_path(self, domain_id: str) -> str:
        return f"{self.domain_path(domain_id)}/addressSets/{self.address_set_id}"

    def receipt_rule_path(self, domain_id: str) -> str:
        return f"{self.domain_path(domain_id)}/receiptRules/{self.receipt_rule_id}"

    def sender_path(self) -> str:
        return f"projects/{self.project_id}/regions/{self.region}/senders/{self.sender_id}"

    def domain_id_from_name(self, name: str) -> str:
        """Strip the "regions/{region}/domains/" prefix from a domain resource name."""
        return name.replace(f"regions/{self.region}/domains/", "", 1)

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------
    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Make a single HTTP request and return the decoded JSON body.

        Raises:
            RateLimitError: On 429.
            RemoteAPIError: On any other status >= 400.
            httpx.RequestError: On transport failures and timeouts.
        """
        response = await self.client.request(
            method=method,
            url=f"/{path}",
            params=params,
            json=json_data,
        )

        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise RateLimitError(
                message=f"Cloud Mail rate limit exceeded: {_error_message(response)}",
                status_code=response.status_code,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                response_body=response.text,
                request_url=str(response.url),
            )

        if response.status_code >= 400:
            raise RemoteAPIError(
                message=f"Cloud Mail API error {response.status_code}: {_error_message(response)}",
                status_code=response.status_code,
                response_body=response.text,
                request_url=str(response.url),
            )

        if not response.content:
            return {}
        return response.json()

    async def _call(
        self,
        description: str,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
        max_attempts: Optional[int] = None,
        context: Optional[CallContext] = None,
    ) -> Dict[str, Any]:
        async def operation() -> Dict[str, Any]:
            return await self._request(method, path, params=params, json_data=json_data)

        return await retry(
            description,
            max_attempts or self.max_retries,
            operation,
            context=context,
            policy=self.policy,
            metrics=self.metrics,
            sleep=self._sleep,
        )

    # -------------------------------------------------------------------------
    # Domains
    # -------------------------------------------------------------------------
    async def create_domain(self, context: Optional[CallContext] = None) -> str:
        """Create a new project domain.

        Returns:
            The ID of the created domain.
        """
        domain = Domain(project_domain=True, domain_name="")
        payload = await self._call(
            f"creating project domain in region '{self.region}'",
            "POST",
            f"{self.project_path()}/domains",
            params={"region": self.region},
            json_data=domain.dump(),
            context=context,
        )
        created = Domain.model_validate(payload)
        domain_id = self.domain_id_from_name(created.name or "")

        logger.info(
            "Domain created",
            domain_name=created.domain_name,
            region=self.region,
            domain_id=domain_id,
        )
        return domain_id

    async def list_domains(self, context: Optional[CallContext] = None) -> List[Domain]:
        """List every domain of the project in the configured region."""
        options = ListOptions(per_page=self.page_size)

        async def fetch_page() -> Page[Domain]:
            params: Dict[str, Any] = {"region": self.region, "pageSize": options.per_page}
            if options.page:
                params["pageToken"] = options.page
            payload = await self._request(
                "GET", f"{self.project_path()}/domains", params=params
            )
            listing = ListDomainsResponse.model_validate(payload)
            return Page(items=listing.domains, next_page=listing.next_page_token)

        return await depaginate(
            f"listing domains in region '{self.region}'",
            self.max_retries,
            options,
            fetch_page,
            context=context,
            policy=self.policy,
            metrics=self.metrics,
            sleep=self._sleep,
        )

    async def update_domain(
        self,
        domain: Domain,
        update_mask: List[str],
        context: Optional[CallContext] = None,
    ) -> Domain:
        """Update only the ``update_mask`` fields of a domain.

        Args:
            domain: Domain carrying its resource name and the new field values.
            update_mask: Snake-case field paths to overwrite, e.g. ["receipt_ruleset"].
            context: Cancellation/deadline handle.
        """
        if not domain.name:
            raise ValueError("domain.name is required for an update")
        if not update_mask:
            raise ValueError("update_mask cannot be empty")

        payload = await self._call(
            f"updating domain '{domain.name}' fields {update_mask}",
            "PATCH",
            domain.name,
            params={"updateMask": ",".join(update_mask)},
            json_data=domain.dump(),
            context=context,
        )
        return Domain.model_validate(payload)

    # -------------------------------------------------------------------------
    # Address sets, senders, receipt rules
    # -------------------------------------------------------------------------
    async def create_address_set(
        self, domain_id: str, context: Optional[CallContext] = None
    ) -> None:
        """Enable email addresses matching the address pattern under the domain."""
        address_set = AddressSet(address_patterns=[self.address_pattern])
        await self._call(
            f"creating address set '{self.address_set_id}' in domain '{domain_id}'",
            "POST",
            f"{self.domain_path(domain_id)}/addressSets",
            params={"addressSetId": self.address_set_id},
            json_data=address_set.dump(),
            context=context,
        )
        logger.info("Address set created", address_set_id=self.address_set_id)

    async def create_sender(
        self, domain_id: str, context: Optional[CallContext] = None
    ) -> None:
        """Configure the sender whose default authorities are the address set."""
        address_set_path = self.address_set_path(domain_id)
        sender = Sender(
            default_envelope_from_authority=address_set_path,
            default_header_from_authority=address_set_path,
        )
        await self._call(
            f"creating sender '{self.sender_id}'",
            "POST",
            f"{self.project_path()}/senders",
            params={"region": self.region, "senderId": self.sender_id},
            json_data=sender.dump(),
            context=context,
        )
        logger.info("Sender created", sender_id=self.sender_id)

    async def create_and_apply_receipt_rule_drop(
        self, domain_id: str, context: Optional[CallContext] = None
    ) -> None:
        """Drop bounce messages for undeliverable alert mail.

        Creates a receipt rule matching the address pattern as a prefix with a
        drop action, then sets it as the domain's receipt ruleset through a
        field-mask update that leaves the other domain fields untouched.
        """
        receipt_rule = ReceiptRule(
            envelope_to_patterns=[
                ReceiptRulePattern(pattern=self.address_pattern, match_mode=MatchMode.PREFIX)
            ],
            action=ReceiptAction(drop=DropAction()),
        )
        await self._call(
            f"creating receipt rule '{self.receipt_rule_id}' in domain '{domain_id}'",
            "POST",
            f"{self.domain_path(domain_id)}/receiptRules",
            params={"ruleId": self.receipt_rule_id},
            json_data=receipt_rule.dump(),
            context=context,
        )
        logger.info("Receipt rule created", receipt_rule_id=self.receipt_rule_id)

        domain = Domain(
            name=self.domain_path(domain_id),
            receipt_ruleset=ReceiptRuleset(receipt_rules=[self.receipt_rule_path(domain_id)]),
        )
        await self.update_domain(domain, ["receipt_ruleset"], context=context)
        logger.info(
            "Receipt rule applied to domain",
            receipt_rule_id=self.receipt_rule_id,
            domain_id=domain_id,
        )

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------
    async def send_test_message(
        self,
        domain_name: str,
        to_address: str,
        context: Optional[CallContext] = None,
    ) -> str:
        """Send a fixed test message from the alert address."""
        return await self.send_email_message(
            domain_name,
            to_address,
            TEST_MESSAGE_SUBJECT,
            TEST_MESSAGE_BODY,
            context=context,
        )

    async def send_email_message(
        self,
        domain_name: str,
        to_address: str,
        subject: str,
        body: str,
        context: Optional[CallContext] = None,
    ) -> str:
        """Send a plain-text email from "{address_pattern}@{domain_name}".

        Returns:
            The RFC 822 Message-ID of the sent message.
        """
        from_address = f"{self.address_pattern}@{domain_name}"
        request = SendMessageRequest(
            envelope_from_address=from_address,
            simple_message=SimpleMessage(
                from_address=Address(address_spec=from_address),
                to=[Address(address_spec=to_address)],
                subject=subject,
                text_body=body,
            ),
        )
        payload = await self._call(
            f"sending message '{subject}' to '{to_address}'",
            "POST",
            f"{self.sender_path()}:sendMessage",
            json_data=request.dump(),
            max_attempts=self.send_attempts,
            context=context,
        )
        message_id = SendMessageResponse.model_validate(payload).rfc822_message_id
        logger.info("Message sent", message_id=message_id, to_address=to_address)
        return message_id
