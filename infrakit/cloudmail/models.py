"""Cloud Mail resource models.

The REST API uses camelCase JSON; the models expose snake_case attributes
and serialize with ``dump()``.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _MailModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def dump(self) -> Dict[str, Any]:
        """Serialize to the API's JSON shape, leaving out unset fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ReceiptRuleset(_MailModel):
    receipt_rules: List[str] = Field(default_factory=list)


class Domain(_MailModel):
    """A mail domain.

    Attributes:
        name: Resource name, "regions/{region}/domains/{domain_id}".
        domain_name: DNS name of the domain.
        project_domain: Whether Cloud Mail assigns a project-owned domain name.
        receipt_ruleset: Receipt rules applied to inbound mail.
    """

    name: Optional[str] = None
    domain_name: Optional[str] = None
    project_domain: Optional[bool] = None
    receipt_ruleset: Optional[ReceiptRuleset] = None


class AddressSet(_MailModel):
    name: Optional[str] = None
    address_patterns: List[str] = Field(default_factory=list)


class Sender(_MailModel):
    name: Optional[str] = None
    default_envelope_from_authority: Optional[str] = None
    default_header_from_authority: Optional[str] = None


class MatchMode(str, Enum):
    """How a receipt rule pattern is matched against an address."""

    MATCH_MODE_UNSPECIFIED = "MATCH_MODE_UNSPECIFIED"
    EXACT = "EXACT"
    PREFIX = "PREFIX"
    SUFFIX = "SUFFIX"


class ReceiptRulePattern(_MailModel):
    pattern: str
    match_mode: MatchMode = MatchMode.EXACT


class DropAction(_MailModel):
    pass


class ReceiptAction(_MailModel):
    drop: Optional[DropAction] = None


class ReceiptRule(_MailModel):
    """What to do with inbound mail matching the envelope-to patterns."""

    name: Optional[str] = None
    envelope_to_patterns: List[ReceiptRulePattern] = Field(default_factory=list)
    action: Optional[ReceiptAction] = None


class Address(_MailModel):
    address_spec: str


class SimpleMessage(_MailModel):
    from_address: Address = Field(alias="from")
    to: List[Address] = Field(default_factory=list)
    subject: str = ""
    text_body: Optional[str] = None
    html_body: Optional[str] = None


class SendMessageRequest(_MailModel):
    """Body of a ``senders/*:sendMessage`` call.

    Empty authorities make Cloud Mail fall back on the sender's defaults.
    """

    envelope_from_authority: str = ""
    header_from_authority: str = ""
    envelope_from_address: str
    simple_message: SimpleMessage


class SendMessageResponse(_MailModel):
    rfc822_message_id: str = ""


class ListDomainsResponse(_MailModel):
    domains: List[Domain] = Field(default_factory=list)
    next_page_token: Optional[str] = None
