"""Cloud Mail client for provisioning and sending monitoring alert mail."""

from infrakit.cloudmail.client import (
    ADDRESS_PATTERN,
    ADDRESS_SET_ID,
    PROJECT_ID,
    RECEIPT_RULE_ID,
    REGION,
    SENDER_ID,
    MailClient,
)
from infrakit.cloudmail.models import Domain, MatchMode, ReceiptRule

__all__ = [
    "ADDRESS_PATTERN",
    "ADDRESS_SET_ID",
    "Domain",
    "MailClient",
    "MatchMode",
    "PROJECT_ID",
    "RECEIPT_RULE_ID",
    "REGION",
    "ReceiptRule",
    "SENDER_ID",
]
