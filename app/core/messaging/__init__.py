"""
Inbound chat messaging: webhook payload parsing, signature verification and
dispatch of messages to the conversation engine.
"""

from app.core.messaging.dispatcher import (
    DispatchReport,
    InboundDispatcher,
    OrganizationResolver,
    SqlOrganizationResolver,
)
from app.core.messaging.payloads import WebhookPayload, extract_messages, extract_statuses
from app.core.messaging.signature import verify_signature

__all__ = [
    "DispatchReport",
    "InboundDispatcher",
    "OrganizationResolver",
    "SqlOrganizationResolver",
    "WebhookPayload",
    "extract_messages",
    "extract_statuses",
    "verify_signature",
]
