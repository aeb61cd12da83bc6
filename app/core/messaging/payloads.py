"""
Inbound webhook payload models.

Only the fields the dispatcher reads are modelled; everything else in the
provider's payload is ignored.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class TextBody(_Lenient):
    body: str = ""


class ButtonReply(_Lenient):
    id: Optional[str] = None
    title: str = ""


class Interactive(_Lenient):
    type: Optional[str] = None
    button_reply: Optional[ButtonReply] = None


class InboundMessage(_Lenient):
    """A message sent by a customer."""

    id: str
    sender: str = Field(alias="from")
    type: str
    timestamp: Optional[str] = None
    text: Optional[TextBody] = None
    interactive: Optional[Interactive] = None

    def text_body(self) -> Optional[str]:
        """Text of a plain or button-reply message; None for other types."""
        if self.type == "text" and self.text and self.text.body:
            return self.text.body
        if (
            self.type == "interactive"
            and self.interactive
            and self.interactive.button_reply
            and self.interactive.button_reply.title
        ):
            return self.interactive.button_reply.title
        return None


class DeliveryStatus(_Lenient):
    """Delivery receipt for a message we sent."""

    id: str
    status: str
    recipient_id: Optional[str] = None


class ChangeMetadata(_Lenient):
    phone_number_id: Optional[str] = None
    display_phone_number: Optional[str] = None


class ChangeValue(_Lenient):
    messaging_product: Optional[str] = None
    metadata: Optional[ChangeMetadata] = None
    messages: list[InboundMessage] = Field(default_factory=list)
    statuses: list[DeliveryStatus] = Field(default_factory=list)


class Change(_Lenient):
    field: Optional[str] = None
    value: ChangeValue


class Entry(_Lenient):
    id: Optional[str] = None
    changes: list[Change] = Field(default_factory=list)


class WebhookPayload(_Lenient):
    """A batch of inbound events."""

    object: Optional[str] = None
    entry: list[Entry] = Field(default_factory=list)


@dataclass
class ExtractedMessage:
    """Inbound message reduced to what the conversation needs."""

    message_id: str
    sender: str
    body: str
    phone_number_id: Optional[str] = None


def extract_messages(payload: WebhookPayload) -> list[ExtractedMessage]:
    """Text-bearing messages of a batch, in delivery order."""
    extracted: list[ExtractedMessage] = []
    for entry in payload.entry:
        for change in entry.changes:
            phone_number_id = (
                change.value.metadata.phone_number_id if change.value.metadata else None
            )
            for message in change.value.messages:
                body = message.text_body()
                if body is None:
                    continue
                extracted.append(
                    ExtractedMessage(
                        message_id=message.id,
                        sender=message.sender,
                        body=body,
                        phone_number_id=phone_number_id,
                    )
                )
    return extracted


def extract_statuses(payload: WebhookPayload) -> list[DeliveryStatus]:
    """Delivery status records of a batch."""
    return [
        status
        for entry in payload.entry
        for change in entry.changes
        for status in change.value.statuses
    ]
