"""
HTTP client for the WhatsApp Cloud API.

Outbound calls never raise: transport failures and non-2xx responses are
logged and reported through SendResult.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from app.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    """Outcome of an outbound message."""

    success: bool
    message_id: Optional[str] = None


class WhatsAppClient:
    """
    Client for the messages endpoint of one sending phone number.

    Endpoint:
    - POST {base_url}/messages - send text, mark inbound message as read
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize client.

        Args:
            base_url: Graph API base for the phone number (defaults to settings)
            access_token: Bearer token (defaults to settings)
            timeout: Request timeout in seconds (defaults to settings, 10s)
        """
        settings = get_settings()
        self.base_url = base_url or settings.whatsapp_base_url
        self.access_token = access_token or settings.whatsapp_access_token
        self.timeout = timeout or settings.whatsapp_request_timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send_text(self, to: str, body: str) -> SendResult:
        """Send a plain text message.

        Args:
            to: Recipient phone number
            body: Message text

        Returns:
            SendResult with the provider message id on success
        """
        client = await self._get_client()

        try:
            response = await client.post(
                "/messages",
                json={
                    "messaging_product": "whatsapp",
                    "to": to,
                    "type": "text",
                    "text": {"body": body},
                },
            )
            response.raise_for_status()

            data = response.json()
            messages = data.get("messages") or [{}]
            return SendResult(success=True, message_id=messages[0].get("id"))

        except httpx.HTTPStatusError as e:
            logger.error(f"WhatsApp send failed with status {e.response.status_code}")
            return SendResult(success=False)
        except httpx.HTTPError as e:
            logger.error(f"WhatsApp send failed: {type(e).__name__}")
            return SendResult(success=False)
        except ValueError:
            logger.error("WhatsApp send returned an unreadable response")
            return SendResult(success=False)

    async def mark_as_read(self, message_id: str) -> None:
        """Mark an inbound message as read. Failures are logged only."""
        client = await self._get_client()

        try:
            response = await client.post(
                "/messages",
                json={
                    "messaging_product": "whatsapp",
                    "status": "read",
                    "message_id": message_id,
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Mark as read failed | Message: {message_id} | {type(e).__name__}")


# Singleton instance
_client: Optional[WhatsAppClient] = None


def get_whatsapp_client() -> WhatsAppClient:
    """Get or create WhatsApp client singleton."""
    global _client
    if _client is None:
        _client = WhatsAppClient()
    return _client


async def close_whatsapp_client() -> None:
    """Close the singleton's HTTP connections."""
    global _client
    if _client is not None:
        await _client.close()
        _client = None
