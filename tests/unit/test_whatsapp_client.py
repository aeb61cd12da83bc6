"""Tests for the WhatsApp Cloud API client."""

import httpx
import pytest
from unittest.mock import AsyncMock

from app.infra.whatsapp import WhatsAppClient

BASE_URL = "https://graph.facebook.com/v21.0/106540352242922"


def response(status_code: int, **kwargs) -> httpx.Response:
    return httpx.Response(
        status_code,
        request=httpx.Request("POST", f"{BASE_URL}/messages"),
        **kwargs,
    )


class TestWhatsAppClient:
    """Test WhatsAppClient."""

    @pytest.fixture
    def client(self):
        return WhatsAppClient(base_url=BASE_URL, access_token="token-123", timeout=5)

    @pytest.fixture
    def mock_httpx_client(self):
        return AsyncMock()

    @pytest.mark.asyncio
    async def test_send_text(self, client, mock_httpx_client):
        """Posts a text message and returns the provider id."""
        mock_httpx_client.post = AsyncMock(
            return_value=response(200, json={"messages": [{"id": "wamid.ABC"}]})
        )
        client._client = mock_httpx_client

        result = await client.send_text("5511999999999", "Hello")

        assert result.success is True
        assert result.message_id == "wamid.ABC"
        mock_httpx_client.post.assert_awaited_once_with(
            "/messages",
            json={
                "messaging_product": "whatsapp",
                "to": "5511999999999",
                "type": "text",
                "text": {"body": "Hello"},
            },
        )

    @pytest.mark.asyncio
    async def test_send_text_error_status(self, client, mock_httpx_client):
        """Non-2xx is reported, not raised."""
        mock_httpx_client.post = AsyncMock(
            return_value=response(400, json={"error": {"message": "bad recipient"}})
        )
        client._client = mock_httpx_client

        result = await client.send_text("5511999999999", "Hello")

        assert result.success is False
        assert result.message_id is None

    @pytest.mark.asyncio
    async def test_send_text_transport_error(self, client, mock_httpx_client):
        mock_httpx_client.post = AsyncMock(side_effect=httpx.ConnectTimeout("timed out"))
        client._client = mock_httpx_client

        result = await client.send_text("5511999999999", "Hello")

        assert result.success is False

    @pytest.mark.asyncio
    async def test_send_text_unreadable_body(self, client, mock_httpx_client):
        mock_httpx_client.post = AsyncMock(return_value=response(200, content=b"not json"))
        client._client = mock_httpx_client

        result = await client.send_text("5511999999999", "Hello")

        assert result.success is False

    @pytest.mark.asyncio
    async def test_mark_as_read(self, client, mock_httpx_client):
        mock_httpx_client.post = AsyncMock(return_value=response(200, json={"success": True}))
        client._client = mock_httpx_client

        await client.mark_as_read("wamid.IN")

        mock_httpx_client.post.assert_awaited_once_with(
            "/messages",
            json={
                "messaging_product": "whatsapp",
                "status": "read",
                "message_id": "wamid.IN",
            },
        )

    @pytest.mark.asyncio
    async def test_mark_as_read_failure_swallowed(self, client, mock_httpx_client):
        mock_httpx_client.post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        client._client = mock_httpx_client

        await client.mark_as_read("wamid.IN")

    @pytest.mark.asyncio
    async def test_http_client_configuration(self, client):
        """Bearer token, base URL and timeout are applied."""
        http_client = await client._get_client()

        assert http_client.headers["Authorization"] == "Bearer token-123"
        assert str(http_client.base_url).rstrip("/") == BASE_URL
        assert http_client.timeout.connect == 5

        await client.close()
        assert client._client is None
