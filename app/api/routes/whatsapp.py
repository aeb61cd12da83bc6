"""
WhatsApp Webhook Endpoints

GET answers the provider's subscription handshake. POST authenticates the
batch with the X-Hub-Signature-256 HMAC, acknowledges at once and hands the
batch to the InboundDispatcher in a background task.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query, Request, status
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from app.api.dependencies import get_inbound_dispatcher
from app.api.errors import ApiError
from app.config import settings
from app.core.messaging import InboundDispatcher, WebhookPayload, verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/whatsapp", tags=["WhatsApp"])


@router.get(
    "",
    response_class=PlainTextResponse,
    summary="Webhook verification handshake",
    responses={
        200: {"description": "Challenge echoed"},
        400: {"description": "Missing parameters"},
        403: {"description": "Verify token mismatch"},
    },
)
async def verify_webhook(
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
) -> PlainTextResponse:
    """Echo hub.challenge when the subscription request carries our verify token."""
    if not mode or not verify_token or challenge is None:
        raise ApiError.invalid_request("Missing hub.mode, hub.verify_token or hub.challenge")

    if (
        mode != "subscribe"
        or not settings.whatsapp_verify_token
        or verify_token != settings.whatsapp_verify_token
    ):
        logger.warning("WhatsApp webhook verification rejected")
        raise ApiError(status.HTTP_403_FORBIDDEN, "FORBIDDEN", "Verification failed")

    logger.info("WhatsApp webhook verified")
    return PlainTextResponse(content=challenge)


@router.post(
    "",
    summary="Receive webhook batch",
    responses={
        200: {"description": "Batch accepted"},
        400: {"description": "Malformed payload"},
        401: {"description": "Missing or invalid signature"},
    },
)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_hub_signature_256: Optional[str] = Header(default=None),
    dispatcher: InboundDispatcher = Depends(get_inbound_dispatcher),
) -> dict:
    """
    Accept a webhook batch.

    The signature is checked over the raw body before any parsing. Processing
    happens after the response is sent; per-message failures never change
    the acknowledgement.
    """
    raw_body = await request.body()

    if not settings.whatsapp_app_secret:
        logger.error("WhatsApp webhook rejected | Reason: app secret not configured")
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "Invalid signature")

    if not x_hub_signature_256 or not verify_signature(
        raw_body, x_hub_signature_256, settings.whatsapp_app_secret
    ):
        logger.warning("WhatsApp webhook rejected | Reason: invalid signature")
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "Invalid signature")

    try:
        payload = WebhookPayload.model_validate_json(raw_body)
    except ValidationError:
        raise ApiError.invalid_request("Malformed webhook payload")

    background_tasks.add_task(dispatcher.dispatch, payload)
    return {"data": "ok"}
