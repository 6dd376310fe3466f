"""
Resend inbound webhook.

Endpoints:
  POST /inbound-email   - provider webhook (auth: Svix signed envelope)

Only ``email.received`` events are stored; other event types are
acknowledged with 200 and dropped. Duplicate deliveries are stored twice.
"""

import logging
from typing import Optional

import pydantic
from fastapi import APIRouter, Header, Request

from mailrelay.config import get_webhook_secret
from mailrelay.errors import ValidationError
from mailrelay.models.inbound_email import WebhookEvent
from mailrelay.routers.emails import get_inbox
from mailrelay.services.inbound_email_adapter import normalize_received_email
from mailrelay.services.webhook_verifier import verify_webhook

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/inbound-email")
async def receive_inbound_email(
    request: Request,
    svix_id: Optional[str] = Header(None),
    svix_timestamp: Optional[str] = Header(None),
    svix_signature: Optional[str] = Header(None),
) -> dict:
    """
    Verify the delivery, then store the email if it is an ``email.received`` event.

    Responses:
      200  processed, or an event type the relay ignores
      400  event body or email data missing
      401  signature, timestamp or headers invalid
      500  webhook secret or store not configured, or the store is down
    """
    raw_body = await request.body()
    logger.info(
        "Webhook received (%d bytes, id=%s, signed=%s)",
        len(raw_body), svix_id, bool(svix_signature),
    )

    payload = verify_webhook(
        raw_body,
        svix_id,
        svix_timestamp,
        svix_signature,
        get_webhook_secret(),
    )
    logger.info("Webhook signature verified")

    try:
        event = WebhookEvent.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise ValidationError("Invalid webhook payload", details=str(exc))

    if not event.is_email_received:
        logger.info("Webhook event type not handled: %s", event.type)
        return {"message": "Webhook processed successfully."}

    if event.data is None or not isinstance(event.data, dict):
        logger.error("Email data is missing")
        raise ValidationError("Email data is missing")

    record = normalize_received_email(event.data)
    logger.info(
        "Storing email id=%s from=%s subject=%r",
        record.id, record.from_, record.subject[:50],
    )

    inbox = await get_inbox()
    await inbox.append(record)

    return {"message": "Webhook processed successfully."}
