"""
Signed-envelope verification for inbound Resend webhooks.

Resend delivers webhooks through Svix. Each request carries three headers:

  svix-id          unique message id
  svix-timestamp   Unix seconds when the message was signed
  svix-signature   space-separated list of "v1,<base64 HMAC-SHA256>"

Verification is delegated to ``resend.Webhooks.verify``, which checks the
timestamp window and the signature before parsing the payload. This module
maps its failures onto the relay's error types.
"""

import base64
import hashlib
import hmac
import json
import logging
import time
from typing import Optional

import resend

from mailrelay.errors import AuthError, ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

SECRET_PREFIX = "whsec_"
SIGNATURE_VERSION = "v1"


def _secret_key(secret: str) -> bytes:
    """Decode the HMAC key from a ``whsec_`` secret."""
    raw = secret[len(SECRET_PREFIX):] if secret.startswith(SECRET_PREFIX) else secret
    return base64.b64decode(raw)


def compute_signature(secret: str, msg_id: str, timestamp: str, body: bytes) -> str:
    """Return the base64 HMAC-SHA256 of ``"{id}.{timestamp}.{body}"``."""
    signed = f"{msg_id}.{timestamp}.".encode("utf-8") + body
    digest = hmac.new(_secret_key(secret), signed, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def sign_webhook(secret: str, msg_id: str, body: bytes, timestamp: Optional[int] = None) -> dict:
    """
    Build the three envelope headers for ``body``.

    Used by the dev script and the tests to produce deliveries that pass
    ``verify_webhook``.
    """
    ts = str(int(timestamp if timestamp is not None else time.time()))
    signature = compute_signature(secret, msg_id, ts, body)
    return {
        "svix-id": msg_id,
        "svix-timestamp": ts,
        "svix-signature": f"{SIGNATURE_VERSION},{signature}",
    }


def verify_webhook(
    raw_body: bytes,
    msg_id: Optional[str],
    timestamp: Optional[str],
    signature: Optional[str],
    secret: Optional[str],
) -> dict:
    """
    Authenticate a webhook delivery and return its parsed JSON payload.

    Args:
        raw_body: Request body exactly as received.
        msg_id: ``svix-id`` header.
        timestamp: ``svix-timestamp`` header.
        signature: ``svix-signature`` header.
        secret: The webhook signing secret.

    Raises:
        ConfigurationError: 500 if no secret is configured; every delivery is
            refused rather than accepted unverified.
        AuthError: 401 on missing headers, a timestamp outside the five
            minute window, or a signature mismatch.
        ValidationError: 400 if a correctly signed body is not a JSON object.
    """
    if not secret:
        logger.error("RESEND_WEBHOOK_SECRET is not configured; refusing webhook")
        raise ConfigurationError("Webhook verification not configured")

    if not msg_id or not timestamp or not signature:
        raise AuthError("Webhook verification failed.", details="Missing required headers")

    try:
        body = raw_body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise AuthError("Webhook verification failed.", details=str(exc))

    try:
        payload = resend.Webhooks.verify({
            "payload": body,
            "headers": {"id": msg_id, "timestamp": timestamp, "signature": signature},
            "webhook_secret": secret,
        })
    except ValueError as exc:
        # The signature matched but the body is not JSON
        if isinstance(exc.__cause__, json.JSONDecodeError):
            raise ValidationError("Invalid webhook payload", details=str(exc))
        logger.warning("Webhook verification failed: %s", exc)
        raise AuthError("Webhook verification failed.", details=str(exc))

    if not isinstance(payload, dict):
        raise ValidationError("Invalid webhook payload", details="Payload is not a JSON object")

    return payload
