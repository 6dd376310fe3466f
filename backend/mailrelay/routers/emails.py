"""
Operator mailbox endpoints.

Endpoints:
  GET  /get-emails   - the 100 most recent received emails, newest first (auth: JWT)
  POST /send-email   - send an email through Resend (auth: JWT)
"""

import logging

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from mailrelay.auth import get_current_user
from mailrelay.config import get_inbox_max_length, get_mail_from, get_resend_api_key
from mailrelay.db import get_redis
from mailrelay.models.email import SendEmailRequest
from mailrelay.rate_limit import API_RATE_LIMIT, EMAIL_RATE_LIMIT, RateLimitResult, rate_limited
from mailrelay.services.inbox import DEFAULT_READ_LIMIT, InboxStore
from mailrelay.services.sender import EmailSender

logger = logging.getLogger(__name__)

router = APIRouter()


async def get_inbox() -> InboxStore:
    """Return an InboxStore bound to the shared Redis connection."""
    redis = await get_redis()
    return InboxStore(redis, max_length=get_inbox_max_length())


def get_sender() -> EmailSender:
    return EmailSender(get_resend_api_key(), get_mail_from())


@router.get("/get-emails")
async def list_emails(
    _: RateLimitResult = Depends(rate_limited(API_RATE_LIMIT)),
    claims: dict = Depends(get_current_user),
) -> list[dict]:
    """
    Return up to 100 stored emails, newest first.

    Records that cannot be decoded are skipped rather than failing the read.
    """
    inbox = await get_inbox()
    emails = await inbox.read_recent(DEFAULT_READ_LIMIT)
    logger.info("Returning %d emails to %s", len(emails), claims.get("user"))
    return [email.to_api() for email in emails]


@router.post("/send-email")
async def send_email(
    body: SendEmailRequest,
    _: RateLimitResult = Depends(rate_limited(EMAIL_RATE_LIMIT)),
    claims: dict = Depends(get_current_user),
) -> dict:
    """
    Validate and send one email.

    Returns 400 on invalid input or a provider rejection, and 500 when
    RESEND_API_KEY is not configured.
    """
    sender = get_sender()
    data = await run_in_threadpool(sender.send, body.to, body.subject, body.html)
    return {"message": "Email sent successfully!", "data": data}
