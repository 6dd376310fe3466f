"""
Outbound email through the Resend API.

Input is validated in a fixed order and the first failure is reported. The
Resend SDK call is synchronous; routers run it in the threadpool.
"""

import logging
import re
from typing import Any, Optional

import resend
from resend.exceptions import ResendError

from mailrelay.errors import ConfigurationError, ProviderError, ValidationError

logger = logging.getLogger(__name__)

MAX_SUBJECT_LENGTH = 200

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Editor output that renders as a blank message
_EMPTY_HTML_PATTERNS = [
    re.compile(r"^<p>\s*</p>$", re.IGNORECASE),
    re.compile(r"^<p><br\s*/?></p>$", re.IGNORECASE),
    re.compile(r"^<p>\s*<br\s*/?>\s*</p>$", re.IGNORECASE),
    re.compile(r"^<p>&nbsp;</p>$", re.IGNORECASE),
    re.compile(r"^<p>\s*&nbsp;\s*</p>$", re.IGNORECASE),
]


def is_valid_email(address: Any) -> bool:
    """Basic ``local@domain.tld`` shape check."""
    if not address or not isinstance(address, str):
        return False
    return bool(_EMAIL_RE.match(address.strip()))


def is_empty_html(html: Any) -> bool:
    """True for missing, blank, or visually empty HTML bodies."""
    if not html or not isinstance(html, str):
        return True
    trimmed = html.strip()
    if not trimmed:
        return True
    return any(pattern.match(trimmed) for pattern in _EMPTY_HTML_PATTERNS)


def validate_message(to: Any, subject: Any, html: Any) -> tuple[str, str, str]:
    """
    Check an outbound message and return ``(to, subject, html)`` ready to send.

    The recipient is trimmed and the subject trimmed and cut to 200 characters.

    Raises:
        ValidationError: on the first failing field, in order to, subject, html.
    """
    if not to or not isinstance(to, str):
        raise ValidationError("Recipient email address is required.")
    if not is_valid_email(to):
        raise ValidationError("Invalid email address format.")

    if not subject or not isinstance(subject, str) or not subject.strip():
        raise ValidationError("Email subject is required.")

    if is_empty_html(html):
        raise ValidationError("Email body cannot be empty.")

    return to.strip(), subject.strip()[:MAX_SUBJECT_LENGTH], html


class EmailSender:
    """
    Sends operator-composed email via Resend.

    Args:
        api_key: Resend API key; a missing key fails every send with a
            ConfigurationError.
        from_address: Sender shown to recipients.
    """

    def __init__(self, api_key: Optional[str], from_address: str):
        self.api_key = api_key
        self.from_address = from_address

    def send(self, to: Any, subject: Any, html: Any) -> dict:
        """
        Validate and send one message.

        Returns:
            The provider's response data, including the message ``id``.

        Raises:
            ConfigurationError: RESEND_API_KEY is not set.
            ValidationError: the message failed validation.
            ProviderError: Resend rejected the message.
        """
        if not self.api_key:
            logger.error("RESEND_API_KEY is not configured")
            raise ConfigurationError(
                "Email service is not configured. Please contact the administrator."
            )

        to, subject, html = validate_message(to, subject, html)

        resend.api_key = self.api_key
        params = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        try:
            data = resend.Emails.send(params)
        except ResendError as exc:
            logger.error("Resend API error: %s", exc)
            message = getattr(exc, "message", None) or str(exc)
            raise ProviderError(message or "Failed to send email. Please try again.")

        data = dict(data) if data else {}
        logger.info("Email sent to %s, id=%s", to, data.get("id"))
        return data
