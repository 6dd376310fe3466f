"""
Inbound email adapter.

Turns the ``data`` block of a verified ``email.received`` webhook into an
``EmailRecord``. Ingestion never fails because optional metadata is missing:
absent fields get fixed placeholders instead.

Resend ``email.received`` data field assumptions
------------------------------------------------
  email_id     str         - provider message id
  from         str         - sender, e.g. "Alice <alice@example.com>"
  to           list[str]   - recipients (a plain string is also accepted)
  subject      str         - subject line
  created_at   str         - ISO-8601 receive time

If Resend changes their schema, only this file needs updating.
"""

import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from mailrelay.models.email import EmailRecord

UNKNOWN_ADDRESS = "Unknown"
NO_SUBJECT = "(No Subject)"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _text(value: Any) -> Optional[str]:
    """Return a non-empty string for ``value``, or None."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        parts = [str(v).strip() for v in value if v is not None and str(v).strip()]
        return ", ".join(parts) or None
    text = str(value).strip()
    return text or None


def synthetic_email_id(now: Optional[datetime] = None) -> str:
    """Id used when the provider did not send one: ``email-<epoch millis>``."""
    if now is None:
        return f"email-{int(time.time() * 1000)}"
    return f"email-{int(now.timestamp() * 1000)}"


def normalize_received_email(
    data: dict,
    clock: Callable[[], datetime] = _utc_now,
) -> EmailRecord:
    """
    Convert a Resend ``email.received`` data block to an EmailRecord.

    Args:
        data: The event's ``data`` object.
        clock: Returns the ingestion time (UTC); used for the synthetic id
            and for ``receivedAt`` when the provider omits ``created_at``.
    """
    now = clock()
    return EmailRecord(
        id=_text(data.get("email_id")) or synthetic_email_id(now),
        from_=_text(data.get("from")) or UNKNOWN_ADDRESS,
        to=_text(data.get("to")) or UNKNOWN_ADDRESS,
        subject=_text(data.get("subject")) or NO_SUBJECT,
        received_at=_text(data.get("created_at")) or _iso(now),
    )
