"""
Inbound webhook event model.

Only the envelope fields the relay uses are modelled; unknown fields sent by
the provider are ignored. The ``data`` block is left as a plain dict and
normalized by ``mailrelay.services.inbound_email_adapter``.
"""

from typing import Any, Optional
from pydantic import BaseModel

EMAIL_RECEIVED = "email.received"


class WebhookEvent(BaseModel):
    """A verified webhook event."""
    model_config = {"extra": "ignore"}

    type: Optional[str] = None
    created_at: Optional[str] = None
    data: Optional[Any] = None

    @property
    def is_email_received(self) -> bool:
        return self.type == EMAIL_RECEIVED
