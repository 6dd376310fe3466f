"""
Pydantic models for stored and outbound email.

Models:
  EmailRecord        - one received email as stored in the inbox list
  SendEmailRequest   - request body for POST /api/send-email
  LoginRequest       - request body for POST /api/login
"""

from typing import Any, Optional
from pydantic import BaseModel, Field


class EmailRecord(BaseModel):
    """
    A received email, immutable once stored.

    Serialized by alias so the stored JSON and the API response use the
    dashboard's field names: id, from, to, subject, receivedAt.
    """
    model_config = {"frozen": True, "populate_by_name": True, "extra": "ignore"}

    id: str
    from_: str = Field(alias="from")
    to: str
    subject: str
    received_at: str = Field(alias="receivedAt")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def to_api(self) -> dict:
        return self.model_dump(by_alias=True)


class SendEmailRequest(BaseModel):
    """
    Request body for POST /api/send-email.

    Fields are loosely typed on purpose: the sender validates them in a fixed
    order and reports the first failure with its own message, instead of
    FastAPI's generic 422.
    """
    to: Optional[Any] = None
    subject: Optional[Any] = None
    html: Optional[Any] = None


class LoginRequest(BaseModel):
    password: Optional[Any] = None
