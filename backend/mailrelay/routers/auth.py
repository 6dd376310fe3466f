"""
Operator login.

Endpoints:
  POST /login   - exchange the admin password for an 8-hour session token
"""

import logging

from fastapi import APIRouter, Depends

from mailrelay.auth import constant_time_compare, create_access_token
from mailrelay.config import get_admin_password
from mailrelay.errors import AuthError, ConfigurationError
from mailrelay.models.email import LoginRequest
from mailrelay.rate_limit import LOGIN_RATE_LIMIT, RateLimitResult, rate_limited

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login")
async def login(
    body: LoginRequest = LoginRequest(),
    _: RateLimitResult = Depends(rate_limited(LOGIN_RATE_LIMIT)),
) -> dict:
    """
    Check the password and return ``{"token": ...}``.

    Returns 401 for a wrong password and 500 when ADMIN_PASSWORD or
    JWT_SECRET is not configured.
    """
    admin_password = get_admin_password()
    if not admin_password:
        logger.error("ADMIN_PASSWORD is not configured")
        raise ConfigurationError("Admin password not configured.")

    if not constant_time_compare(body.password or "", admin_password):
        logger.warning("Failed login attempt")
        raise AuthError("Incorrect password")

    token = create_access_token()
    logger.info("Operator logged in")
    return {"token": token}
