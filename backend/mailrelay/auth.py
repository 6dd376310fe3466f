"""
Operator authentication.

Two independent pieces:
- constant-time comparison of the login password against ADMIN_PASSWORD;
- issuance and local verification of HS256 session tokens signed with
  JWT_SECRET (python-jose). Tokens are stateless: there is no revocation list,
  a token is valid until its ``exp``.

A missing secret is a configuration problem (500), never reported to the
caller as an authentication failure.
"""

import hmac
import logging
import time
from typing import Any, Optional

from fastapi import Header
from jose import JWTError, jwt

from mailrelay.config import get_jwt_secret
from mailrelay.errors import AuthError, ConfigurationError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
TOKEN_TTL_SECONDS = 8 * 60 * 60
ADMIN_CLAIMS = {"user": "admin"}


def constant_time_compare(candidate: Any, configured: Optional[str]) -> bool:
    """
    Compare two secrets without leaking where they differ.

    Empty or non-string values and length mismatches return False
    immediately; only the length is observable through timing. Any failure
    inside the comparison also returns False.
    """
    if not candidate or not configured:
        return False
    if not isinstance(candidate, str) or not isinstance(configured, str):
        return False
    if len(candidate) != len(configured):
        return False
    try:
        return hmac.compare_digest(candidate.encode("utf-8"), configured.encode("utf-8"))
    except (TypeError, UnicodeEncodeError):
        return False


def _require_secret() -> str:
    secret = get_jwt_secret()
    if not secret:
        logger.error("JWT_SECRET is not configured")
        raise ConfigurationError("Authentication system not configured.")
    return secret


def create_access_token(claims: Optional[dict] = None, now: Optional[float] = None) -> str:
    """
    Sign a session token valid for eight hours.

    Args:
        claims: Payload claims; defaults to ``{"user": "admin"}``.
        now: Issue time in epoch seconds; defaults to the current time.

    Raises:
        ConfigurationError: JWT_SECRET is not set.
    """
    secret = _require_secret()
    issued_at = int(now if now is not None else time.time())

    payload = dict(claims or ADMIN_CLAIMS)
    payload["iat"] = issued_at
    payload["exp"] = issued_at + TOKEN_TTL_SECONDS
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str, now: Optional[float] = None) -> dict:
    """
    Verify a session token's signature and expiry and return its claims.

    Expiry is checked here rather than by jose so that ``now`` can be
    supplied explicitly.

    Raises:
        ConfigurationError: JWT_SECRET is not set.
        AuthError: 401 if the token is malformed, badly signed or expired.
    """
    secret = _require_secret()

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError as exc:
        logger.warning("JWT verification error: %s", exc)
        raise AuthError("Invalid token.")

    exp = payload.get("exp")
    if not isinstance(exp, (int, float)):
        raise AuthError("Invalid token.")

    current = now if now is not None else time.time()
    if current >= exp:
        logger.warning("JWT expired at %s", exp)
        raise AuthError("Token expired. Please log in again.")

    return payload


async def get_current_user(authorization: Optional[str] = Header(None)) -> dict:
    """
    Extract and verify the session token from the Authorization header.

    Args:
        authorization: Authorization header with format "Bearer <token>"

    Returns:
        The verified token claims.

    Raises:
        AuthError: 401 if the header is missing or malformed, or the token is
            invalid or expired
        ConfigurationError: 500 if JWT_SECRET is not set
    """
    if not authorization or not authorization.startswith("Bearer "):
        logger.warning("Missing or invalid authorization header")
        raise AuthError("Authentication required.")

    token = authorization[len("Bearer "):].strip()
    if not token:
        raise AuthError("Authentication required.")

    return decode_access_token(token)
