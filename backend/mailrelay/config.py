"""
Runtime configuration.

All settings come from environment variables; a ``.env`` file in the working
directory is loaded once at import time. Getters read ``os.environ`` on every
call so that tests can patch the environment without reloading modules.

Required:
  REDIS_URL               Connection URL of the Redis list store
  JWT_SECRET              HS256 key for operator session tokens
  ADMIN_PASSWORD          Operator login password
  RESEND_API_KEY          Resend API key for outbound email
  RESEND_WEBHOOK_SECRET   Signing secret of the Resend inbound webhook (whsec_...)

Optional:
  MAIL_FROM               Sender used for outbound email
  INBOX_MAX_LENGTH        Trim the stored history to this many records (0 = never)
  APP_ENV                 "development" exposes error details in responses
  CORS_ORIGINS            Comma-separated extra CORS origins
  LOG_LEVEL               Root log level (default INFO)
"""

import os
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_MAIL_FROM = "The Warmthly Desk <desk@warmthly.org>"


def _get(name: str) -> Optional[str]:
    # Empty strings count as unset
    return os.getenv(name) or None


def get_redis_url() -> Optional[str]:
    return _get("REDIS_URL")


def get_jwt_secret() -> Optional[str]:
    return _get("JWT_SECRET")


def get_admin_password() -> Optional[str]:
    return _get("ADMIN_PASSWORD")


def get_resend_api_key() -> Optional[str]:
    return _get("RESEND_API_KEY")


def get_webhook_secret() -> Optional[str]:
    return _get("RESEND_WEBHOOK_SECRET")


def get_mail_from() -> str:
    return _get("MAIL_FROM") or DEFAULT_MAIL_FROM


def get_inbox_max_length() -> int:
    """Return the history cap, or 0 when the list should grow unbounded."""
    raw = _get("INBOX_MAX_LENGTH")
    if not raw:
        return 0
    try:
        return max(int(raw), 0)
    except ValueError:
        return 0


def is_development() -> bool:
    return os.getenv("APP_ENV", "production").strip().lower() == "development"


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    Always includes the local dashboard dev server. Extra origins are read
    from CORS_ORIGINS as a comma-separated list, e.g.:
        CORS_ORIGINS=https://desk.warmthly.org,https://preview.warmthly.org

    Duplicates are removed while preserving order.
    """
    always_included = [
        "http://localhost:3000",
    ]

    extra_origins: List[str] = []
    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    if cors_env:
        extra_origins = [o.strip() for o in cors_env.split(",") if o.strip()]

    seen: set = set()
    origins: List[str] = []
    for origin in always_included + extra_origins:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)

    return origins
