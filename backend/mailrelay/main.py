"""
Warmthly Desk mail relay API.

FastAPI application that stores inbound email delivered by Resend webhooks
and lets the operator read the history and send email.
"""

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mailrelay.config import get_cors_origins, get_log_level, is_development
from mailrelay.db import get_store
from mailrelay.errors import RelayError
from mailrelay.routers import auth, emails, inbound
from mailrelay.services.inbox import InboxStore

# Configure logging to output to console
logging.basicConfig(
    level=get_log_level(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Warmthly Desk Relay",
    description="Inbound email history and outbound email for the Warmthly desk",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
)

app.include_router(auth.router, prefix="/api", tags=["auth"])
app.include_router(emails.router, prefix="/api", tags=["emails"])
app.include_router(inbound.router, prefix="/api", tags=["webhooks"])


# ---------------------------------------------------------------------------
# Error responses
# ---------------------------------------------------------------------------

def _error_response(
    request: Request,
    status_code: int,
    message: str,
    details: str | None = None,
) -> JSONResponse:
    """
    Build ``{"error": message}``, adding ``details`` only in development.

    Rate-limit headers computed earlier in the request are copied onto the
    error response.
    """
    content: dict = {"error": message}
    if details and is_development():
        content["details"] = details

    headers: dict[str, str] = {}
    rate_limit = getattr(request.state, "rate_limit", None)
    if rate_limit is not None:
        headers.update(rate_limit.headers())

    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s error on %s: %s (%s)", exc.kind.value, request.url.path, exc.message, exc.details)
    else:
        logger.warning("%s error on %s: %s", exc.kind.value, request.url.path, exc.message)
    return _error_response(request, exc.status_code, exc.message, exc.details)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    response = _error_response(request, exc.status_code, str(exc.detail))
    for name, value in (exc.headers or {}).items():
        response.headers[name] = value
    return response


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(request, 400, "Invalid request body.", str(exc.errors()))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error on %s", request.url.path)
    return _error_response(request, 500, "Internal Server Error.", str(exc))


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@app.on_event("shutdown")
async def close_store() -> None:
    await get_store().close()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get("/")
async def root():
    return {"message": "Warmthly Desk Relay", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/store")
async def health_store():
    """
    Test the Redis connection.

    Connects (or reuses the open connection) and reads the inbox length.
    Returns 503 on failure.
    """
    try:
        redis = await get_store().acquire()
        stored = await InboxStore(redis).count()
    except RelayError as exc:
        logger.error("Store health check failed: %s", exc.details or exc.message)
        raise HTTPException(status_code=503, detail=f"Store unavailable: {exc.message}")

    return {"status": "ok", "store": "reachable", "emails": stored}
