#!/usr/bin/env python3
"""
Dev helper: send a signed test webhook to a local relay.

Builds a Resend ``email.received`` event, signs it with the Svix envelope
scheme the relay verifies, and POST-s it to /api/inbound-email.

Usage
-----
# Basic - signed email.received event targeting localhost:8000
python scripts/send_test_webhook.py

# Custom sender / subject
python scripts/send_test_webhook.py --from alice@example.com --subject "Hello"

# Send an event type the relay ignores
python scripts/send_test_webhook.py --type email.delivered

# Tamper with the body after signing (expect 401)
python scripts/send_test_webhook.py --tamper

# Target a different relay URL
python scripts/send_test_webhook.py --url http://staging.example.com

Environment / .env
------------------
RESEND_WEBHOOK_SECRET   Webhook signing secret (whsec_...). Required unless
                        --secret is given.
"""

import argparse
import json
import os
import sys
import textwrap
import uuid
from datetime import datetime, timezone
from pathlib import Path

import httpx
from dotenv import load_dotenv

from mailrelay.services.webhook_verifier import sign_webhook


def _build_event(event_type: str, from_email: str, to_address: str, subject: str) -> dict:
    """
    Build a Resend webhook event.

      type   - event type, e.g. "email.received"
      data   - {email_id, from, to[], subject, created_at}
    """
    now = datetime.now(timezone.utc).isoformat()
    return {
        "type": event_type,
        "created_at": now,
        "data": {
            "email_id": str(uuid.uuid4()),
            "from": from_email,
            "to": [to_address],
            "subject": subject,
            "created_at": now,
        },
    }


def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


def main() -> int:
    # scripts/ lives one level below the project root
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_webhook.py",
        description=textwrap.dedent("""\
            Send a signed test webhook to the mail relay.

            Reads RESEND_WEBHOOK_SECRET from the environment or a .env file in
            the project root.
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--url", default="http://localhost:8000", help="Relay base URL")
    parser.add_argument("--type", dest="event_type", default="email.received", help="Event type")
    parser.add_argument("--from", dest="from_email", default="sender@example.com", help="Sender address")
    parser.add_argument("--to", dest="to_address", default="desk@warmthly.org", help="Recipient address")
    parser.add_argument("--subject", default="Test inbound email", help="Email subject")
    parser.add_argument("--secret", default=None, metavar="SECRET", help="Override the signing secret")
    parser.add_argument("--tamper", action="store_true", help="Modify the body after signing")
    parser.add_argument("--dry-run", action="store_true", help="Print headers and body without sending")

    args = parser.parse_args()

    secret = args.secret or os.getenv("RESEND_WEBHOOK_SECRET", "")
    if not secret:
        print(
            "ERROR: No webhook secret found.\n"
            "Set RESEND_WEBHOOK_SECRET in your environment or .env file, or pass --secret.",
            file=sys.stderr,
        )
        return 1

    event = _build_event(args.event_type, args.from_email, args.to_address, args.subject)
    body = json.dumps(event).encode()
    headers = sign_webhook(secret, f"msg_{uuid.uuid4().hex}", body)
    headers["Content-Type"] = "application/json"

    if args.tamper:
        body = body.replace(args.subject.encode(), b"tampered subject")

    endpoint = f"{args.url.rstrip('/')}/api/inbound-email"
    print(f"Endpoint : {endpoint}")
    print(f"Type     : {args.event_type}")
    print(f"From     : {args.from_email}")
    print(f"Subject  : {args.subject}")

    if args.dry_run:
        print("\n[DRY RUN] Headers:")
        print(json.dumps(headers, indent=2))
        print("\n[DRY RUN] Body:")
        print(json.dumps(json.loads(body), indent=2))
        return 0

    try:
        response = httpx.post(endpoint, content=body, headers=headers, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"ERROR: request failed: {exc}", file=sys.stderr)
        return 1

    _print_response(response)
    return 0 if response.status_code == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
