#!/usr/bin/env python3
"""
Dev helper: send a signed test Resend webhook to a running relay.

Builds a sample Resend event, signs it with WEBHOOK_SIGNING_SECRET exactly
the way Resend does (HMAC-SHA256 over "{timestamp}.{body}") and POST-s it to
the /api/webhooks/resend endpoint.

Usage
-----
# Basic - email.delivered event, targeting localhost:8000
python scripts/send_test_webhook.py

# A specific event type
python scripts/send_test_webhook.py --event email.bounced

# Send a stale timestamp to check replay protection
python scripts/send_test_webhook.py --age 600

# Print the body and headers without sending
python scripts/send_test_webhook.py --dry-run

Environment / .env
------------------
WEBHOOK_SIGNING_SECRET     Shared signing secret (required unless --secret).
WEBHOOK_SIGNATURE_HEADER   Header name for the signature (svix-signature).
WEBHOOK_TIMESTAMP_HEADER   Header name for the timestamp (svix-timestamp).
"""

import argparse
import json
import os
import sys
import textwrap
import time
from datetime import datetime, timezone
from pathlib import Path

import httpx
from dotenv import load_dotenv

from mailrelay.config import DEFAULT_SIGNATURE_HEADER, DEFAULT_TIMESTAMP_HEADER
from mailrelay.models.webhook import ResendEventType
from mailrelay.services.signature import sign_webhook_payload


# ---------------------------------------------------------------------------
# Sample payloads
# ---------------------------------------------------------------------------

def _build_payload(event_type: str, to_address: str, from_email: str, subject: str) -> dict:
    """
    Build a Resend event payload.

    Event-specific blocks (bounce / email) are added for the event types that
    carry them so the relay's envelope eventData is populated.
    """
    now = datetime.now(timezone.utc).isoformat()
    data: dict = {
        "id": f"test-{int(time.time())}",
        "object": "email",
        "created_at": now,
        "from": from_email,
        "to": [to_address],
        "subject": subject,
    }
    if event_type == ResendEventType.EMAIL_BOUNCED.value:
        data["bounce"] = {"code": "550", "description": "Mailbox does not exist"}
    elif event_type == ResendEventType.EMAIL_OPENED.value:
        data["email"] = {"ip_address": "203.0.113.7", "user_agent": "Mozilla/5.0"}
    elif event_type == ResendEventType.EMAIL_CLICKED.value:
        data["email"] = {
            "ip_address": "203.0.113.7",
            "user_agent": "Mozilla/5.0",
            "url": "https://example.com/welcome",
        }
    return {"type": event_type, "created_at": now, "data": data}


def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_webhook.py",
        description=textwrap.dedent("""\
            Send a signed test Resend webhook to the relay.

            Reads WEBHOOK_SIGNING_SECRET from the environment or a .env file
            in the project root.
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--url",
        default="http://localhost:8000",
        help="Relay base URL (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--event",
        default=ResendEventType.EMAIL_DELIVERED.value,
        choices=[event.value for event in ResendEventType],
        help="Resend event type (default: email.delivered)",
    )
    parser.add_argument("--to", default="customer@example.com", help="Recipient address")
    parser.add_argument(
        "--from", dest="from_email", default="noreply@example.com", help="Sender address"
    )
    parser.add_argument("--subject", default="Test email", help="Email subject")
    parser.add_argument(
        "--age",
        type=int,
        default=0,
        metavar="SECONDS",
        help="Backdate the signature timestamp by SECONDS (default: 0)",
    )
    parser.add_argument("--secret", default=None, help="Override WEBHOOK_SIGNING_SECRET")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the payload and headers without sending them.",
    )

    args = parser.parse_args()

    secret = args.secret or os.getenv("WEBHOOK_SIGNING_SECRET", "")
    if not secret:
        print(
            "ERROR: No signing secret found.\n"
            "Set WEBHOOK_SIGNING_SECRET in your environment or .env file, "
            "or pass --secret.",
            file=sys.stderr,
        )
        return 1

    payload = _build_payload(args.event, args.to, args.from_email, args.subject)
    body = json.dumps(payload)
    timestamp = str(int(time.time()) - args.age)

    headers = {
        "Content-Type": "application/json",
        os.getenv("WEBHOOK_SIGNATURE_HEADER", DEFAULT_SIGNATURE_HEADER): sign_webhook_payload(
            secret, timestamp, body
        ),
        os.getenv("WEBHOOK_TIMESTAMP_HEADER", DEFAULT_TIMESTAMP_HEADER): timestamp,
    }
    endpoint = f"{args.url.rstrip('/')}/api/webhooks/resend"

    print(f"Endpoint  : {endpoint}")
    print(f"Event     : {args.event}")
    print(f"Timestamp : {timestamp}")

    if args.dry_run:
        print("\n[DRY RUN] Headers:")
        print(json.dumps(headers, indent=2))
        print("\n[DRY RUN] Payload:")
        print(json.dumps(payload, indent=2))
        return 0

    try:
        response = httpx.post(endpoint, content=body, headers=headers, timeout=30)
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {endpoint}\n"
            "Is the relay running? Start it with:\n"
            "  uvicorn mailrelay.main:app --reload --app-dir backend",
            file=sys.stderr,
        )
        return 1

    _print_response(response)
    return 0 if response.status_code == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
