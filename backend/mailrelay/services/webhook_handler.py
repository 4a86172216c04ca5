"""
Inbound webhook processing pipeline.

One call to WebhookProcessor.process() handles one inbound request:

  1. verify signature + timestamp      -> 401 on failure
  2. parse JSON body                    -> 400 on failure
  3. validate payload structure         -> 400 on failure
  4. transform to a WebhookEnvelope
  5. forward downstream (with retries)  -> 500 on failure
  6. record the envelope if forwarding failed and recording is enabled

Expected failures come back as DeliveryResult values; only unanticipated
exceptions are caught here, at the top of process().
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import httpx
from pydantic import ValidationError

from mailrelay.config import WebhookConfig
from mailrelay.models.webhook import (
    DeliveryResult,
    RawWebhookRequest,
    WebhookEnvelope,
    parse_resend_payload,
)
from mailrelay.services.failed_delivery import (
    FailedDeliveryRecorder,
    build_failed_delivery_recorder,
)
from mailrelay.services.forwarder import DeliveryForwarder
from mailrelay.services.payload_validator import validate_resend_payload
from mailrelay.services.signature import SignatureVerifier
from mailrelay.services.transformer import transform_resend_webhook

logger = logging.getLogger(__name__)

# Sentinel webhook ids for requests that never produced an envelope
INVALID_SIGNATURE_ID = "invalid_signature"
INVALID_JSON_ID = "invalid_json"
INVALID_PAYLOAD_ID = "invalid_payload"
ERROR_ID = "error"

INVALID_SIGNATURE_ERROR = "Invalid webhook signature"
INVALID_JSON_ERROR = "Invalid JSON payload"
INVALID_PAYLOAD_ERROR = "Invalid payload structure"

SUCCESS_MESSAGE = "Webhook processed successfully"


class WebhookProcessor:
    """
    Runs the verify -> validate -> transform -> forward pipeline.

    All collaborators are passed in; the processor holds no state between
    requests, so one instance serves concurrent requests.
    """

    def __init__(
        self,
        config: WebhookConfig,
        verifier: SignatureVerifier,
        forwarder: DeliveryForwarder,
        recorder: FailedDeliveryRecorder,
        transformer: Callable[[Any], WebhookEnvelope] = transform_resend_webhook,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._verifier = verifier
        self._forwarder = forwarder
        self._recorder = recorder
        self._transformer = transformer
        self._clock = clock

    def _failure(self, webhook_id: str, error: str, event_type: str = "unknown") -> DeliveryResult:
        return DeliveryResult(
            success=False,
            webhook_id=webhook_id,
            event_type=event_type,
            timestamp=int(self._clock()),
            error=error,
        )

    async def process(self, request: RawWebhookRequest) -> DeliveryResult:
        try:
            return await self._process(request)
        except Exception as exc:
            logger.exception("Unexpected error while processing webhook")
            return self._failure(ERROR_ID, f"Error processing webhook: {exc}")

    async def _process(self, request: RawWebhookRequest) -> DeliveryResult:
        resend = self._config.resend
        headers = {key.lower(): value for key, value in request.headers.items()}
        signature = headers.get(resend.signature_header.lower())
        timestamp = headers.get(resend.timestamp_header.lower())

        verification = self._verifier.verify(request.body, signature, timestamp)
        if not verification.is_valid:
            logger.info(f"Rejected webhook: {verification.error}")
            return self._failure(
                INVALID_SIGNATURE_ID,
                f"{INVALID_SIGNATURE_ERROR}: {verification.error or 'verification failed'}",
            )

        try:
            payload = json.loads(request.body)
        except ValueError as exc:
            return self._failure(INVALID_JSON_ID, f"{INVALID_JSON_ERROR}: {exc}")

        validation = validate_resend_payload(payload)
        if not validation.is_valid:
            return self._failure(
                INVALID_PAYLOAD_ID,
                f"{INVALID_PAYLOAD_ERROR}: {validation.error}",
                event_type=_event_type_of(payload),
            )

        try:
            event = parse_resend_payload(payload)
        except ValidationError as exc:
            return self._failure(
                INVALID_PAYLOAD_ID,
                f"{INVALID_PAYLOAD_ERROR}: {_summarize_validation_error(exc)}",
                event_type=_event_type_of(payload),
            )

        envelope = self._transformer(event)

        if self._config.general.debug:
            logger.debug(
                "Processing webhook %s (event=%s, email=%s)",
                envelope.id,
                envelope.event_type,
                envelope.email_id,
            )

        result = await self._forwarder.forward(envelope)

        if not result.success:
            logger.warning(f"Forwarding webhook {envelope.id} failed: {result.error}")
            if self._config.general.store_failed_payloads:
                self._recorder.record(envelope, result.error or "Unknown error")
        else:
            logger.info(
                f"Forwarded webhook {envelope.id} ({envelope.event_type}) "
                f"-> HTTP {result.status_code}"
            )

        return result


def _event_type_of(payload: Any) -> str:
    if isinstance(payload, dict) and isinstance(payload.get("type"), str) and payload["type"]:
        return payload["type"]
    return "unknown"


def _summarize_validation_error(exc: ValidationError) -> str:
    """Return a compact 'field: message' summary of a pydantic error."""
    parts = []
    for err in exc.errors():
        location = ".".join(str(loc) for loc in err.get("loc", ()))
        parts.append(f"{location}: {err.get('msg', 'invalid')}")
    return "; ".join(parts) or str(exc)


def build_webhook_processor(
    config: WebhookConfig,
    storage_client: Optional[Any] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> WebhookProcessor:
    """
    Wire a WebhookProcessor from configuration.

    Args:
        config:         Process-wide webhook configuration.
        storage_client: Supabase admin client for recording failed deliveries.
                        Failed deliveries are only logged when omitted.
        http_client:    Shared AsyncClient for outbound calls (optional).
        sleep:          Backoff sleep used by the forwarder.
    """
    verifier = SignatureVerifier(
        config.resend.signing_secret, max_age=config.resend.max_age
    )
    forwarder = DeliveryForwarder(config.target, client=http_client, sleep=sleep)
    recorder = build_failed_delivery_recorder(config, storage_client)
    return WebhookProcessor(config, verifier, forwarder, recorder)


# ---------------------------------------------------------------------------
# HTTP response mapping
# ---------------------------------------------------------------------------

def create_webhook_response(result: DeliveryResult) -> tuple[int, dict]:
    """
    Map a DeliveryResult to an HTTP status code and JSON body.

    200 success, 401 bad signature, 400 bad JSON / payload, 500 otherwise.
    """
    if result.success:
        return 200, {
            "success": True,
            "message": SUCCESS_MESSAGE,
            "webhookId": result.webhook_id,
        }

    error = result.error or ""

    if error.startswith(INVALID_SIGNATURE_ERROR):
        return 401, {
            "success": False,
            "message": INVALID_SIGNATURE_ERROR,
            "error": error,
        }

    if error.startswith((INVALID_JSON_ERROR, INVALID_PAYLOAD_ERROR)):
        return 400, {
            "success": False,
            "message": "Invalid webhook payload",
            "error": error,
        }

    return 500, {
        "success": False,
        "message": "Error processing webhook",
        "error": error or "Unknown error",
    }
