"""
Resend payload -> canonical WebhookEnvelope transformer.

The envelope is provider-agnostic: downstream consumers only ever see
camelCase envelope keys, never Resend's snake_case schema.

Adding a new Resend event type:
  1. Add the value to ResendEventType and a model to the payload union.
  2. Write a _<event>_data(payload) -> dict extractor (or reuse _no_event_data).
  3. Register it in _EVENT_DATA_EXTRACTORS.
"""

import time
from typing import Any, Callable

from mailrelay.models.webhook import (
    EnvelopeEmailData,
    EnvelopeMetadata,
    ResendEventType,
    ResendWebhookPayload,
    WebhookEnvelope,
)
from mailrelay.services.signature import generate_webhook_id


# ---------------------------------------------------------------------------
# Event-specific extractors
# ---------------------------------------------------------------------------

def _no_event_data(payload: ResendWebhookPayload) -> dict[str, Any]:
    return {}


def _bounced_data(payload: ResendWebhookPayload) -> dict[str, Any]:
    bounce = payload.data.bounce
    return {
        "bounceCode": (bounce.code if bounce else "") or "",
        "bounceDescription": (bounce.description if bounce else "") or "",
    }


def _opened_data(payload: ResendWebhookPayload) -> dict[str, Any]:
    email = payload.data.email
    return {
        "ipAddress": (email.ip_address if email else "") or "",
        "userAgent": (email.user_agent if email else "") or "",
    }


def _clicked_data(payload: ResendWebhookPayload) -> dict[str, Any]:
    email = payload.data.email
    return {
        "ipAddress": (email.ip_address if email else "") or "",
        "userAgent": (email.user_agent if email else "") or "",
        "url": (email.url if email else "") or "",
    }


_EVENT_DATA_EXTRACTORS: dict[str, Callable[[ResendWebhookPayload], dict[str, Any]]] = {
    ResendEventType.EMAIL_SENT.value: _no_event_data,
    ResendEventType.EMAIL_DELIVERED.value: _no_event_data,
    ResendEventType.EMAIL_DELIVERY_DELAYED.value: _no_event_data,
    ResendEventType.EMAIL_COMPLAINED.value: _no_event_data,
    ResendEventType.EMAIL_BOUNCED.value: _bounced_data,
    ResendEventType.EMAIL_OPENED.value: _opened_data,
    ResendEventType.EMAIL_CLICKED.value: _clicked_data,
}


def extract_event_data(payload: ResendWebhookPayload) -> dict[str, Any]:
    """Return the event-specific ``eventData`` block for payload."""
    extractor = _EVENT_DATA_EXTRACTORS.get(payload.type)
    if extractor is None:
        # Validation rejects unknown types before this point.
        return {"unknownEventType": payload.type}
    return extractor(payload)


# ---------------------------------------------------------------------------
# Transformer
# ---------------------------------------------------------------------------

def transform_resend_webhook(
    payload: ResendWebhookPayload,
    *,
    id_factory: Callable[[], str] = generate_webhook_id,
    clock: Callable[[], float] = time.time,
) -> WebhookEnvelope:
    """
    Convert a parsed Resend event into a WebhookEnvelope.

    Args:
        payload:    A validated, parsed Resend event (see parse_resend_payload).
        id_factory: Produces the envelope id. The id is never taken from the
                    source payload.
        clock:      Returns the current unix time; truncated to whole seconds.

    Returns:
        A frozen WebhookEnvelope.
    """
    data = payload.data
    recipients = data.to if isinstance(data.to, list) else [data.to]

    return WebhookEnvelope(
        id=id_factory(),
        timestamp=int(clock()),
        source="resend",
        event_type=payload.type,
        email_id=data.id,
        email_data=EnvelopeEmailData(
            from_=data.from_,
            to=recipients,
            subject=data.subject,
            sent_at=data.created_at,
        ),
        event_data=extract_event_data(payload),
        metadata=EnvelopeMetadata(original_timestamp=payload.created_at),
    )
