"""
Pydantic models for the webhook relay pipeline.

Models:
  RawWebhookRequest    - body + lower-cased headers of one inbound request
  ResendEventType      - the Resend event types the relay understands
  Resend*Webhook       - one model per event type (discriminated on ``type``)
  WebhookEnvelope      - canonical, provider-agnostic event sent downstream
  DeliveryResult       - outcome of processing one inbound request
  VerificationResult   - outcome of signature verification
  ValidationResult     - outcome of structural payload validation

The envelope and delivery result serialize with camelCase keys because the
downstream consumer expects that shape; use ``model_dump(by_alias=True)``.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class RawWebhookRequest(BaseModel):
    """A single inbound webhook request as read off the wire."""

    body: str
    headers: dict[str, str] = {}


# ---------------------------------------------------------------------------
# Resend source payloads
# ---------------------------------------------------------------------------

class ResendEventType(str, Enum):
    EMAIL_SENT = "email.sent"
    EMAIL_DELIVERED = "email.delivered"
    EMAIL_DELIVERY_DELAYED = "email.delivery_delayed"
    EMAIL_COMPLAINED = "email.complained"
    EMAIL_BOUNCED = "email.bounced"
    EMAIL_OPENED = "email.opened"
    EMAIL_CLICKED = "email.clicked"


class ResendEmailData(BaseModel):
    """
    Base ``data`` object shared by every Resend event.

    Resend documents ``to`` as a list but single strings have been seen in
    the wild, so both are accepted here and normalized by the transformer.
    """

    model_config = ConfigDict(
        extra="allow", populate_by_name=True, coerce_numbers_to_str=True
    )

    id: str
    from_: str = Field(alias="from")
    to: Union[list[str], str]
    subject: Optional[str] = None
    created_at: Optional[str] = None
    object: Optional[str] = None
    html: Optional[str] = None
    text: Optional[str] = None
    cc: Optional[list[str]] = None
    bcc: Optional[list[str]] = None
    reply_to: Optional[list[str]] = None
    last_event: Optional[str] = None


class BounceDetails(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    code: Optional[str] = None
    description: Optional[str] = None


class OpenDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class ClickDetails(OpenDetails):
    url: Optional[str] = None


class ResendBouncedData(ResendEmailData):
    bounce: Optional[BounceDetails] = None


class ResendOpenedData(ResendEmailData):
    email: Optional[OpenDetails] = None


class ResendClickedData(ResendEmailData):
    email: Optional[ClickDetails] = None


class _ResendWebhookBase(BaseModel):
    model_config = ConfigDict(extra="allow")

    created_at: Optional[str] = None
    data: ResendEmailData


class ResendEmailSentWebhook(_ResendWebhookBase):
    type: Literal["email.sent"]


class ResendEmailDeliveredWebhook(_ResendWebhookBase):
    type: Literal["email.delivered"]


class ResendEmailDeliveryDelayedWebhook(_ResendWebhookBase):
    type: Literal["email.delivery_delayed"]


class ResendEmailComplainedWebhook(_ResendWebhookBase):
    type: Literal["email.complained"]


class ResendEmailBouncedWebhook(_ResendWebhookBase):
    type: Literal["email.bounced"]
    data: ResendBouncedData


class ResendEmailOpenedWebhook(_ResendWebhookBase):
    type: Literal["email.opened"]
    data: ResendOpenedData


class ResendEmailClickedWebhook(_ResendWebhookBase):
    type: Literal["email.clicked"]
    data: ResendClickedData


ResendWebhookPayload = Annotated[
    Union[
        ResendEmailSentWebhook,
        ResendEmailDeliveredWebhook,
        ResendEmailDeliveryDelayedWebhook,
        ResendEmailComplainedWebhook,
        ResendEmailBouncedWebhook,
        ResendEmailOpenedWebhook,
        ResendEmailClickedWebhook,
    ],
    Field(discriminator="type"),
]

_PAYLOAD_ADAPTER: TypeAdapter = TypeAdapter(ResendWebhookPayload)


def parse_resend_payload(payload: dict) -> ResendWebhookPayload:
    """
    Build the event-specific model for a decoded Resend payload.

    Raises pydantic.ValidationError when the payload does not fit any variant.
    """
    return _PAYLOAD_ADAPTER.validate_python(payload)


# ---------------------------------------------------------------------------
# Canonical envelope
# ---------------------------------------------------------------------------

class EnvelopeEmailData(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_: str = Field(alias="from")
    to: list[str]
    subject: Optional[str] = ""
    sent_at: Optional[str] = Field("", alias="sentAt")


class EnvelopeMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    original_timestamp: Optional[str] = Field("", alias="originalTimestamp")


class WebhookEnvelope(BaseModel):
    """Canonical representation of one email event, as forwarded downstream."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    timestamp: int
    source: Literal["resend"] = "resend"
    event_type: str = Field(alias="eventType")
    email_id: str = Field(alias="emailId")
    email_data: EnvelopeEmailData = Field(alias="emailData")
    event_data: dict[str, Any] = Field(default_factory=dict, alias="eventData")
    metadata: EnvelopeMetadata = Field(default_factory=EnvelopeMetadata)

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-ready dict sent to the downstream endpoint."""
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Pipeline results
# ---------------------------------------------------------------------------

class DeliveryResult(BaseModel):
    """Terminal outcome of processing one inbound webhook."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    webhook_id: str = Field(alias="webhookId")
    event_type: str = Field(alias="eventType")
    timestamp: int
    status_code: Optional[int] = Field(None, alias="statusCode")
    error: Optional[str] = None


class VerificationResult(BaseModel):
    is_valid: bool
    error: Optional[str] = None


class ValidationResult(BaseModel):
    is_valid: bool
    error: Optional[str] = None
