"""
Structural validation of decoded Resend webhook payloads.

Only the minimum the transformer relies on is checked, in a fixed order;
the first problem found is reported.
"""

from typing import Any

from mailrelay.models.webhook import ResendEventType, ValidationResult

VALID_EVENT_TYPES: list[str] = [event.value for event in ResendEventType]


def _is_blank(value: Any) -> bool:
    """
    True for values a JSON sender uses to mean "absent".

    Only null, false, zero and the empty string count; empty lists and
    objects are present.
    """
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    return False


def validate_resend_payload(payload: Any) -> ValidationResult:
    """
    Check that payload has the fields required for transformation.

    Accepts any JSON-decoded value and never raises.
    """
    if not isinstance(payload, dict):
        return ValidationResult(is_valid=False, error="Payload is not an object")

    if _is_blank(payload.get("type")):
        return ValidationResult(is_valid=False, error="Missing event type")

    data = payload.get("data")
    if not isinstance(data, dict):
        return ValidationResult(is_valid=False, error="Missing data object")

    if _is_blank(data.get("id")):
        return ValidationResult(is_valid=False, error="Missing email ID")

    if _is_blank(data.get("from")):
        return ValidationResult(is_valid=False, error="Missing sender email")

    if _is_blank(data.get("to")):
        return ValidationResult(is_valid=False, error="Missing recipient email(s)")

    event_type = payload["type"]
    if not isinstance(event_type, str) or event_type not in VALID_EVENT_TYPES:
        return ValidationResult(
            is_valid=False,
            error=(
                f"Invalid event type: {event_type}. "
                f"Expected one of: {', '.join(VALID_EVENT_TYPES)}"
            ),
        )

    return ValidationResult(is_valid=True)
