"""
Recording of envelopes that could not be delivered downstream.

Recorders are only invoked when forwarding failed AND STORE_FAILED_PAYLOADS
is enabled.  They never raise: a storage outage must not change the response
the provider receives.

Supabase table (FAILED_WEBHOOKS_TABLE, default "failed_webhooks"):
  webhook_id    text
  event_type    text
  payload       jsonb   - the camelCase envelope
  error         text
  retry_count   int     - always 0 on insert; bumped by offline replay
  failed_at     timestamptz
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from mailrelay.config import WebhookConfig
from mailrelay.models.webhook import WebhookEnvelope

logger = logging.getLogger(__name__)


class FailedDeliveryRecorder(Protocol):
    def record(self, envelope: WebhookEnvelope, error: str) -> None: ...


class LoggingFailedDeliveryRecorder:
    """Writes the failed envelope to the application log."""

    def record(self, envelope: WebhookEnvelope, error: str) -> None:
        logger.error(f"Failed to process webhook {envelope.id}: {error}")
        logger.error(
            "Payload: %s", json.dumps(envelope.to_payload(), indent=2)
        )


class SupabaseFailedDeliveryRecorder:
    """
    Inserts failed envelopes into a Supabase table for later replay.

    Args:
        client: Supabase client with insert rights on ``table``
                (the service-role admin client).
        table:  Destination table name.
    """

    def __init__(self, client: Any, table: str = "failed_webhooks") -> None:
        self._client = client
        self._table = table

    def record(self, envelope: WebhookEnvelope, error: str) -> None:
        logger.error(f"Failed to process webhook {envelope.id}: {error}")
        row = {
            "webhook_id": envelope.id,
            "event_type": envelope.event_type,
            "payload": envelope.to_payload(),
            "error": error,
            "retry_count": 0,
            "failed_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self._client.table(self._table).insert(row).execute()
        except Exception as e:
            logger.warning(
                f"Could not store failed webhook {envelope.id} in '{self._table}': {e}"
            )


def build_failed_delivery_recorder(
    config: WebhookConfig,
    client: Optional[Any] = None,
) -> FailedDeliveryRecorder:
    """
    Return the Supabase recorder when an admin client is available,
    otherwise fall back to logging.
    """
    if client is not None:
        return SupabaseFailedDeliveryRecorder(
            client, table=config.general.failed_webhooks_table
        )
    return LoggingFailedDeliveryRecorder()
