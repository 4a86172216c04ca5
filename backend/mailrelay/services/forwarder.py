"""
Delivery of canonical envelopes to the downstream webhook endpoint.

Retry policy
------------
- 5xx responses and transport errors (connection failures, timeouts) are
  retried up to ``max_retries`` extra times, waiting
  ``retry_delay_ms * 2**n`` milliseconds before retry ``n`` (0-based).
- Any other status is final: 2xx is success, everything else is failure.

Delivery is at-least-once: a retry after a timeout can reach a downstream
that already processed the first attempt.  Receivers deduplicate on the
X-Webhook-ID header.
"""

import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional

import httpx

from mailrelay.config import TargetSettings
from mailrelay.models.webhook import DeliveryResult, WebhookEnvelope

logger = logging.getLogger(__name__)

SOURCE_TAG = "resend-forwarder"


class DeliveryForwarder:
    """
    Relays envelopes to the configured target URL.

    Args:
        target:     Target URL, credentials and retry budget.
        client:     Shared AsyncClient. When omitted a client is opened per
                    forward() call with the configured timeout.
        sleep:      Awaitable sleep taking seconds; replaced in tests.
        source_tag: Value of the X-Webhook-Source header.
    """

    def __init__(
        self,
        target: TargetSettings,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        source_tag: str = SOURCE_TAG,
    ) -> None:
        self._target = target
        self._client = client
        self._sleep = sleep
        self._source_tag = source_tag

    def build_headers(self, envelope: WebhookEnvelope) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            self._target.auth_header: f"Bearer {self._target.auth_token}",
            "X-Webhook-Source": self._source_tag,
            "X-Webhook-ID": envelope.id,
        }

    async def forward(self, envelope: WebhookEnvelope) -> DeliveryResult:
        """
        POST envelope to the target URL and report the outcome.

        Returns a failed DeliveryResult (never raises) when the URL is missing
        or malformed, the target keeps answering 5xx, or every attempt hit a
        transport error.
        """
        result = DeliveryResult(
            success=False,
            webhook_id=envelope.id,
            event_type=envelope.event_type,
            timestamp=envelope.timestamp,
        )

        if not self._target.url:
            result.error = "Target webhook URL not configured"
            return result

        body = json.dumps(envelope.to_payload())
        headers = self.build_headers(envelope)

        try:
            if self._client is not None:
                response = await self._post_with_retry(self._client, body, headers)
            else:
                async with httpx.AsyncClient(
                    timeout=self._target.timeout_seconds
                ) as client:
                    response = await self._post_with_retry(client, body, headers)
        except (httpx.TransportError, httpx.InvalidURL) as exc:
            result.error = f"Error forwarding webhook: {str(exc) or type(exc).__name__}"
            return result

        result.status_code = response.status_code
        if response.is_success:
            result.success = True
        else:
            result.error = (
                f"Target webhook returned error: {response.status_code} "
                f"{response.reason_phrase}. Response: {response.text}"
            )
        return result

    async def _post_with_retry(
        self,
        client: httpx.AsyncClient,
        body: str,
        headers: dict[str, str],
    ) -> httpx.Response:
        """
        Issue the POST up to max_retries + 1 times.

        Returns the first non-5xx response, or the last response when every
        attempt answered 5xx.  Re-raises the last transport error when the
        final attempt failed at the network level.
        """
        max_retries = self._target.max_retries
        timeout = self._target.timeout_seconds

        for attempt in range(max_retries + 1):
            is_last = attempt == max_retries
            try:
                response = await client.post(
                    self._target.url, content=body, headers=headers, timeout=timeout
                )
            except httpx.TransportError as exc:
                logger.warning(
                    "Forward attempt %d/%d failed: %s",
                    attempt + 1,
                    max_retries + 1,
                    str(exc) or type(exc).__name__,
                )
                if is_last:
                    raise
                await self._backoff(attempt)
                continue

            if response.status_code >= 500 and not is_last:
                logger.warning(
                    "Forward attempt %d/%d got HTTP %d; retrying",
                    attempt + 1,
                    max_retries + 1,
                    response.status_code,
                )
                await self._backoff(attempt)
                continue

            return response

        # unreachable: the final attempt always returns or raises
        raise RuntimeError("retry loop exited without a response")

    async def _backoff(self, attempt: int) -> None:
        delay_ms = self._target.retry_delay_ms * (2 ** attempt)
        await self._sleep(delay_ms / 1000)
