"""
Webhook relay configuration.

All settings come from environment variables (a ``.env`` file is honoured via
python-dotenv) and are read once per process.  The resulting objects are
frozen, so request handlers can share them without locking.

Environment variables
---------------------
WEBHOOK_SIGNING_SECRET          HMAC key shared with Resend (required).
WEBHOOK_SIGNATURE_HEADER        Header carrying the signature (svix-signature).
WEBHOOK_TIMESTAMP_HEADER        Header carrying the timestamp (svix-timestamp).
WEBHOOK_MAX_AGE_SECONDS         Replay window in seconds (300).
TARGET_WEBHOOK_URL              Downstream endpoint (required).
TARGET_WEBHOOK_AUTH_TOKEN       Bearer token for the downstream (required).
TARGET_WEBHOOK_AUTH_HEADER      Header the token is sent in (Authorization).
TARGET_WEBHOOK_MAX_RETRIES      Extra attempts on 5xx / network errors (3).
TARGET_WEBHOOK_RETRY_DELAY_MS   Base backoff in milliseconds (1000).
TARGET_WEBHOOK_TIMEOUT_SECONDS  Network timeout per outbound attempt (10).
DEBUG_WEBHOOKS                  Verbose pipeline logging (false).
STORE_FAILED_PAYLOADS           Record envelopes that could not be delivered (true).
FAILED_WEBHOOKS_TABLE           Supabase table for failed envelopes (failed_webhooks).
"""

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_SIGNATURE_HEADER = "svix-signature"
DEFAULT_TIMESTAMP_HEADER = "svix-timestamp"
DEFAULT_MAX_AGE_SECONDS = 300
DEFAULT_AUTH_HEADER = "Authorization"
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 1000
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_FAILED_WEBHOOKS_TABLE = "failed_webhooks"


@dataclass(frozen=True)
class ResendSettings:
    """Inbound verification settings."""

    signing_secret: str = ""
    signature_header: str = DEFAULT_SIGNATURE_HEADER
    timestamp_header: str = DEFAULT_TIMESTAMP_HEADER
    max_age: int = DEFAULT_MAX_AGE_SECONDS


@dataclass(frozen=True)
class TargetSettings:
    """Downstream delivery settings."""

    url: str = ""
    auth_token: str = ""
    auth_header: str = DEFAULT_AUTH_HEADER
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS


@dataclass(frozen=True)
class GeneralSettings:
    debug: bool = False
    store_failed_payloads: bool = True
    failed_webhooks_table: str = DEFAULT_FAILED_WEBHOOKS_TABLE


@dataclass(frozen=True)
class WebhookConfig:
    resend: ResendSettings = field(default_factory=ResendSettings)
    target: TargetSettings = field(default_factory=TargetSettings)
    general: GeneralSettings = field(default_factory=GeneralSettings)


# ---------------------------------------------------------------------------
# Environment parsing helpers
# ---------------------------------------------------------------------------

def _get_str(env: Mapping[str, str], key: str, default: str = "") -> str:
    value = env.get(key)
    if value is None:
        return default
    return value.strip()


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    """Return an integer setting, falling back to default on bad input."""
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning(f"Invalid numeric configuration value for {key}: {raw!r}")
        return default
    if value < 0:
        logger.warning(f"Negative configuration value for {key}: {raw!r}")
        return default
    return value


def _get_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw.strip())
    except ValueError:
        logger.warning(f"Invalid numeric configuration value for {key}: {raw!r}")
        return default
    if value <= 0:
        logger.warning(f"Non-positive configuration value for {key}: {raw!r}")
        return default
    return value


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("true", "1")


# ---------------------------------------------------------------------------
# Loading and validation
# ---------------------------------------------------------------------------

def load_webhook_config(env: Optional[Mapping[str, str]] = None) -> WebhookConfig:
    """
    Build a WebhookConfig from an environment mapping.

    Args:
        env: Mapping to read from. Defaults to ``os.environ``.

    Returns:
        A frozen WebhookConfig. Missing required values are left empty so
        that the problem is reported by validate_webhook_config() and by the
        pipeline at request time rather than crashing the process.
    """
    if env is None:
        env = os.environ

    resend = ResendSettings(
        signing_secret=_get_str(env, "WEBHOOK_SIGNING_SECRET"),
        signature_header=_get_str(
            env, "WEBHOOK_SIGNATURE_HEADER", DEFAULT_SIGNATURE_HEADER
        ).lower(),
        timestamp_header=_get_str(
            env, "WEBHOOK_TIMESTAMP_HEADER", DEFAULT_TIMESTAMP_HEADER
        ).lower(),
        max_age=_get_int(env, "WEBHOOK_MAX_AGE_SECONDS", DEFAULT_MAX_AGE_SECONDS),
    )
    target = TargetSettings(
        url=_get_str(env, "TARGET_WEBHOOK_URL"),
        auth_token=_get_str(env, "TARGET_WEBHOOK_AUTH_TOKEN"),
        auth_header=_get_str(env, "TARGET_WEBHOOK_AUTH_HEADER", DEFAULT_AUTH_HEADER),
        max_retries=_get_int(env, "TARGET_WEBHOOK_MAX_RETRIES", DEFAULT_MAX_RETRIES),
        retry_delay_ms=_get_int(
            env, "TARGET_WEBHOOK_RETRY_DELAY_MS", DEFAULT_RETRY_DELAY_MS
        ),
        timeout_seconds=_get_float(
            env, "TARGET_WEBHOOK_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS
        ),
    )
    general = GeneralSettings(
        debug=_get_bool(env, "DEBUG_WEBHOOKS", False),
        store_failed_payloads=_get_bool(env, "STORE_FAILED_PAYLOADS", True),
        failed_webhooks_table=_get_str(
            env, "FAILED_WEBHOOKS_TABLE", DEFAULT_FAILED_WEBHOOKS_TABLE
        ),
    )
    return WebhookConfig(resend=resend, target=target, general=general)


@lru_cache(maxsize=1)
def get_webhook_config() -> WebhookConfig:
    """Return the process-wide configuration, loading it on first use."""
    load_dotenv()
    return load_webhook_config()


def validate_webhook_config(config: WebhookConfig) -> list[str]:
    """
    Return a list of configuration problems (empty when the config is usable).
    """
    errors: list[str] = []

    if not config.resend.signing_secret:
        errors.append("Missing Resend webhook signing secret")

    if not config.target.url:
        errors.append("Missing target webhook URL")

    if not config.target.auth_token:
        errors.append("Missing target webhook authentication token")

    return errors
