"""
Unit tests for webhook signature verification.

Covers:
  - valid signatures within the replay window
  - missing / malformed headers (fail fast, no exception)
  - replay protection (stale timestamps)
  - fail-closed behaviour when no signing secret is configured
  - v1 extraction from the flat "tag,value,tag,value" header format
  - single-character tampering never validates and never raises
"""

import hashlib
import hmac
import re
from unittest.mock import patch

import pytest

from mailrelay.services.signature import (
    SignatureVerifier,
    compute_signature,
    extract_v1_signature,
    generate_webhook_id,
    sign_webhook_payload,
)

SECRET = "whsec_test_secret"
NOW = 1_700_000_000
BODY = '{"type":"email.sent","created_at":"2024-01-01T00:00:00Z","data":{"id":"e1"}}'


def _verifier(secret: str = SECRET, max_age: int = 300, now: int = NOW) -> SignatureVerifier:
    return SignatureVerifier(secret, max_age=max_age, clock=lambda: now)


def _header(body: str = BODY, timestamp: int = NOW, secret: str = SECRET) -> str:
    return sign_webhook_payload(secret, str(timestamp), body)


class TestComputeSignature:
    def test_matches_hmac_sha256_over_timestamp_dot_payload(self):
        expected = hmac.new(
            SECRET.encode(), f"{NOW}.{BODY}".encode(), hashlib.sha256
        ).hexdigest()
        assert compute_signature(SECRET, str(NOW), BODY) == expected

    def test_is_lowercase_hex(self):
        sig = compute_signature(SECRET, str(NOW), BODY)
        assert re.fullmatch(r"[0-9a-f]{64}", sig)

    def test_sign_webhook_payload_prefixes_v1_tag(self):
        header = sign_webhook_payload(SECRET, str(NOW), BODY)
        assert header == f"v1,{compute_signature(SECRET, str(NOW), BODY)}"


class TestExtractV1Signature:
    def test_single_v1_pair(self):
        assert extract_v1_signature("v1,abc123") == "abc123"

    def test_v1_after_other_versions(self):
        assert extract_v1_signature("v0,old,v1,current,v2,next") == "current"

    def test_first_v1_wins(self):
        assert extract_v1_signature("v1,first,v1,second") == "first"

    def test_missing_v1_returns_none(self):
        assert extract_v1_signature("v2,abc") is None

    def test_trailing_tag_without_value_is_ignored(self):
        assert extract_v1_signature("v2,abc,v1") is None


class TestSignatureVerifier:
    """SignatureVerifier.verify() contract."""

    def test_valid_signature_at_current_time(self):
        result = _verifier().verify(BODY, _header(), str(NOW))
        assert result.is_valid is True
        assert result.error is None

    def test_valid_signature_at_edge_of_replay_window(self):
        ts = NOW - 300
        result = _verifier().verify(BODY, _header(timestamp=ts), str(ts))
        assert result.is_valid is True

    def test_stale_timestamp_is_rejected_with_age_and_max(self):
        ts = NOW - 300 - 1
        result = _verifier().verify(BODY, _header(timestamp=ts), str(ts))
        assert result.is_valid is False
        assert "301s" in result.error
        assert "max age: 300s" in result.error

    def test_custom_max_age(self):
        ts = NOW - 61
        result = _verifier(max_age=60).verify(BODY, _header(timestamp=ts), str(ts))
        assert result.is_valid is False
        assert "too old" in result.error

    @pytest.mark.parametrize(
        "payload, signature, timestamp, expected_error",
        [
            ("", "v1,abc", str(NOW), "Missing payload"),
            (None, "v1,abc", str(NOW), "Missing payload"),
            (BODY, "", str(NOW), "Missing signature"),
            (BODY, None, str(NOW), "Missing signature"),
            (BODY, "v1,abc", "", "Missing timestamp"),
            (BODY, "v1,abc", None, "Missing timestamp"),
        ],
    )
    def test_missing_inputs_fail_fast(self, payload, signature, timestamp, expected_error):
        with patch("mailrelay.services.signature.compute_signature") as mock_compute:
            result = _verifier().verify(payload, signature, timestamp)

        assert result.is_valid is False
        assert result.error == expected_error
        mock_compute.assert_not_called()

    @pytest.mark.parametrize("timestamp", ["abc", "12.5", "1700000000x"])
    def test_non_integer_timestamp(self, timestamp):
        result = _verifier().verify(BODY, _header(), timestamp)
        assert result.is_valid is False
        assert result.error == "Invalid timestamp format"

    def test_missing_secret_rejects(self):
        result = _verifier(secret="").verify(BODY, _header(), str(NOW))
        assert result.is_valid is False
        assert result.error == "Webhook signing secret not configured"

    def test_missing_v1_entry(self):
        result = _verifier().verify(BODY, "v2,deadbeef", str(NOW))
        assert result.is_valid is False
        assert result.error == "Missing v1 signature"

    def test_wrong_secret_is_rejected(self):
        result = _verifier().verify(BODY, _header(secret="other"), str(NOW))
        assert result.is_valid is False

    def test_modified_body_is_rejected(self):
        result = _verifier().verify(BODY + " ", _header(), str(NOW))
        assert result.is_valid is False

    def test_length_mismatch_rejects_without_raising(self):
        result = _verifier().verify(BODY, "v1,abc", str(NOW))
        assert result.is_valid is False

    def test_non_ascii_signature_rejects_without_raising(self):
        result = _verifier().verify(BODY, "v1,é" * 32, str(NOW))
        assert result.is_valid is False

    def test_any_single_hex_flip_is_rejected(self):
        """Flipping any one character of a valid signature never validates."""
        verifier = _verifier()
        signature = compute_signature(SECRET, str(NOW), BODY)

        for i, char in enumerate(signature):
            flipped = "0" if char != "0" else "1"
            tampered = signature[:i] + flipped + signature[i + 1:]
            result = verifier.verify(BODY, f"v1,{tampered}", str(NOW))
            assert result.is_valid is False, f"flip at index {i} validated"

    def test_padded_timestamp_header_is_signed_over_trimmed_value(self):
        """The value checked for age is the value covered by the HMAC."""
        result = _verifier().verify(BODY, _header(), f"  {NOW} ")
        assert result.is_valid is True

    def test_signature_over_padded_timestamp_is_rejected(self):
        padded = f" {NOW} "
        header = sign_webhook_payload(SECRET, padded, BODY)

        result = _verifier().verify(BODY, header, padded)

        assert result.is_valid is False
        assert result.error == "Signature mismatch"

    def test_unexpected_exception_is_reported_not_raised(self):
        header = _header()
        with patch(
            "mailrelay.services.signature.compute_signature",
            side_effect=RuntimeError("boom"),
        ):
            result = _verifier().verify(BODY, header, str(NOW))

        assert result.is_valid is False
        assert result.error == "Error verifying signature: boom"


class TestGenerateWebhookId:
    def test_format(self):
        assert re.fullmatch(r"wh_\d+_[0-9a-f]{12}", generate_webhook_id())

    def test_ids_are_unique(self):
        ids = {generate_webhook_id() for _ in range(200)}
        assert len(ids) == 200
