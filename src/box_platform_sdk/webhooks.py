"""Webhook message signature validation.

Box signs every webhook delivery with HMAC-SHA256 over the raw body followed
by the delivery timestamp, using the primary and secondary keys of the app.
Two keys let them be rotated one at a time.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import re
from datetime import UTC, datetime
from typing import Any, Mapping

from .telemetry import get_logger

# Older deliveries are rejected to prevent replay attacks
MAX_MESSAGE_AGE_SECONDS = 10 * 60

SIGNATURE_VERSION = "1"
SIGNATURE_ALGORITHM = "HmacSHA256"

HEADER_SIGNATURE_VERSION = "box-signature-version"
HEADER_SIGNATURE_ALGORITHM = "box-signature-algorithm"
HEADER_SIGNATURE_PRIMARY = "box-signature-primary"
HEADER_SIGNATURE_SECONDARY = "box-signature-secondary"
HEADER_DELIVERY_TIMESTAMP = "box-delivery-timestamp"

_NON_ASCII = re.compile("[\u007f-\U0010ffff]")


def _escape_char(match: re.Match[str]) -> str:
    code = ord(match.group())
    if code > 0xFFFF:
        # Escaped as a UTF-16 surrogate pair, like the server does
        code -= 0x10000
        high, low = 0xD800 + (code >> 10), 0xDC00 + (code & 0x3FF)
        return f"\\u{high:04x}\\u{low:04x}"
    return f"\\u{code:04x}"


def canonicalize_body(body: str | bytes | Mapping[str, Any] | list[Any]) -> bytes:
    """Get the bytes a delivery was signed over.

    A body already parsed from JSON is re-serialized the way the server
    serialized it: compact, with non-ASCII characters and forward slashes
    escaped.
    """
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")

    serialized = json.dumps(body, separators=(",", ":"), ensure_ascii=False)
    serialized = _NON_ASCII.sub(_escape_char, serialized)
    return serialized.replace("/", "\\/").encode("utf-8")


def compute_signature(
    body: bytes,
    headers: Mapping[str, str],
    signature_key: str | None,
) -> str | None:
    """Compute the signature of a delivery with one key.

    Returns:
        The base64 signature, or None when there is no key or the delivery
        uses an unsupported signature version or algorithm.
    """
    if not signature_key:
        return None
    if headers.get(HEADER_SIGNATURE_VERSION) != SIGNATURE_VERSION:
        return None
    if headers.get(HEADER_SIGNATURE_ALGORITHM) != SIGNATURE_ALGORITHM:
        return None

    digest = hmac.new(signature_key.encode("utf-8"), body, hashlib.sha256)
    digest.update(headers.get(HEADER_DELIVERY_TIMESTAMP, "").encode("utf-8"))
    return base64.b64encode(digest.digest()).decode("ascii")


def _signature_matches(expected: str | None, received: str | None) -> bool:
    if expected is None or received is None:
        return False
    return hmac.compare_digest(expected.encode("ascii"), received.encode("utf-8"))


def parse_delivery_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 delivery timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class WebhookSignatureValidator:
    """Validates webhook deliveries against an app's signature keys."""

    def __init__(
        self,
        primary_key: str | None = None,
        secondary_key: str | None = None,
        *,
        max_message_age: float = MAX_MESSAGE_AGE_SECONDS,
    ) -> None:
        """Initialize the validator.

        Args:
            primary_key: Primary signature key.
            secondary_key: Secondary signature key.
            max_message_age: Oldest acceptable delivery, in seconds.
        """
        self._primary_key = primary_key
        self._secondary_key = secondary_key
        self.max_message_age = max_message_age
        self._logger = get_logger()

    def validate_signature(self, body: bytes, headers: Mapping[str, str]) -> bool:
        """Check that either key produced its matching signature header."""
        if _signature_matches(
            compute_signature(body, headers, self._primary_key),
            headers.get(HEADER_SIGNATURE_PRIMARY),
        ):
            return True
        return _signature_matches(
            compute_signature(body, headers, self._secondary_key),
            headers.get(HEADER_SIGNATURE_SECONDARY),
        )

    def validate_delivery_timestamp(
        self,
        headers: Mapping[str, str],
        now: datetime | None = None,
    ) -> bool:
        """Check the delivery is not older than the maximum message age."""
        delivered_at = parse_delivery_timestamp(headers.get(HEADER_DELIVERY_TIMESTAMP))
        if delivered_at is None:
            return False
        age = ((now or datetime.now(UTC)) - delivered_at).total_seconds()
        return age <= self.max_message_age

    def validate(
        self,
        body: str | bytes | Mapping[str, Any] | list[Any],
        headers: Mapping[str, str],
        *,
        now: datetime | None = None,
    ) -> bool:
        """Validate a webhook delivery.

        Args:
            body: Raw body, or the body already parsed from JSON.
            headers: Delivery headers, in any case.
            now: Current time, for checking the delivery age.

        Returns:
            True if a signature matches and the delivery is recent enough.
        """
        normalized = {k.lower(): v for k, v in headers.items()}

        if not self.validate_signature(canonicalize_body(body), normalized):
            self._logger.debug("Webhook signature mismatch")
            return False

        if not self.validate_delivery_timestamp(normalized, now):
            self._logger.debug("Webhook delivery too old")
            return False

        return True


def validate_message(
    body: str | bytes | Mapping[str, Any] | list[Any],
    headers: Mapping[str, str],
    primary_key: str | None = None,
    secondary_key: str | None = None,
    max_message_age: float = MAX_MESSAGE_AGE_SECONDS,
) -> bool:
    """Validate a webhook delivery with explicitly passed keys."""
    return WebhookSignatureValidator(
        primary_key,
        secondary_key,
        max_message_age=max_message_age,
    ).validate(body, headers)
