"""Signature verification for GitHub push webhooks.

GitHub signs each delivery with ``X-Hub-Signature: sha1=<hex>``, an HMAC-SHA1
of the raw body keyed with the shared webhook secret.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from typing import TYPE_CHECKING, Any, Mapping, Optional, Union

if TYPE_CHECKING:
    from ..logs import LogBuffer

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature"
SIGNATURE_PREFIX = "sha1="


# ---------------------------------------------------------------------------
# Signature Verification
# ---------------------------------------------------------------------------


def _to_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("utf-8", "surrogatepass") if isinstance(value, str) else value


def expected_signature(secret: Union[str, bytes], body: Union[str, bytes]) -> str:
    """Compute the ``sha1=<hex>`` header value GitHub sends for ``body``."""
    digest = hmac.new(_to_bytes(secret), _to_bytes(body), hashlib.sha1).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def string_equals_constant_time(actual: str, expected: str) -> bool:
    """Compare ``actual`` to ``expected`` without leaking where they differ.

    ``actual`` is copied into a zeroed buffer sized to ``expected`` so both
    operands always have the same length; bytes past that size are cut off.
    The comparison then visits every byte regardless of mismatches.
    """
    expected_bytes = expected.encode("utf-8")
    candidate = actual.encode("utf-8", "surrogatepass")
    actual_buffer = bytearray(len(expected_bytes))
    copied = min(len(candidate), len(expected_bytes))
    actual_buffer[:copied] = candidate[:copied]

    result = len(candidate) ^ len(expected_bytes)
    for x, y in zip(actual_buffer, expected_bytes):
        result |= x ^ y
    return result == 0


def verify_signature(
    secret: Union[str, bytes],
    body: Union[str, bytes],
    signature_header: Optional[Any],
) -> bool:
    """Verify a GitHub webhook signature.

    Args:
        secret: Webhook secret configured in GitHub
        body: Raw request body
        signature_header: Value of the X-Hub-Signature header, if any

    Returns:
        True if the signature matches, False otherwise. Malformed or missing
        headers fail verification and never raise.
    """
    if not isinstance(signature_header, str):
        logger.debug("Signature header missing or not a string")
        return False
    return string_equals_constant_time(signature_header, expected_signature(secret, body))


def check_signature(
    secret: Union[str, bytes],
    body: str,
    headers: Mapping[str, str],
    log: LogBuffer,
) -> bool:
    """Verify a request and record the evidence in ``log`` on failure.

    The expected signature, the headers and the body are already visible to
    anyone holding the request, so they are logged in full.
    """
    signature = headers.get(SIGNATURE_HEADER)
    if verify_signature(secret, body, signature):
        return True

    log.error(f"Invalid request: expected {expected_signature(secret, body)}, got {signature}")
    log.error(f"Headers are: {json.dumps(dict(headers), indent=4)}")
    log.error(f"Data is: {body}")
    log.error("")
    return False


__all__ = [
    "SIGNATURE_HEADER",
    "check_signature",
    "expected_signature",
    "string_equals_constant_time",
    "verify_signature",
]
