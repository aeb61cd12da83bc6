"""Webhook signature verification."""

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def verify_signature(raw_body: bytes, signature: str, secret: str) -> bool:
    """
    Check an X-Hub-Signature-256 header against the raw request body.

    Args:
        raw_body: Request body exactly as received
        signature: Header value, "sha256=<hex digest>"
        secret: App secret shared with the provider

    Returns:
        True only for a well-formed header whose digest matches
    """
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False

    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    received = signature[len(SIGNATURE_PREFIX):]

    if len(expected) != len(received):
        return False

    return hmac.compare_digest(expected.encode("ascii"), received.encode("utf-8"))
