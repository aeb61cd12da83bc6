"""Tests for webhook signature verification."""

import hashlib
import hmac

from app.core.messaging.signature import verify_signature

SECRET = "app-secret"
BODY = b'{"object":"whatsapp_business_account","entry":[]}'


def sign(body: bytes, secret: str = SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class TestVerifySignature:
    """Test X-Hub-Signature-256 checks."""

    def test_valid(self):
        assert verify_signature(BODY, sign(BODY), SECRET) is True

    def test_wrong_secret(self):
        assert verify_signature(BODY, sign(BODY, "other"), SECRET) is False

    def test_tampered_body(self):
        assert verify_signature(BODY + b" ", sign(BODY), SECRET) is False

    def test_missing_prefix(self):
        assert verify_signature(BODY, sign(BODY)[len("sha256="):], SECRET) is False

    def test_empty_header(self):
        assert verify_signature(BODY, "", SECRET) is False

    def test_truncated_digest(self):
        assert verify_signature(BODY, sign(BODY)[:-2], SECRET) is False

    def test_non_hex_digest(self):
        assert verify_signature(BODY, "sha256=" + "zz" * 32, SECRET) is False
