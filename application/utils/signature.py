"""
Webhook authentication.

The aggregator either signs the raw body with HMAC-SHA256 keyed by the shared
secret (hex digest in the Signature header) or, for older integrations, echoes
the secret itself in a header. Both comparisons are constant time.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Optional


def sign_body(secret: str, raw_body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body or b"", hashlib.sha256).hexdigest()


def verify_webhook(
    secret: str,
    *,
    raw_body: bytes = b"",
    signature: Optional[str] = None,
    secret_token: Optional[str] = None,
) -> bool:
    if not secret:
        return False
    if secret_token and hmac.compare_digest(secret_token.encode("utf-8"), secret.encode("utf-8")):
        return True
    if signature:
        expected = sign_body(secret, raw_body)
        return hmac.compare_digest(signature.strip().lower().encode("utf-8"), expected.encode("utf-8"))
    return False
