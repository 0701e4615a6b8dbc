"""
JWT-style tenant token creation and verification.

Tokens are base64-encoded JSON payloads signed with HMAC-SHA256.
The secret is ``Settings.jwt_secret`` (env var: ``JWT_SECRET``).
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from base64 import b64decode, b64encode

from connectors.errors import ConnectorError, ErrorKind


def create_token(tenant_id: str, secret: str, expiry_seconds: int) -> str:
    """Create a signed token containing ``tenant_id`` and expiry."""
    payload = {
        "tenant_id": tenant_id,
        "exp": int(time.time()) + expiry_seconds,
    }
    raw = json.dumps(payload).encode()
    sig = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    return b64encode(raw).decode() + "." + sig


def verify_token(token: str, secret: str) -> str:
    """
    Verify token and return ``tenant_id``.

    Raises ``ConnectorError(UNAUTHENTICATED)`` on invalid or expired tokens.
    """
    try:
        parts = token.split(".", 1)
        if len(parts) != 2:
            raise ValueError("bad format")
        raw = b64decode(parts[0])
        expected_sig = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
        if not hmac.compare_digest(parts[1].encode(), expected_sig.encode()):
            raise ValueError("bad signature")
        payload = json.loads(raw)
        if payload.get("exp", 0) < time.time():
            raise ValueError("token expired")
        tenant_id = payload["tenant_id"]
        if not isinstance(tenant_id, str) or not tenant_id:
            raise ValueError("bad tenant")
        return tenant_id
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        raise ConnectorError(ErrorKind.UNAUTHENTICATED, "Unauthorized") from exc
