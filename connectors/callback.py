"""
CallbackVerifier — authenticates the OAuth redirect coming back from Shopify.

Three stages, terminal on the first failure:

1. parse      — ``code``, ``shop`` and ``hmac`` must be present
2. domain     — ``shop`` must be exactly ``<handle>.myshopify.com``
3. signature  — HMAC-SHA256 over the canonical message, constant-time compare

The domain check runs before anything else touches ``shop`` because the
token exchange URL is built from it.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

from connectors.errors import ConnectorError, ErrorKind
from utils.validators import is_valid_shop_domain

logger = logging.getLogger(__name__)

_REQUIRED = ("code", "shop", "hmac")
_HEX_DIGEST_RE = re.compile(r"[0-9a-fA-F]{64}")


@dataclass(frozen=True)
class CallbackParameters:
    code: str
    shop: str
    hmac: str
    params: Dict[str, str] = field(default_factory=dict)

    @property
    def state(self) -> str | None:
        return self.params.get("state")


def canonical_message(params: Mapping[str, str]) -> str:
    """
    Every parameter except ``hmac``, keys sorted by byte value, joined as
    ``key=value`` with ``&``.  Values are used exactly as received.
    """
    items = [(k, v) for k, v in params.items() if k != "hmac"]
    items.sort(key=lambda kv: kv[0].encode("utf-8"))
    return "&".join(f"{k}={v}" for k, v in items)


def compute_hmac(params: Mapping[str, str], secret: str) -> str:
    """Hex HMAC-SHA256 of the canonical message."""
    return hmac.new(
        secret.encode("utf-8"),
        canonical_message(params).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class CallbackVerifier:
    def __init__(self, api_secret: str):
        self._secret = api_secret

    def parse(self, raw: Mapping[str, Any]) -> CallbackParameters:
        missing = [name for name in _REQUIRED if not raw.get(name)]
        if missing:
            raise ConnectorError(
                ErrorKind.MISSING_PARAMETER,
                f"Missing required parameters: {', '.join(missing)}",
            )
        bad = sorted(k for k, v in raw.items() if not isinstance(k, str) or not isinstance(v, str))
        if bad:
            raise ConnectorError(
                ErrorKind.INVALID_FORMAT,
                f"Callback parameters must be strings: {', '.join(map(str, bad))}",
            )
        params = dict(raw)
        return CallbackParameters(
            code=params["code"],
            shop=params["shop"],
            hmac=params["hmac"],
            params=params,
        )

    @staticmethod
    def verify_domain(callback: CallbackParameters) -> None:
        if not is_valid_shop_domain(callback.shop):
            logger.warning("Callback rejected: malformed shop domain")
            raise ConnectorError(ErrorKind.INVALID_FORMAT, "Invalid shop domain format")

    def verify_hmac(self, callback: CallbackParameters) -> None:
        if not self._secret:
            logger.error("SHOPIFY_API_SECRET not set - OAuth HMAC verification cannot run")
            raise ConnectorError(ErrorKind.CONFIGURATION_ERROR, "Server configuration error")

        expected = hmac.new(
            self._secret.encode("utf-8"),
            canonical_message(callback.params).encode("utf-8"),
            hashlib.sha256,
        ).digest()
        # exactly 64 hex digits; bytes.fromhex alone would tolerate whitespace
        supplied = bytes.fromhex(callback.hmac) if _HEX_DIGEST_RE.fullmatch(callback.hmac) else b""

        if not hmac.compare_digest(expected, supplied):
            logger.warning("HMAC verification failed for shop %s", callback.shop)
            raise ConnectorError(ErrorKind.HMAC_VERIFICATION_FAILED, "HMAC verification failed")

    def verify(self, raw: Mapping[str, Any]) -> CallbackParameters:
        """Run parse → domain → HMAC and return the authenticated parameters."""
        callback = self.parse(raw)
        self.verify_domain(callback)
        self.verify_hmac(callback)
        logger.info("OAuth callback verified for shop %s", callback.shop)
        return callback
