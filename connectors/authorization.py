"""
Authorization URL builder and OAuth state tokens.

The state is an opaque string encoding tenant id, a random nonce and an
expiry, signed with ``oauth_state_secret``.  The callback can therefore
check it without any server-side storage.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import secrets
import time
from base64 import urlsafe_b64decode, urlsafe_b64encode
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from config.settings import Settings
from connectors.errors import ConnectorError, ErrorKind
from utils.validators import is_valid_shop_subdomain, shop_domain_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationRequest:
    auth_url: str
    redirect_uri: str
    state: str


# ── State token helpers (CSRF protection) ──────────────────────────────


def create_state(tenant_id: str, secret: str, ttl_seconds: int) -> str:
    """Create an opaque state string encoding tenant_id + nonce + expiry."""
    payload = json.dumps(
        {
            "tenant_id": tenant_id,
            "nonce": secrets.token_urlsafe(16),
            "exp": int(time.time()) + ttl_seconds,
        }
    )
    raw = payload.encode()
    sig = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    return urlsafe_b64encode(raw).decode() + "." + sig


def verify_state(state: str, tenant_id: str, secret: str) -> None:
    """Raise ``ConnectorError(INVALID_STATE)`` unless the state belongs to ``tenant_id``."""
    try:
        parts = state.split(".", 1)
        if len(parts) != 2:
            raise ValueError("bad format")
        raw = urlsafe_b64decode(parts[0].encode())
        expected_sig = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
        if not hmac.compare_digest(parts[1].encode(), expected_sig.encode()):
            raise ValueError("bad signature")
        payload = json.loads(raw)
        if payload.get("exp", 0) < time.time():
            raise ValueError("state expired")
        if payload.get("tenant_id") != tenant_id:
            raise ValueError("state issued to another tenant")
    except (ValueError, TypeError, AttributeError) as exc:
        logger.warning("OAuth state rejected for tenant %s: %s", tenant_id, exc)
        raise ConnectorError(
            ErrorKind.INVALID_STATE,
            "Invalid or expired OAuth state. Please start the connection again.",
        ) from exc


class AuthorizationURLBuilder:
    """Builds the Shopify ``/admin/oauth/authorize`` redirect for one tenant."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def _redirect_uri(self, override: Optional[str]) -> str:
        configured = self.settings.shopify_redirect_uri
        if override and override != configured:
            if self.settings.allow_redirect_uri_override:
                logger.info("Using client-supplied redirect_uri override")
                return override
            logger.warning("Ignoring client-supplied redirect_uri; override is disabled")
        return configured

    def build(
        self,
        tenant_id: str,
        shop_name: str,
        redirect_uri: Optional[str] = None,
    ) -> AuthorizationRequest:
        client_id = self.settings.shopify_api_key
        target = self._redirect_uri(redirect_uri)
        if not client_id or not target:
            logger.error("Missing server configuration: SHOPIFY_API_KEY or SHOPIFY_REDIRECT_URI")
            raise ConnectorError(ErrorKind.CONFIGURATION_ERROR, "Server configuration error")

        if not is_valid_shop_subdomain(shop_name):
            raise ConnectorError(
                ErrorKind.INVALID_FORMAT,
                'Invalid shop name format. Use only the subdomain (e.g., "my-store").',
            )

        state = create_state(
            tenant_id,
            self.settings.oauth_state_secret,
            self.settings.oauth_state_ttl_seconds,
        )
        params = {
            "client_id": client_id,
            "scope": ",".join(self.settings.scope_list),
            "redirect_uri": target,
            "state": state,
        }
        shop_domain = shop_domain_for(shop_name)
        auth_url = f"https://{shop_domain}/admin/oauth/authorize?{urlencode(params)}"

        logger.info("Authorization URL built for shop %s (tenant %s)", shop_domain, tenant_id)
        return AuthorizationRequest(auth_url=auth_url, redirect_uri=target, state=state)
