"""
TokenExchanger — swaps a verified authorization code for an access token.

An authorization code is single-use, so the POST is issued exactly once
and never retried: a second attempt would resubmit a consumed code.
"""

from __future__ import annotations

import logging

import httpx

from config.settings import Settings
from connectors.errors import ConnectorError, ErrorKind, UpstreamError, redact

logger = logging.getLogger(__name__)


def token_url(shop_domain: str) -> str:
    return f"https://{shop_domain}/admin/oauth/access_token"


class TokenExchanger:
    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    async def exchange(self, shop_domain: str, code: str) -> str:
        """
        POST ``{client_id, client_secret, code}`` to the shop's token endpoint.

        Parameters
        ----------
        shop_domain : str
            Already verified ``<handle>.myshopify.com`` host.
        code : str
            Authorization code from the verified callback.

        Returns
        -------
        The access token string.
        """
        client_id = self.settings.shopify_api_key
        client_secret = self.settings.shopify_api_secret
        if not client_id or not client_secret:
            logger.error("Missing Shopify API credentials in environment variables")
            raise ConnectorError(ErrorKind.CONFIGURATION_ERROR, "Server configuration error")

        url = token_url(shop_domain)
        logger.info("Exchanging authorization code: shop=%s", shop_domain)
        try:
            response = await self.client.post(
                url,
                json={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "code": code,
                },
                headers={"Accept": "application/json"},
                timeout=self.settings.shopify_http_timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            logger.error("Timeout exchanging code with %s", shop_domain)
            raise ConnectorError(
                ErrorKind.UPSTREAM_TIMEOUT,
                "Connection to Shopify timed out. Please try again.",
            ) from exc
        except httpx.TransportError as exc:
            logger.error("Network error exchanging code with %s: %s", shop_domain, exc)
            raise UpstreamError(None, str(exc), "Failed to reach Shopify") from exc

        logger.info("Token exchange response: shop=%s status=%s", shop_domain, response.status_code)

        if not response.is_success:
            body = redact(response.text, client_secret, code)
            logger.error("Token exchange failed: %s - %s", response.status_code, body[:500])
            # 4xx here means the code or shop the caller supplied was rejected
            http_status = 400 if 400 <= response.status_code < 500 else None
            raise UpstreamError(
                response.status_code,
                body,
                "Invalid authorization code or shop" if http_status else "Failed to exchange token",
                http_status=http_status,
            )

        try:
            access_token = response.json().get("access_token")
        except (ValueError, AttributeError):
            access_token = None
        if not access_token or not isinstance(access_token, str):
            logger.error("Token exchange for %s returned no access_token", shop_domain)
            raise ConnectorError(ErrorKind.TOKEN_MISSING, "Failed to retrieve access token")

        return access_token
