"""
ShopifyConnector — per-tenant Shopify grant and order access.

Wires the authorization builder, callback verifier, token exchanger,
credential store and order fetcher together in the order the OAuth flow
requires.  Nothing is persisted unless the callback verifies *and* the
exchange succeeds.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from config.settings import Settings
from connectors.authorization import AuthorizationRequest, AuthorizationURLBuilder, verify_state
from connectors.base import BaseConnector
from connectors.callback import CallbackParameters, CallbackVerifier
from connectors.credential_store import CredentialStore
from connectors.errors import ConnectorError, ErrorKind
from connectors.orders import DateFilter, OrderPage, PaginatedResourceFetcher
from connectors.token_exchange import TokenExchanger

logger = logging.getLogger(__name__)


class ShopifyConnector(BaseConnector):
    """OAuth2 connector for Shopify stores."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        store: CredentialStore,
    ):
        self.settings = settings
        self.store = store
        self.auth_builder = AuthorizationURLBuilder(settings)
        self.verifier = CallbackVerifier(settings.shopify_api_secret)
        self.exchanger = TokenExchanger(settings, client)
        self.fetcher = PaginatedResourceFetcher(settings, client)

    def get_auth_url(
        self,
        tenant_id: str,
        shop_name: str,
        redirect_uri: Optional[str] = None,
    ) -> AuthorizationRequest:
        return self.auth_builder.build(tenant_id, shop_name, redirect_uri)

    def _check_state(self, tenant_id: str, callback: CallbackParameters) -> None:
        if callback.state is None:
            if self.settings.require_oauth_state:
                raise ConnectorError(ErrorKind.INVALID_STATE, "Missing OAuth state")
            return
        verify_state(callback.state, tenant_id, self.settings.oauth_state_secret)

    async def handle_callback(self, tenant_id: str, params: Mapping[str, Any]) -> str:
        """Verify → exchange → upsert.  Each step runs only if the previous succeeded."""
        callback = self.verifier.verify(params)
        self._check_state(tenant_id, callback)

        access_token = await self.exchanger.exchange(callback.shop, callback.code)
        await self.store.upsert(tenant_id, callback.shop, access_token)

        logger.info("Shopify connected: tenant=%s shop=%s", tenant_id, callback.shop)
        return callback.shop

    async def fetch_orders(
        self,
        tenant_id: str,
        *,
        page_url: Optional[str] = None,
        start_date: Optional[DateFilter] = None,
        end_date: Optional[DateFilter] = None,
    ) -> OrderPage:
        credentials = await self.store.get(tenant_id)
        return await self.fetcher.fetch_page(
            credentials,
            page_url=page_url,
            start_date=start_date,
            end_date=end_date,
        )
