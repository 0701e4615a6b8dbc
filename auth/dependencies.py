"""
FastAPI dependencies shared across routes.

Provides ``get_settings``, ``get_current_tenant_id``, ``http_client``,
``get_credential_store`` and ``get_shopify_connector``.
"""

from __future__ import annotations

from typing import AsyncGenerator, Optional

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config.settings import Settings
from connectors.credential_store import CredentialStore
from connectors.errors import ConnectorError, ErrorKind
from connectors.shopify import ShopifyConnector

_bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credential_store


async def get_current_tenant_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Extract and verify the Bearer token, returning the authenticated
    ``tenant_id``.
    """
    from auth.jwt import verify_token

    if credentials is None:
        raise ConnectorError(ErrorKind.UNAUTHENTICATED, "Missing Authorization header")
    return verify_token(credentials.credentials, settings.jwt_secret)


async def http_client(request: Request) -> AsyncGenerator[httpx.AsyncClient, None]:
    """One outbound client per request; tests inject a transport via app state."""
    settings: Settings = request.app.state.settings
    async with httpx.AsyncClient(
        timeout=settings.shopify_http_timeout_seconds,
        transport=request.app.state.http_transport,
        follow_redirects=False,
    ) as client:
        yield client


def get_shopify_connector(
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(http_client),
    store: CredentialStore = Depends(get_credential_store),
) -> ShopifyConnector:
    return ShopifyConnector(settings, client, store)
