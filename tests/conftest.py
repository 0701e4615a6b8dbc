"""
Shared fixtures: settings, an in-memory credential store and a fake
Shopify upstream built on ``httpx.MockTransport``.
"""

from __future__ import annotations

import json
from typing import Callable, Dict, List, Tuple

import httpx
import pytest

from config.settings import Settings
from connectors.callback import compute_hmac
from connectors.credential_store import ShopCredentials
from connectors.errors import ConnectorError, ErrorKind

TEST_CLIENT_ID = "test-client-id"
TEST_CLIENT_SECRET = "test-client-secret"
TEST_REDIRECT_URI = "https://app.example.com/shopify/callback"
TEST_SHOP = "foo.myshopify.com"


def make_settings(**overrides) -> Settings:
    values = dict(
        shopify_api_key=TEST_CLIENT_ID,
        shopify_api_secret=TEST_CLIENT_SECRET,
        shopify_redirect_uri=TEST_REDIRECT_URI,
        shopify_scopes="read_orders,read_customers",
        shopify_fetch_backoff_seconds=0.0,
        oauth_state_secret="test-state-secret",
        jwt_secret="test-jwt-secret",
        token_encryption_key="",
        allowed_origin="https://dashboard.example.com",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def sign(params: Dict[str, str], secret: str = TEST_CLIENT_SECRET) -> Dict[str, str]:
    """Return a copy of ``params`` with a valid ``hmac`` added."""
    signed = dict(params)
    signed["hmac"] = compute_hmac(params, secret)
    return signed


class FakeCredentialStore:
    def __init__(self) -> None:
        self.profiles: Dict[str, ShopCredentials] = {}
        self.upserts: List[Tuple[str, str, str]] = []

    async def upsert(self, tenant_id: str, shop_domain: str, access_token: str) -> None:
        self.upserts.append((tenant_id, shop_domain, access_token))
        self.profiles[tenant_id] = ShopCredentials(shop_domain, access_token)

    async def get(self, tenant_id: str) -> ShopCredentials:
        try:
            return self.profiles[tenant_id]
        except KeyError:
            raise ConnectorError(ErrorKind.PROFILE_NOT_FOUND, "Shopify store is not connected") from None


class FakeShopify:
    """
    Records every outbound request and answers from a per-path handler.

    Token codes are single-use, like the real endpoint: the first exchange of
    a code succeeds, any later one gets a 400.
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.handlers: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.issued_codes: set[str] = set()
        self.handlers["/admin/oauth/access_token"] = self._token_endpoint

    def _token_endpoint(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        code = body["code"]
        if code in self.issued_codes:
            return httpx.Response(400, json={"error": "invalid_request",
                                             "error_description": "authorization code was not found or was already used"})
        self.issued_codes.add(code)
        return httpx.Response(200, json={"access_token": f"shpat_{code}", "scope": "read_orders"})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.handlers.get(request.url.path)
        if handler is None:
            return httpx.Response(404, json={"errors": "Not Found"})
        return handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> FakeCredentialStore:
    return FakeCredentialStore()


@pytest.fixture
def shopify() -> FakeShopify:
    return FakeShopify()
