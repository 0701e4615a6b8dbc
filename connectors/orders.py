"""
PaginatedResourceFetcher — reads order pages with a tenant's stored token.

Pagination is cursor-driven: Shopify returns the next page as a URL in the
``Link`` response header.  That URL is replayed verbatim on the next call,
but only after its host has been checked against the tenant's own shop
domain — a cursor never carries its own authority.

    Start ──FetchPage──▶ HasNext ──FetchPage──▶ … ──▶ Exhausted
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlencode, urlsplit

import httpx

from config.settings import Settings
from connectors.credential_store import ShopCredentials
from connectors.errors import ConnectorError, ErrorKind, UpstreamError, redact
from utils.validators import is_valid_shop_domain

logger = logging.getLogger(__name__)

ORDER_FIELDS = ("id", "created_at", "total_price", "shipping_address")
PAGE_LIMIT = 250

_LINK_ENTRY_RE = re.compile(r"<([^>]*)>([^<]*)")
_LINK_REL_RE = re.compile(r"""rel\s*=\s*(?:"([^"]*)"|([^\s;,]+))""")
_RETRYABLE_STATUS = {500, 502, 503, 504}

DateFilter = Union[date, datetime, str]


class PageHostPolicy(str, Enum):
    """Which hosts a follow-up page URL may target."""

    EXACT = "exact"                   # the tenant's own shop domain only
    ANY_MYSHOPIFY = "any_myshopify"   # weaker; any *.myshopify.com host


@dataclass
class OrderPage:
    items: List[Dict[str, Any]] = field(default_factory=list)
    next_page_url: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def exhausted(self) -> bool:
        return self.next_page_url is None


def parse_next_link(link_header: Optional[str]) -> Optional[str]:
    """Return the URL of the ``rel="next"`` entry of a Link header, if any."""
    if not link_header:
        return None
    # page URLs may themselves contain commas (``fields=id,created_at``), so
    # entries are delimited by ``<`` rather than split on ``,``
    for entry in _LINK_ENTRY_RE.finditer(link_header):
        url, params = entry.group(1).strip(), entry.group(2)
        for rel in _LINK_REL_RE.finditer(params):
            value = rel.group(1) if rel.group(1) is not None else rel.group(2)
            if "next" in value.lower().split():
                return url
    return None


def _as_filter_value(value: DateFilter) -> str:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class PaginatedResourceFetcher:
    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        *,
        host_policy: PageHostPolicy = PageHostPolicy.EXACT,
    ):
        self.settings = settings
        self.client = client
        self.host_policy = host_policy
        if host_policy is not PageHostPolicy.EXACT:
            logger.warning("Page URL host policy relaxed to %s", host_policy.value)

    # ── URL construction / validation ──────────────────────────────────

    def first_page_url(
        self,
        shop_domain: str,
        start_date: Optional[DateFilter] = None,
        end_date: Optional[DateFilter] = None,
    ) -> str:
        params: Dict[str, str] = {
            "status": "any",
            "limit": str(PAGE_LIMIT),
            "fields": ",".join(ORDER_FIELDS),
        }
        if start_date:
            params["created_at_min"] = _as_filter_value(start_date)
        if end_date:
            params["created_at_max"] = _as_filter_value(end_date)
        version = self.settings.shopify_api_version
        return f"https://{shop_domain}/admin/api/{version}/orders.json?{urlencode(params)}"

    def check_page_url(self, page_url: str, shop_domain: str) -> None:
        """Raise ``SSRF_REJECTED`` unless ``page_url`` targets the tenant's shop."""
        try:
            parts = urlsplit(page_url)
            host = parts.hostname
            port = parts.port
        except ValueError:
            host, port, parts = None, None, None

        if parts is None or parts.scheme != "https" or parts.username or parts.password:
            allowed = False
        elif port not in (None, 443):
            allowed = False
        elif self.host_policy is PageHostPolicy.ANY_MYSHOPIFY:
            allowed = bool(host) and is_valid_shop_domain(host)
        else:
            allowed = host == shop_domain

        if not allowed:
            logger.warning("Rejected page URL for shop %s (host=%r)", shop_domain, host)
            raise ConnectorError(
                ErrorKind.SSRF_REJECTED,
                "Invalid page URL: it must point at your own shop domain",
            )

    # ── Fetching ───────────────────────────────────────────────────────

    async def _get_with_retry(self, url: str, access_token: str) -> httpx.Response:
        max_retries = self.settings.shopify_fetch_max_retries
        backoff = self.settings.shopify_fetch_backoff_seconds
        headers = {
            "X-Shopify-Access-Token": access_token,
            "Accept": "application/json",
        }

        for attempt in range(max_retries + 1):
            last_try = attempt >= max_retries
            try:
                response = await self.client.get(
                    url,
                    headers=headers,
                    timeout=self.settings.shopify_http_timeout_seconds,
                )
            except httpx.TimeoutException as exc:
                logger.warning("Orders request timed out (attempt %d/%d)", attempt + 1, max_retries + 1)
                if last_try:
                    raise ConnectorError(
                        ErrorKind.UPSTREAM_TIMEOUT,
                        "Shopify API did not respond in time",
                    ) from exc
                await asyncio.sleep(backoff * 2**attempt)
                continue
            except httpx.TransportError as exc:
                logger.warning("Orders request failed (attempt %d/%d): %s", attempt + 1, max_retries + 1, exc)
                if last_try:
                    raise UpstreamError(None, str(exc), "Failed to reach Shopify") from exc
                await asyncio.sleep(backoff * 2**attempt)
                continue

            if response.status_code in _RETRYABLE_STATUS and not last_try:
                delay = backoff * 2**attempt
                logger.warning(
                    "Shopify returned %s, retrying in %.1fs (attempt %d/%d)",
                    response.status_code,
                    delay,
                    attempt + 1,
                    max_retries + 1,
                )
                await asyncio.sleep(delay)
                continue
            return response

        # unreachable: the last attempt always returns or raises
        raise UpstreamError(None, "", "Request failed after all retries")

    async def fetch_page(
        self,
        credentials: ShopCredentials,
        *,
        page_url: Optional[str] = None,
        start_date: Optional[DateFilter] = None,
        end_date: Optional[DateFilter] = None,
    ) -> OrderPage:
        """
        Fetch one page of orders.

        With ``page_url`` the cursor is validated and replayed as-is; the
        date filters are ignored because they are already encoded in it.
        """
        shop_domain = credentials.shop_domain
        if page_url:
            self.check_page_url(page_url, shop_domain)
            url = page_url
        else:
            url = self.first_page_url(shop_domain, start_date, end_date)

        logger.info("Fetching orders for shop %s", shop_domain)
        response = await self._get_with_retry(url, credentials.access_token)

        if not response.is_success:
            body = redact(response.text, credentials.access_token)
            logger.error("Shopify API error for %s: %s - %s", shop_domain, response.status_code, body[:500])
            raise UpstreamError(response.status_code, body, f"Shopify API Error: {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError(response.status_code, "", "Shopify returned a non-JSON body") from exc
        orders = data.get("orders") if isinstance(data, dict) else None
        if not isinstance(orders, list):
            raise UpstreamError(response.status_code, "", "Shopify response has no orders array")

        page = OrderPage(items=orders, next_page_url=parse_next_link(response.headers.get("link")))
        logger.info(
            "Retrieved %d orders for %s%s",
            page.count,
            shop_domain,
            "" if page.exhausted else " (next page available)",
        )
        return page
