"""
Shopify connector API routes — auth URL, OAuth callback, order pages.

Route prefix: /api/v1/shopify
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from auth.dependencies import get_current_tenant_id, get_shopify_connector
from connectors.errors import ConnectorError, ErrorKind
from connectors.shopify import ShopifyConnector

logger = logging.getLogger(__name__)

router = APIRouter(tags=["shopify"])


# ── Request / response schemas ─────────────────────────────────────────


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AuthUrlRequest(_Schema):
    shop_name: str = Field(..., alias="shopName", min_length=1)
    redirect_uri: Optional[str] = Field(None, alias="redirectUri")


class AuthUrlResponse(_Schema):
    auth_url: str = Field(..., alias="authUrl")
    redirect_uri: str = Field(..., alias="redirectUri")
    state: str


class CallbackResponse(_Schema):
    message: str


_ISO_DATE = TypeAdapter(Union[date, datetime])


class FetchOrdersRequest(_Schema):
    page_url: Optional[str] = Field(None, alias="pageUrl")
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")

    @field_validator("start_date", "end_date")
    @classmethod
    def _check_iso_date(cls, value: Optional[str]) -> Optional[str]:
        # format check only; the string is forwarded verbatim
        if value is None:
            return value
        try:
            _ISO_DATE.validate_python(value)
        except ValidationError:
            raise ValueError("must be an ISO 8601 date or datetime") from None
        return value


class FetchOrdersResponse(_Schema):
    orders: List[Dict[str, Any]]
    next_page_url: Optional[str] = Field(None, alias="nextPageUrl")
    count: int


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise ConnectorError(ErrorKind.INVALID_FORMAT, "Request body must be valid JSON") from exc


def _validate(model: type[_Schema], body: Any) -> _Schema:
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) or "body" for err in exc.errors()})
        raise ConnectorError(
            ErrorKind.INVALID_FORMAT,
            f"Invalid request body: {', '.join(fields)}",
        ) from exc


# ── Endpoints ──────────────────────────────────────────────────────────


@router.post("/get-auth-url")
async def get_auth_url(
    request: Request,
    tenant_id: str = Depends(get_current_tenant_id),
    connector: ShopifyConnector = Depends(get_shopify_connector),
) -> Dict[str, Any]:
    """Return the Shopify authorization URL the frontend should redirect to."""
    req = _validate(AuthUrlRequest, await _json_body(request))
    auth = connector.get_auth_url(tenant_id, req.shop_name, req.redirect_uri)
    return AuthUrlResponse(
        auth_url=auth.auth_url,
        redirect_uri=auth.redirect_uri,
        state=auth.state,
    ).model_dump(by_alias=True)


@router.post("/auth-callback")
async def auth_callback(
    request: Request,
    tenant_id: str = Depends(get_current_tenant_id),
    connector: ShopifyConnector = Depends(get_shopify_connector),
) -> Dict[str, Any]:
    """
    Complete the OAuth flow with the query parameters Shopify redirected
    with (forwarded by the frontend as a JSON object).
    """
    body = await _json_body(request)
    if not isinstance(body, dict):
        raise ConnectorError(ErrorKind.INVALID_FORMAT, "Request body must be a JSON object")
    await connector.handle_callback(tenant_id, body)
    return CallbackResponse(message="Shopify store connected successfully.").model_dump()


@router.post("/fetch-orders")
async def fetch_orders(
    request: Request,
    tenant_id: str = Depends(get_current_tenant_id),
    connector: ShopifyConnector = Depends(get_shopify_connector),
) -> Dict[str, Any]:
    """Fetch one page of the tenant's orders; pass ``nextPageUrl`` back verbatim for the next."""
    raw = await request.body()
    req = _validate(FetchOrdersRequest, await _json_body(request) if raw.strip() else {})
    page = await connector.fetch_orders(
        tenant_id,
        page_url=req.page_url,
        start_date=req.start_date,
        end_date=req.end_date,
    )
    return FetchOrdersResponse(
        orders=page.items,
        next_page_url=page.next_page_url,
        count=page.count,
    ).model_dump(by_alias=True)
