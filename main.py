"""
Shopify tenant connector — application entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI

from api.middleware import register_exception_handlers, register_middleware
from config.settings import Settings, load_settings
from connectors.credential_store import CredentialStore, SqlCredentialStore
from connectors.encryption import TokenCipher
from connectors.routes import router as shopify_router
from database.session import create_engine, create_session_factory, create_tables

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        stream=sys.stdout,
    )
    for _noisy in ("httpcore", "httpx", "sqlalchemy.engine", "asyncio"):
        logging.getLogger(_noisy).setLevel(logging.WARNING)


def create_app(
    settings: Settings,
    *,
    credential_store: Optional[CredentialStore] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    app = FastAPI(
        title="Shopify Tenant Connector",
        version="1.0.0",
        description="Per-tenant Shopify OAuth and paginated order access.",
    )
    app.state.settings = settings
    app.state.http_transport = http_transport

    engine = None
    if credential_store is None:
        engine = create_engine(settings)
        credential_store = SqlCredentialStore(
            create_session_factory(engine),
            TokenCipher(settings.token_encryption_key),
        )
    app.state.credential_store = credential_store

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(shopify_router, prefix="/api/v1/shopify")

    @app.on_event("startup")
    async def on_startup():
        if not (settings.shopify_api_key and settings.shopify_api_secret and settings.shopify_redirect_uri):
            logger.warning(
                "Shopify connector not fully configured "
                "(SHOPIFY_API_KEY / SHOPIFY_API_SECRET / SHOPIFY_REDIRECT_URI)"
            )
        if engine is not None:
            await create_tables(engine)
        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        if engine is not None:
            await engine.dispose()

    return app


if __name__ == "__main__":
    _settings = load_settings()
    configure_logging(_settings)
    uvicorn.run(
        create_app(_settings),
        host=_settings.host,
        port=_settings.port,
        log_level="debug" if _settings.debug else "info",
    )
