"""
Credential store — persist / look up each tenant's Shopify grant.

The OAuth and fetch code depend only on the ``CredentialStore`` protocol
(``upsert`` / ``get``).  ``SqlCredentialStore`` is the PostgreSQL-backed
implementation used by the application.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from connectors.encryption import TokenCipher
from connectors.errors import ConnectorError, ErrorKind
from database.models import TenantProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShopCredentials:
    shop_domain: str
    access_token: str

    def __repr__(self) -> str:
        return f"ShopCredentials(shop_domain={self.shop_domain!r}, access_token='***')"


class CredentialStore(Protocol):
    async def upsert(self, tenant_id: str, shop_domain: str, access_token: str) -> None:
        """Create or overwrite the tenant's grant.  Raises ``STORE_UNAVAILABLE``."""
        ...

    async def get(self, tenant_id: str) -> ShopCredentials:
        """Return the tenant's grant.  Raises ``PROFILE_NOT_FOUND``."""
        ...


class SqlCredentialStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: TokenCipher,
    ):
        self._session_factory = session_factory
        self._cipher = cipher

    async def upsert(self, tenant_id: str, shop_domain: str, access_token: str) -> None:
        now = datetime.now(timezone.utc)
        encrypted = self._cipher.encrypt(access_token)
        stmt = (
            pg_insert(TenantProfile)
            .values(
                tenant_id=tenant_id,
                shop_domain=shop_domain,
                access_token=encrypted,
                updated_at=now,
            )
            # concurrent upserts for one tenant: last writer wins
            .on_conflict_do_update(
                index_elements=["tenant_id"],
                set_={
                    "shop_domain": shop_domain,
                    "access_token": encrypted,
                    "updated_at": now,
                },
            )
        )
        try:
            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("upsert failed for tenant %s: %s", tenant_id, exc)
            raise ConnectorError(
                ErrorKind.STORE_UNAVAILABLE,
                "Could not save the Shopify connection",
            ) from exc
        logger.info("Stored Shopify grant for tenant %s (shop %s)", tenant_id, shop_domain)

    async def get(self, tenant_id: str) -> ShopCredentials:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(TenantProfile).where(TenantProfile.tenant_id == tenant_id)
                )
                profile = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("profile lookup failed for tenant %s: %s", tenant_id, exc)
            raise ConnectorError(
                ErrorKind.STORE_UNAVAILABLE,
                "Could not load the Shopify connection",
            ) from exc

        if profile is None or not profile.shop_domain or not profile.access_token:
            raise ConnectorError(
                ErrorKind.PROFILE_NOT_FOUND,
                "Shopify store is not connected for this account",
            )
        return ShopCredentials(
            shop_domain=profile.shop_domain,
            access_token=self._cipher.decrypt(profile.access_token),
        )
