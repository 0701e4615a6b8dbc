"""
SQLAlchemy ORM models.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class TenantProfile(Base):
    """One Shopify grant per tenant.  ``access_token`` holds Fernet ciphertext."""

    __tablename__ = "tenant_profiles"

    tenant_id = Column(String(64), primary_key=True)
    shop_domain = Column(String(255), nullable=False)
    access_token = Column(Text, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        # never include the token
        return f"<TenantProfile tenant_id={self.tenant_id!r} shop_domain={self.shop_domain!r}>"
