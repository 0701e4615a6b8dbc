"""
BaseConnector — abstract interface for tenant OAuth connectors.

A connector owns the whole grant lifecycle for one provider: building the
authorization redirect, completing the callback, and persisting the
resulting token through a ``CredentialStore``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from connectors.authorization import AuthorizationRequest


class BaseConnector(ABC):
    """Abstract base for all OAuth2 connectors."""

    @abstractmethod
    def get_auth_url(
        self,
        tenant_id: str,
        shop_name: str,
        redirect_uri: Optional[str] = None,
    ) -> AuthorizationRequest:
        """
        Build the provider's OAuth2 authorization URL.

        Parameters
        ----------
        tenant_id : str
            Authenticated tenant; bound into the state value.
        shop_name : str
            Untrusted account handle supplied by the client.
        redirect_uri : str, optional
            Client override, honoured only when configuration allows it.
        """
        ...

    @abstractmethod
    async def handle_callback(self, tenant_id: str, params: Mapping[str, Any]) -> str:
        """
        Verify the callback, exchange the code and store the token.

        Returns
        -------
        The account identifier (shop domain) the token was stored for.
        """
        ...
