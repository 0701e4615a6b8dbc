"""
connectors — Shopify integration module.

Provides:
  • OAuth2 auth-URL generation with a signed state token
  • Callback verification (shop domain + HMAC) and code → token exchange
  • Per-tenant grant storage with Fernet encryption at rest
  • Cursor-paginated order fetching restricted to the tenant's shop
"""
