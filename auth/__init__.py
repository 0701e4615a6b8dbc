"""
auth — Tenant authentication module.

Provides:
  • Signed tenant token creation & verification
  • ``get_current_tenant_id`` FastAPI dependency
"""
