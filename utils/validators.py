"""
Format validators for untrusted shop identifiers.

Both checks use ``re.fullmatch`` — a prefix or substring match would let
``shop.myshopify.com.evil.com`` through.
"""

from __future__ import annotations

import re

SHOP_SUBDOMAIN_RE = re.compile(r"[a-zA-Z0-9][a-zA-Z0-9-]*")
SHOP_DOMAIN_RE = re.compile(r"[a-z0-9][a-z0-9-]*\.myshopify\.com")

SHOP_DOMAIN_SUFFIX = ".myshopify.com"


def is_valid_shop_subdomain(shop_name: str) -> bool:
    """True for a bare store handle such as ``my-store``."""
    return isinstance(shop_name, str) and SHOP_SUBDOMAIN_RE.fullmatch(shop_name) is not None


def is_valid_shop_domain(shop: str) -> bool:
    """True for a fully-qualified, lower-case ``<handle>.myshopify.com`` host."""
    return isinstance(shop, str) and SHOP_DOMAIN_RE.fullmatch(shop) is not None


def shop_domain_for(shop_name: str) -> str:
    return f"{shop_name.lower()}{SHOP_DOMAIN_SUFFIX}"
