"""Resolve storefront product slugs (``/product/:slug``) to stable product ids."""
from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import unquote

from src.db.backend import StorefrontBackend

logger = logging.getLogger(__name__)

_PRODUCT_PATH = re.compile(r"/product/([^/?#]+)")


def extract_product_slug(path: str) -> Optional[str]:
    """Return the slug of a ``/product/:slug`` path, or None for any other page."""
    match = _PRODUCT_PATH.search(path or "")
    if not match:
        return None
    return unquote(match.group(1))


class ProductResolver:
    """Single point lookup by slug. A miss is None, never an error."""

    def __init__(self, backend: StorefrontBackend):
        self.backend = backend

    async def resolve(self, slug: str) -> Optional[str]:
        product_id = await self.backend.lookup_product_by_slug(slug)
        if product_id is None:
            logger.warning("Product slug not found: %s", slug)
        return product_id
