"""
Best-effort click logging for affiliate referrals and Instagram campaigns.

Flow per click:
  1. Resolve the human code to the affiliate / campaign (must be active)
  2. Resolve the landing product slug, if any, to a product id (a failed
     lookup only drops the product id)
  3. Insert the click row with referrer, user agent and landing URL

``submit()`` schedules this on the running loop and hands back the task; the
caller is not expected to await it. Nothing is ever raised: failures go to
the error sink and the task resolves to ``ClickOutcome.FAILED``.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine, Optional, TypeVar

from src.db.backend import StorefrontBackend
from src.models.attribution import Channel, ClickEvent, ClickRequest, EntityRef
from src.services.product_resolver import ProductResolver

logger = logging.getLogger(__name__)

_LABELS = {
    Channel.AFFILIATE_REFERRAL: "Affiliate",
    Channel.INSTAGRAM_CAMPAIGN: "Instagram",
}


class ClickOutcome(str, Enum):
    LOGGED = "logged"
    UNKNOWN_ENTITY = "unknown_entity"  # code not found or inactive
    FAILED = "failed"


ErrorSink = Callable[[ClickRequest, BaseException], None]
T = TypeVar("T")


def log_click_error(request: ClickRequest, exc: BaseException) -> None:
    """Default error sink — the click is lost, so leave a trace in the logs."""
    logger.warning(
        "[%s] Click log failed for %s: %s",
        _LABELS[request.channel], request.code, exc,
        exc_info=exc, extra={"channel": request.channel.value, "code": request.code},
    )


class ClickLogger:
    def __init__(
        self,
        backend: StorefrontBackend,
        resolver: Optional[ProductResolver] = None,
        error_sink: Optional[ErrorSink] = None,
    ):
        self.backend = backend
        self.resolver = resolver or ProductResolver(backend)
        self.error_sink = error_sink or log_click_error
        self._pending: set[asyncio.Task] = set()

    # ── Fire-and-forget ─────────────────────────────────────────────────────

    def spawn(self, coro: Coroutine[Any, Any, T]) -> asyncio.Task[T]:
        """Run ``coro`` as a background task that ``drain()`` will wait for.

        Must be called with a running event loop.
        """
        task = asyncio.get_running_loop().create_task(coro)
        # Keep a strong reference until done, the event loop only holds weak ones
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def submit(
        self,
        request: ClickRequest,
        product_lookup: Optional[Awaitable[Optional[str]]] = None,
    ) -> asyncio.Task[ClickOutcome]:
        """Schedule ``log(request)``.

        ``product_lookup`` is an in-flight product id lookup for the same
        slug; when given, the click reuses it instead of resolving again.
        """
        return self.spawn(self.log(request, product_lookup))

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> list:
        """Wait for every in-flight background task (shutdown, tests)."""
        if not self._pending:
            return []
        return list(await asyncio.gather(*list(self._pending), return_exceptions=True))

    # ── Logging ─────────────────────────────────────────────────────────────

    async def log(
        self,
        request: ClickRequest,
        product_lookup: Optional[Awaitable[Optional[str]]] = None,
    ) -> ClickOutcome:
        try:
            return await self._log(request, product_lookup)
        except Exception as exc:
            self.error_sink(request, exc)
            return ClickOutcome.FAILED

    async def _lookup(self, request: ClickRequest) -> Optional[EntityRef]:
        if request.channel is Channel.AFFILIATE_REFERRAL:
            return await self.backend.lookup_affiliate_by_code(request.code)
        return await self.backend.lookup_campaign_by_code(request.code)

    async def _log(
        self,
        request: ClickRequest,
        product_lookup: Optional[Awaitable[Optional[str]]],
    ) -> ClickOutcome:
        label = _LABELS[request.channel]
        entity = await self._lookup(request)
        if entity is None or not entity.active:
            logger.warning("[%s] Invalid or inactive code: %s", label, request.code)
            return ClickOutcome.UNKNOWN_ENTITY

        product_id = await self._product_id(request, product_lookup)

        event = ClickEvent(
            entity_id=entity.id,
            landing_url=request.landing_url,
            referrer=request.referrer,
            user_agent=request.user_agent,
            product_id=product_id,
            user_id=request.user_id,
        )
        if request.channel is Channel.AFFILIATE_REFERRAL:
            await self.backend.insert_affiliate_click(event)
            await self._after_affiliate_click(entity, request)
        else:
            await self.backend.insert_campaign_click(event)

        logger.info(
            "[%s] Click logged for: %s", label, request.code,
            extra={"channel": request.channel.value, "code": request.code, "entity_id": entity.id},
        )
        return ClickOutcome.LOGGED

    async def _product_id(
        self,
        request: ClickRequest,
        product_lookup: Optional[Awaitable[Optional[str]]],
    ) -> Optional[str]:
        """Resolved product id or None. A failed lookup never costs the click."""
        try:
            if product_lookup is not None:
                return await product_lookup
            if request.product_slug:
                return await self.resolver.resolve(request.product_slug)
        except Exception:
            logger.warning(
                "[%s] Product lookup failed for %s, logging click without it",
                _LABELS[request.channel], request.product_slug, exc_info=True,
            )
        return None

    async def _after_affiliate_click(self, affiliate: EntityRef, request: ClickRequest) -> None:
        """Counter + profile link. The click row is already in, so these only warn."""
        try:
            await self.backend.increment_affiliate_clicks(affiliate.id)
        except Exception:
            logger.warning("[Affiliate] Could not bump click count for %s", request.code, exc_info=True)
        if not request.user_id:
            return
        try:
            await self.backend.link_user_to_affiliate(request.user_id, affiliate.id)
        except Exception:
            logger.warning("[Affiliate] Could not link user %s to %s", request.user_id, request.code, exc_info=True)
