"""
Delegation quota enforcer.

A delegatee organization may hold at most `bound` records under a domain,
counted as distinct records R with

    delegates(D -> O) and delegateOf(O -> R) and contains(D -> R)

A bound of 0 means unlimited; that verdict is cached under
"{org}:{domain}:isBounded" and refreshed on every hit.

Invariants:
    - EXCEEDED iff count >= bound (bound > 0)
    - Only the unbounded verdict is cached; bounded counts are always read
    - The check is advisory; concurrent creations may overshoot the bound
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from ..cache.base import quota_key
from ..errors import CacheError, QuotaExceeded

if TYPE_CHECKING:
    from ..cache.base import AuthorityCache
    from ..graph.store import EntityGraph

logger = logging.getLogger(__name__)

_UNBOUNDED = "no"


class QuotaVerdict(Enum):
    OK = "ok"
    EXCEEDED = "exceeded"


class QuotaEnforcer:
    """Compares delegated record counts with delegation bounds."""

    def __init__(self, graph: EntityGraph, cache: AuthorityCache, ttl_seconds: int = 300) -> None:
        self.graph = graph
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def is_exceeded_bound(self, organization: str, domain: str) -> QuotaVerdict:
        """Check whether the organization may create one more delegated record."""
        key = quota_key(organization, domain)
        try:
            if await self.cache.get(key) == _UNBOUNDED:
                await self.cache.refresh_expiry(key, self.ttl_seconds)
                return QuotaVerdict.OK
        except CacheError as e:
            logger.warning(f"Quota cache read failed, using graph: {e}")

        bound, count = await self.graph.delegation_usage(organization, domain)
        if bound is None:
            return QuotaVerdict.OK

        if bound == 0:
            try:
                await self.cache.set_with_expiry(key, _UNBOUNDED, self.ttl_seconds)
            except CacheError as e:
                logger.warning(f"Quota cache write failed: {e}")
            return QuotaVerdict.OK

        return QuotaVerdict.EXCEEDED if count >= bound else QuotaVerdict.OK

    async def check(self, organization: str, domain: str) -> None:
        """Raise QuotaExceeded when the organization reached its bound."""
        if await self.is_exceeded_bound(organization, domain) == QuotaVerdict.EXCEEDED:
            bound, _ = await self.graph.delegation_usage(organization, domain)
            logger.info(
                "Delegation quota reached",
                extra={"organization": organization, "domain": domain, "bound": bound},
            )
            raise QuotaExceeded(organization, domain, bound or 0)
