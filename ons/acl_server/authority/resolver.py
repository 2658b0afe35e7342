"""
Authority resolver.

Decides what an organization, or a user acting for the organizations it
administers, may do with a domain or a record host.

Domain tiers, strongest first:
    OWNER       owns(O -> D)
    DELEGATEE   delegates(D -> O, bound)
    NONE        neither

Host tiers:
    MANAGER     administers(O -> H)
    DELEGATEE   O is delegatee of some domain H hosts (read-only listing)
    NONE        neither

Invariants:
    - OWNER wins when both owns and delegates edges exist
    - A user's organizations are looked up on every call
    - Domain grants (including NONE) are cached under "{org}:{domain}" with a
      fixed TTL that is refreshed on every hit
    - invalidate() must run after any owns or delegates edge changes

How to change safely:
    - The cache is advisory; a stricter policy belongs in invalidate()
    - Keep grant JSON backward compatible while old entries can be alive
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from ..cache.base import authority_key, quota_key
from ..errors import CacheError, Unauthorized

if TYPE_CHECKING:
    from ..cache.base import AuthorityCache
    from ..graph.store import EntityGraph
    from ..identity import Caller

logger = logging.getLogger(__name__)


class Tier(Enum):
    OWNER = "owner"
    MANAGER = "manager"
    DELEGATEE = "delegatee"
    NONE = "none"


_RANK = {Tier.OWNER: 3, Tier.MANAGER: 3, Tier.DELEGATEE: 2, Tier.NONE: 0}


@dataclass(frozen=True)
class AuthorityGrant:
    """Outcome of an authority check.

    Attributes:
        tier: Resolved tier
        organization: Organization the tier was granted to (None for NONE)
        bound: Delegation bound for DELEGATEE on a domain, 0 meaning unlimited
    """

    tier: Tier
    organization: Optional[str] = None
    bound: Optional[int] = None

    @classmethod
    def none(cls) -> AuthorityGrant:
        return cls(tier=Tier.NONE)

    @property
    def is_none(self) -> bool:
        return self.tier == Tier.NONE

    def to_json(self) -> str:
        return json.dumps(
            {"authority": self.tier.value, "organization": self.organization, "bound": self.bound}
        )

    @classmethod
    def from_json(cls, raw: str) -> AuthorityGrant:
        data = json.loads(raw)
        return cls(
            tier=Tier(data["authority"]),
            organization=data.get("organization"),
            bound=data.get("bound"),
        )


class AuthorityResolver:
    """Resolves authority tiers from the entity graph.

    Example:
        >>> resolver = AuthorityResolver(graph, cache, ttl_seconds=300)
        >>> grant = await resolver.resolve_domain(Caller.organization("bob"), "acme.io")
        >>> grant.tier, grant.bound
        (<Tier.DELEGATEE: 'delegatee'>, 2)
    """

    def __init__(self, graph: EntityGraph, cache: AuthorityCache, ttl_seconds: int = 300) -> None:
        self.graph = graph
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def _organizations_of(self, caller: Caller) -> list[str]:
        if caller.is_organization:
            return [caller.name]
        return sorted(await self.graph.administered_organizations(caller.name))

    async def _cached_grant(self, key: str) -> Optional[AuthorityGrant]:
        try:
            raw = await self.cache.get(key)
            if raw is None:
                return None
            await self.cache.refresh_expiry(key, self.ttl_seconds)
        except CacheError as e:
            logger.warning(f"Authority cache read failed, using graph: {e}")
            return None
        return AuthorityGrant.from_json(raw)

    async def _store_grant(self, key: str, grant: AuthorityGrant) -> None:
        try:
            await self.cache.set_with_expiry(key, grant.to_json(), self.ttl_seconds)
        except CacheError as e:
            logger.warning(f"Authority cache write failed: {e}")

    async def resolve_organization_domain(self, organization: str, domain: str) -> AuthorityGrant:
        """Resolve the tier of one organization over one domain.

        Raises:
            GraphUnavailable: If the graph store cannot be reached
        """
        key = authority_key(organization, domain)
        cached = await self._cached_grant(key)
        if cached is not None:
            return cached

        owns, bound = await self.graph.domain_authority(organization, domain)
        if owns:
            grant = AuthorityGrant(tier=Tier.OWNER, organization=organization)
        elif bound is not None:
            grant = AuthorityGrant(tier=Tier.DELEGATEE, organization=organization, bound=bound)
        else:
            grant = AuthorityGrant.none()

        await self._store_grant(key, grant)
        return grant

    async def resolve_domain(self, caller: Caller, domain: str) -> AuthorityGrant:
        """Resolve the strongest tier the caller holds over a domain."""
        best = AuthorityGrant.none()
        for organization in await self._organizations_of(caller):
            grant = await self.resolve_organization_domain(organization, domain)
            if _RANK[grant.tier] > _RANK[best.tier]:
                best = grant
            if best.tier == Tier.OWNER:
                break
        return best

    async def resolve_host(self, caller: Caller, host: str) -> AuthorityGrant:
        """Resolve the strongest tier the caller holds over a record host.

        DELEGATEE on a host only permits listing the delegated domains.
        """
        best = AuthorityGrant.none()
        for organization in await self._organizations_of(caller):
            administers, delegated = await self.graph.host_authority(organization, host)
            if administers:
                return AuthorityGrant(tier=Tier.MANAGER, organization=organization)
            if delegated and best.is_none:
                best = AuthorityGrant(tier=Tier.DELEGATEE, organization=organization)
        return best

    async def require_domain(self, caller: Caller, domain: str, *tiers: Tier) -> AuthorityGrant:
        """Resolve and reject unless the tier is one of tiers (any non-NONE when empty).

        Raises:
            Unauthorized: If the caller lacks the required tier
        """
        grant = await self.resolve_domain(caller, domain)
        allowed = tiers or (Tier.OWNER, Tier.DELEGATEE)
        if grant.tier not in allowed:
            raise Unauthorized(
                f"You do not have authority to access domain: {domain}",
                caller=caller.name,
                target=domain,
            )
        return grant

    async def require_host(self, caller: Caller, host: str, *tiers: Tier) -> AuthorityGrant:
        """Resolve and reject unless the host tier is one of tiers (MANAGER when empty).

        Raises:
            Unauthorized: If the caller lacks the required tier
        """
        grant = await self.resolve_host(caller, host)
        allowed = tiers or (Tier.MANAGER,)
        if grant.tier not in allowed:
            raise Unauthorized(
                f"You do not have authority to access server: {host}",
                caller=caller.name,
                target=host,
            )
        return grant

    async def invalidate(self, organization: str, domain: str) -> None:
        """Evict the cached authority and quota entries of a pair.

        A failed eviction is logged; the stale entry expires with its TTL.
        """
        try:
            await self.cache.delete(authority_key(organization, domain), quota_key(organization, domain))
        except CacheError as e:
            logger.error(
                f"Failed to evict authority cache: {e}",
                extra={"organization": organization, "domain": domain},
            )
