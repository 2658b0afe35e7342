"""
Record host lifecycle.

This module manages RecordHosts and the domains they serve:
- HostLocator: domain -> serving host, cached under "{domain}:mappedHost"
- HostLifecycleManager: register hosts, add and remove domains, remove hosts

Every mutation touches the record store first and mirrors into the graph
only after the remote side succeeded.

Invariants:
    - Only a MANAGER of a host may add domains to it or remove it
    - Only the OWNER of a domain may remove it
    - Removing a host deletes every record and domain remotely before the
      graph cascade; any remote failure leaves the graph untouched
    - A registered host's existing records are mirrored, so the graph
      matches the store from the start
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from ..authority.resolver import Tier
from ..cache.base import mapped_host_key
from ..errors import (
    AclError,
    CacheError,
    Diverged,
    DuplicateName,
    NotFoundError,
    RemoteStoreError,
    Unauthorized,
)
from ..graph.types import GraphRecord, HostNode, NodeKind, host_key, record_key, validate_node

if TYPE_CHECKING:
    from ..authority.resolver import AuthorityResolver
    from ..cache.base import AuthorityCache
    from ..graph.store import EntityGraph
    from ..identity import Caller
    from ..remote.base import RecordStore

logger = logging.getLogger(__name__)


class HostLocator:
    """Finds the host serving a domain, with a TTL cache in front of the graph."""

    def __init__(self, graph: EntityGraph, cache: AuthorityCache, ttl_seconds: int = 300) -> None:
        self.graph = graph
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def host_for_domain(self, domain: str) -> HostNode:
        """Return the host serving domain.

        Raises:
            NotFoundError: If no host serves the domain
        """
        key = mapped_host_key(domain)
        try:
            raw = await self.cache.get(key)
            if raw is not None:
                await self.cache.refresh_expiry(key, self.ttl_seconds)
                return HostNode.from_cache(json.loads(raw))
        except CacheError as e:
            logger.warning(f"Host cache read failed, using graph: {e}")

        host = await self.graph.host_for_domain(domain)
        if host is None:
            raise NotFoundError(NodeKind.DOMAIN.value, domain)

        try:
            await self.cache.set_with_expiry(key, json.dumps(host.to_cache()), self.ttl_seconds)
        except CacheError as e:
            logger.warning(f"Host cache write failed: {e}")
        return host

    async def evict(self, *domains: str) -> None:
        if not domains:
            return
        try:
            await self.cache.delete(*(mapped_host_key(domain) for domain in domains))
        except CacheError as e:
            logger.error(f"Failed to evict host cache: {e}", extra={"domains": list(domains)})


@dataclass
class HostSummary:
    """A host visible to a caller, with the caller's tier over it."""

    name: str
    tier: Tier
    domains: list[str] = field(default_factory=list)


class HostLifecycleManager:
    """Registers and removes hosts and the domains they serve.

    Example:
        >>> manager = HostLifecycleManager(graph, store, resolver, locator)
        >>> await manager.register_host(caller, "10.0.0.1", 8080, "pdns", "secret")
        >>> await manager.add_domain(caller, "10.0.0.1:8080", "acme.io")
    """

    def __init__(
        self,
        graph: EntityGraph,
        store: RecordStore,
        resolver: AuthorityResolver,
        locator: HostLocator,
        timeout: Optional[float] = None,
    ) -> None:
        self.graph = graph
        self.store = store
        self.resolver = resolver
        self.locator = locator
        self.timeout = timeout

    async def register_host(
        self,
        caller: Caller,
        address: str,
        port: int,
        store_username: str,
        store_password: str,
        timeout: Optional[float] = None,
    ) -> HostNode:
        """Register a record host administered by the calling organization.

        The host's domains and their records are read from the store and
        mirrored into the graph in one transaction, each domain owned by
        the caller.

        Raises:
            Unauthorized: If the caller is not an organization
            ValidationError: If the address or credentials are invalid
            DuplicateName: If the host or one of its domains exists
            RemoteStoreError: If the store cannot be listed
        """
        if not caller.is_organization:
            raise Unauthorized("Only organizations can register servers", caller=caller.name)
        organization = caller.name

        name = host_key(address, port)
        validate_node(
            NodeKind.RECORD_HOST,
            {"name": name, "store_username": store_username, "store_password": store_password},
        )
        if await self.graph.node_exists(NodeKind.RECORD_HOST, name):
            raise DuplicateName(NodeKind.RECORD_HOST.value, name)

        deadline = timeout if timeout is not None else self.timeout
        host = HostNode(name=name, store_username=store_username, store_password=store_password)

        domains: dict[str, list[GraphRecord]] = {}
        for domain in await self.store.list_domains(host, token=caller.token, timeout=deadline):
            records = await self.store.list_records(host, domain, token=caller.token, timeout=deadline)
            domains[domain] = [
                GraphRecord(key=record_key(r.name, r.id), type=r.type, content=r.content)
                for r in records
            ]

        await self.graph.import_host(host, organization, domains)
        for domain in domains:
            await self.resolver.invalidate(organization, domain)
        await self.locator.evict(*domains)

        logger.info(
            "Registered host",
            extra={"host": name, "organization": organization, "domains": len(domains)},
        )
        return host

    async def add_domain(
        self, caller: Caller, host: str, domain: str, timeout: Optional[float] = None
    ) -> None:
        """Create a domain on a host the caller manages.

        Raises:
            Unauthorized: If the caller is not MANAGER of the host
            ValidationError / DuplicateName: If the domain name is invalid or taken
            RemoteStoreError: If the store rejects the domain
            Diverged: If the graph mirror fails after the remote creation
        """
        grant = await self.resolver.require_host(caller, host, Tier.MANAGER)
        validate_node(NodeKind.DOMAIN, {"name": domain})
        if await self.graph.node_exists(NodeKind.DOMAIN, domain):
            raise DuplicateName(NodeKind.DOMAIN.value, domain)

        host_node = await self.graph.get_host(host)
        if host_node is None:
            raise NotFoundError(NodeKind.RECORD_HOST.value, host)

        deadline = timeout if timeout is not None else self.timeout
        await self.store.add_domain(host_node, domain, token=caller.token, timeout=deadline)

        # The store seeds the new zone (SOA, NS); those records are mirrored too.
        try:
            seeded = await self.store.list_records(
                host_node, domain, token=caller.token, timeout=deadline
            )
            records = [
                GraphRecord(key=record_key(r.name, r.id), type=r.type, content=r.content)
                for r in seeded
            ]
            await self.graph.attach_domain(host, domain, grant.organization, records)
        except AclError as e:
            logger.error("Domain creation diverged", extra={"host": host, "domain": domain})
            raise Diverged(domain, "add_domain", cause=e) from e

        await self.resolver.invalidate(grant.organization, domain)
        await self.locator.evict(domain)
        logger.info("Added domain", extra={"host": host, "domain": domain})

    async def _remove_remote_domain(
        self, caller: Caller, host: HostNode, domain: str, deadline: Optional[float]
    ) -> int:
        records = await self.store.list_records(host, domain, token=caller.token, timeout=deadline)
        for record in records:
            await self.store.remove_record(host, domain, record, token=caller.token, timeout=deadline)
        await self.store.remove_domain(host, domain, token=caller.token, timeout=deadline)
        return len(records)

    async def _evict_domain(self, domain: str, owner: Optional[str], delegatees: list[str]) -> None:
        for organization in filter(None, [owner, *delegatees]):
            await self.resolver.invalidate(organization, domain)
        await self.locator.evict(domain)

    async def remove_domain(self, caller: Caller, domain: str, timeout: Optional[float] = None) -> int:
        """Remove a domain and its records from the store, then from the graph.

        Returns:
            Number of records removed

        Raises:
            Unauthorized: If the caller is not OWNER of the domain
            RemoteStoreError: If any remote deletion fails (graph untouched)
            Diverged: If the graph cascade fails after the remote deletion
        """
        await self.resolver.require_domain(caller, domain, Tier.OWNER)
        host = await self.locator.host_for_domain(domain)
        deadline = timeout if timeout is not None else self.timeout

        removed = await self._remove_remote_domain(caller, host, domain, deadline)

        owner = await self.graph.domain_owner(domain)
        delegatees = [organization for organization, _ in await self.graph.delegatees(domain)]
        try:
            await self.graph.remove_domain(domain)
        except AclError as e:
            logger.error("Domain removal diverged", extra={"domain": domain, "error": str(e)})
            raise Diverged(domain, "remove_domain", cause=e) from e

        await self._evict_domain(domain, owner, delegatees)
        logger.info("Removed domain", extra={"domain": domain, "records": removed})
        return removed

    async def remove_host(self, caller: Caller, host: str, timeout: Optional[float] = None) -> list[str]:
        """Remove a host, every domain it serves and every record they contain.

        All remote deletions run first; if any fails the graph is left as
        it was and the error propagates.

        Returns:
            Names of the removed domains

        Raises:
            Unauthorized: If the caller is not MANAGER of the host
            RemoteStoreError: If any remote deletion fails
            Diverged: If the graph cascade fails after the remote deletions
        """
        await self.resolver.require_host(caller, host, Tier.MANAGER)
        host_node = await self.graph.get_host(host)
        if host_node is None:
            raise NotFoundError(NodeKind.RECORD_HOST.value, host)
        deadline = timeout if timeout is not None else self.timeout

        domains = await self.graph.host_domains(host)
        for domain in domains:
            try:
                await self._remove_remote_domain(caller, host_node, domain, deadline)
            except RemoteStoreError:
                logger.warning(
                    "Host removal aborted by record store failure",
                    extra={"host": host, "domain": domain},
                )
                raise

        affected = {
            domain: (
                await self.graph.domain_owner(domain),
                [organization for organization, _ in await self.graph.delegatees(domain)],
            )
            for domain in domains
        }
        try:
            await self.graph.remove_host(host)
        except AclError as e:
            logger.error("Host removal diverged", extra={"host": host, "error": str(e)})
            raise Diverged(host, "remove_host", records=domains, cause=e) from e

        for domain, (owner, delegatees) in affected.items():
            await self._evict_domain(domain, owner, delegatees)
        logger.info("Removed host", extra={"host": host, "domains": len(domains)})
        return domains

    async def list_hosts(self, caller: Caller) -> list[HostSummary]:
        """Hosts the caller manages, then hosts reachable through delegations."""
        organizations = (
            [caller.name]
            if caller.is_organization
            else sorted(await self.graph.administered_organizations(caller.name))
        )
        summaries: dict[str, HostSummary] = {}
        for organization in organizations:
            for host in await self.graph.administered_hosts(organization):
                summaries[host] = HostSummary(
                    name=host, tier=Tier.MANAGER, domains=await self.graph.host_domains(host)
                )
        for organization in organizations:
            for host in await self.graph.delegated_hosts(organization):
                if host in summaries:
                    continue
                summaries[host] = HostSummary(
                    name=host,
                    tier=Tier.DELEGATEE,
                    domains=await self.graph.delegated_domains_on_host(organization, host),
                )
        return [summaries[name] for name in sorted(summaries)]

    async def list_domains(self, caller: Caller, host: str) -> list[str]:
        """Domains of a host visible to the caller.

        Raises:
            Unauthorized: If the caller is neither MANAGER nor DELEGATEE of the host
        """
        grant = await self.resolver.require_host(caller, host, Tier.MANAGER, Tier.DELEGATEE)
        if grant.tier == Tier.MANAGER:
            return await self.graph.host_domains(host)
        return await self.graph.delegated_domains_on_host(grant.organization, host)
