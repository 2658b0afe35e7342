"""
ONS ACL service wiring.

Builds every component of the authority core from a ServerConfig:
- EntityGraph (SQLite)
- AuthorityCache (memory or Redis)
- RecordStore client (HTTP)
- TokenResolver (HTTP)
- AuthorityResolver, QuotaEnforcer, HostLocator
- RecordSynchronizer, DelegationManager, HostLifecycleManager, Directory

Components passed in explicitly are used as given and are not closed by
stop(); components built here are.

Invariants:
    - start() creates the graph schema before any operation runs
    - All TTL-based components share CACHE_DEFAULT_EXPIRE
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from .authority import AuthorityResolver, QuotaEnforcer
from .cache import AuthorityCache, create_cache
from .config import ServerConfig
from .directory import Directory
from .graph import EntityGraph
from .identity import Caller, HttpTokenResolver, TokenResolver, resolve_caller
from .lifecycle import DelegationManager, HostLifecycleManager, HostLocator
from .records import RecordSynchronizer
from .remote import HttpRecordStore, RecordStore

logger = logging.getLogger(__name__)


class AclService:
    """Delegated-authority service.

    Attributes:
        config: Server configuration
        graph: Entity graph store
        records: Record synchronizer
        delegations: Delegation lifecycle manager
        hosts: Host lifecycle manager
        directory: Organization directory

    Example:
        >>> service = AclService(ServerConfig.from_env())
        >>> await service.start()
        >>> caller = await service.authenticate(token)
        >>> await service.records.create_record(caller, "acme.io", record)
        >>> await service.stop()
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        *,
        graph: Optional[EntityGraph] = None,
        cache: Optional[AuthorityCache] = None,
        store: Optional[RecordStore] = None,
        tokens: Optional[TokenResolver] = None,
    ) -> None:
        """Initialize the service.

        Args:
            config: Optional configuration (loaded from env if not provided)
            graph: Graph store to use instead of the configured one
            cache: Cache to use instead of the configured one
            store: Record store client to use instead of the HTTP client
            tokens: Token resolver to use instead of the HTTP resolver
        """
        self.config = config or ServerConfig.from_env()
        self._owned: list[Any] = []

        self.graph = graph if graph is not None else EntityGraph(
            self.config.graph.db_path,
            wal_mode=self.config.graph.wal_mode,
            busy_timeout_ms=self.config.graph.busy_timeout_ms,
        )
        self.cache = cache if cache is not None else create_cache(self.config.cache)

        if store is None:
            store = HttpRecordStore(
                scheme=self.config.record_store.scheme,
                timeout=self.config.record_store.timeout,
            )
            self._owned.append(store)
        self.store = store

        if tokens is None:
            tokens = HttpTokenResolver(
                self.config.identity.auth_url,
                timeout=self.config.identity.timeout,
            )
            self._owned.append(tokens)
        self.tokens = tokens

        ttl = self.config.cache.default_expire
        timeout = self.config.record_store.timeout
        self.resolver = AuthorityResolver(self.graph, self.cache, ttl_seconds=ttl)
        self.quota = QuotaEnforcer(self.graph, self.cache, ttl_seconds=ttl)
        self.locator = HostLocator(self.graph, self.cache, ttl_seconds=ttl)
        self.records = RecordSynchronizer(
            self.graph, self.store, self.resolver, self.quota, self.locator, timeout=timeout
        )
        self.delegations = DelegationManager(
            self.graph, self.store, self.resolver, self.locator, timeout=timeout
        )
        self.hosts = HostLifecycleManager(
            self.graph, self.store, self.resolver, self.locator, timeout=timeout
        )
        self.directory = Directory(self.graph)
        self._running = False

    async def start(self) -> None:
        """Create the graph schema and connect the cache."""
        if self._running:
            logger.warning("Service already running")
            return

        logger.info("Starting ONS ACL service")
        self.config.log_config()
        await self.graph.initialize()
        await self.cache.connect()
        self._running = True
        logger.info("ONS ACL service started")

    async def stop(self) -> None:
        """Release the cache and the clients built by this service."""
        if not self._running:
            return

        logger.info("Stopping ONS ACL service")
        await self.cache.close()
        for component in self._owned:
            await component.close()
        self._running = False
        logger.info("ONS ACL service stopped")

    async def authenticate(self, token: str) -> Caller:
        """Resolve a bearer token to a Caller for this request."""
        return await resolve_caller(token, self.tokens, self.graph)

    async def __aenter__(self) -> AclService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
