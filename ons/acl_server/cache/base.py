"""
Base protocol for the authority cache.

The authority core consumes a small get/set-with-expiry capability. Entries
are advisory: a stale entry can grant authority for at most one TTL after the
graph changed, unless the writer evicts it explicitly.

Keys in use:
    "{org}:{domain}"            -> authority grant (JSON)
    "{org}:{domain}:isBounded"  -> quota verdict for unbounded delegations
    "{domain}:mappedHost"       -> host descriptor (JSON)

Invariants:
    - Values are strings; callers serialize their own payloads
    - refresh_expiry never creates an entry
    - A missing or expired key reads as None

How to change safely:
    - Protocol changes require updating every backend
    - Keep key builders here so all processes agree on the layout
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import CacheConfig


def authority_key(organization: str, domain: str) -> str:
    return f"{organization}:{domain}"


def quota_key(organization: str, domain: str) -> str:
    return f"{organization}:{domain}:isBounded"


def mapped_host_key(domain: str) -> str:
    return f"{domain}:mappedHost"


@runtime_checkable
class AuthorityCache(Protocol):
    """Protocol for cache backends.

    Lifecycle:
        1. Create instance with configuration
        2. Call connect() to establish connection
        3. Use get/set_with_expiry/refresh_expiry/delete
        4. Call close() to release resources
    """

    async def connect(self) -> None:
        """Establish connection to the backend.

        Raises:
            CacheError: If connection fails
        """
        ...

    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        ...

    async def get(self, key: str) -> Optional[str]:
        """Return the value stored under key, or None if absent or expired."""
        ...

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store value under key for ttl_seconds."""
        ...

    async def refresh_expiry(self, key: str, ttl_seconds: int) -> bool:
        """Extend the TTL of an existing key.

        Returns:
            True if the key existed, False otherwise
        """
        ...

    async def delete(self, *keys: str) -> int:
        """Remove keys.

        Returns:
            Number of keys removed
        """
        ...


def create_cache(config: CacheConfig) -> AuthorityCache:
    """Factory function to create the configured cache backend.

    Args:
        config: Cache configuration

    Returns:
        AuthorityCache implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import CacheBackend

    if config.backend == CacheBackend.MEMORY:
        from .memory import InMemoryCache

        return InMemoryCache()

    if config.backend == CacheBackend.REDIS:
        from .redis_cache import RedisCache

        return RedisCache(config.redis_url)

    raise ValueError(f"Unsupported cache backend: {config.backend}")
