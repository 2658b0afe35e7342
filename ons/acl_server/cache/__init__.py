"""
Authority cache backends.

Available backends:
- InMemoryCache: single process, for tests and local development
- RedisCache: shared between processes
"""

from .base import AuthorityCache, authority_key, create_cache, mapped_host_key, quota_key
from .memory import InMemoryCache

__all__ = [
    "AuthorityCache",
    "InMemoryCache",
    "authority_key",
    "create_cache",
    "mapped_host_key",
    "quota_key",
]
