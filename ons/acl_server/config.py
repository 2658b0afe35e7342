"""
Configuration management for the ONS ACL server.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set explicit values for critical settings
    - Secrets (Redis URL credentials) are never logged

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep CACHE_DEFAULT_EXPIRE identical across processes sharing a cache
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


class CacheBackend(Enum):
    """Supported authority cache backends."""

    MEMORY = "memory"
    REDIS = "redis"


@dataclass(frozen=True)
class GraphConfig:
    """Entity graph (SQLite) configuration.

    Attributes:
        db_path: Path of the SQLite database file
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    db_path: str = "/var/lib/ons-acl/graph.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> GraphConfig:
        """Load configuration from environment variables."""
        return cls(
            db_path=os.getenv("GRAPH_DB_PATH", "/var/lib/ons-acl/graph.db"),
            wal_mode=os.getenv("SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class CacheConfig:
    """Authority cache configuration.

    Attributes:
        backend: memory (single process) or redis (shared)
        redis_url: Redis connection URL
        default_expire: TTL in seconds for authority and quota entries
    """

    backend: CacheBackend = CacheBackend.MEMORY
    redis_url: str = "redis://localhost:6379/0"
    default_expire: int = 300

    @classmethod
    def from_env(cls) -> CacheConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("CACHE_BACKEND", "memory").lower()
        try:
            backend = CacheBackend(backend_str)
        except ValueError:
            raise ValueError(f"Invalid CACHE_BACKEND '{backend_str}'. Must be one of: memory, redis")

        return cls(
            backend=backend,
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            default_expire=int(os.getenv("CACHE_DEFAULT_EXPIRE", "300")),
        )


@dataclass(frozen=True)
class RecordStoreConfig:
    """External record store client configuration.

    Attributes:
        scheme: URL scheme used to reach a RecordHost (http, https)
        timeout: Default per-call deadline in seconds
    """

    scheme: str = "http"
    timeout: float = 10.0

    @classmethod
    def from_env(cls) -> RecordStoreConfig:
        """Load configuration from environment variables."""
        return cls(
            scheme=os.getenv("RECORD_STORE_SCHEME", "http"),
            timeout=float(os.getenv("RECORD_STORE_TIMEOUT", "10.0")),
        )


@dataclass(frozen=True)
class IdentityConfig:
    """Token service configuration.

    Attributes:
        auth_url: Base URL of the token service
        timeout: Deadline in seconds for token lookups
    """

    auth_url: str = "http://localhost:3000"
    timeout: float = 5.0

    @classmethod
    def from_env(cls) -> IdentityConfig:
        """Load configuration from environment variables."""
        return cls(
            auth_url=os.getenv("AUTH_URL", "http://localhost:3000"),
            timeout=float(os.getenv("AUTH_TIMEOUT", "5.0")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        graph: Entity graph configuration
        cache: Authority cache configuration
        record_store: External record store client configuration
        identity: Token service configuration
        observability: Logging configuration
    """

    graph: GraphConfig = field(default_factory=GraphConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    record_store: RecordStoreConfig = field(default_factory=RecordStoreConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        config = cls(
            graph=GraphConfig.from_env(),
            cache=CacheConfig.from_env(),
            record_store=RecordStoreConfig.from_env(),
            identity=IdentityConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.cache.backend == CacheBackend.REDIS and not self.cache.redis_url:
            raise ValueError("REDIS_URL is required when CACHE_BACKEND=redis")

        if self.cache.default_expire <= 0:
            raise ValueError("CACHE_DEFAULT_EXPIRE must be a positive number of seconds")

        if self.record_store.scheme not in ("http", "https"):
            raise ValueError(
                f"Invalid RECORD_STORE_SCHEME '{self.record_store.scheme}'. Must be http or https"
            )

        if self.record_store.timeout <= 0:
            raise ValueError("RECORD_STORE_TIMEOUT must be positive")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be json or text"
            )

        db_dir = Path(self.graph.db_path).parent
        if not db_dir.exists():
            logger.warning(
                f"Graph directory does not exist: {db_dir}. It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "graph_db_path": self.graph.db_path,
                "cache_backend": self.cache.backend.value,
                "cache_default_expire": self.cache.default_expire,
                "record_store_scheme": self.record_store.scheme,
                "record_store_timeout": self.record_store.timeout,
                "auth_url": self.identity.auth_url,
                "log_level": self.observability.log_level,
            },
        )
