"""
Error types for the ONS ACL server.

This module defines every exception raised by the authority core:
- AclError: Base exception
- Unauthenticated / Unauthorized: identity and authority failures
- QuotaExceeded: delegation bound reached
- ValidationError / DuplicateName / NotFoundError: node property problems
- UnmatchedRecordId: edit request references an unknown record id
- RemoteStoreError / DuplicateEntryError: external record store failures
- GraphUnavailable: graph store cannot be reached
- Diverged: graph mutation failed after a successful remote mutation

Invariants:
    - All errors inherit from AclError
    - Validation and authority errors are raised before any remote mutation
    - Diverged is never swallowed; operators reconcile it manually
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class AclError(Exception):
    """Base exception for all ACL server errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ACL_ERROR"
        self.details = details or {}


class Unauthenticated(AclError):
    """Caller identity could not be established.

    Raised when:
    - The token service fails or is unreachable
    - The token resolves to no principal
    - The principal is neither an organization nor a user
    """

    def __init__(self, message: str = "Unauthenticated") -> None:
        super().__init__(message, code="UNAUTHENTICATED")


class Unauthorized(AclError):
    """Authority tier is insufficient for the requested action."""

    def __init__(
        self,
        message: str,
        caller: Optional[str] = None,
        target: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="UNAUTHORIZED",
            details={"caller": caller, "target": target},
        )
        self.caller = caller
        self.target = target


class QuotaExceeded(AclError):
    """Number of delegated records reached the delegation bound."""

    def __init__(self, organization: str, domain: str, bound: int) -> None:
        super().__init__(
            f"Number of delegated records of {organization} in {domain} "
            f"reached the maximum ({bound})",
            code="QUOTA_EXCEEDED",
            details={"organization": organization, "domain": domain, "bound": bound},
        )
        self.organization = organization
        self.domain = domain
        self.bound = bound


class ValidationError(AclError):
    """A node property violates its name, format or length constraint."""

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class DuplicateName(AclError):
    """A uniqueness constraint on a node key (or on domain ownership) failed."""

    def __init__(self, kind: str, name: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"The {kind} name '{name}' is taken.",
            code="DUPLICATE_NAME",
            details={"kind": kind, "name": name},
        )
        self.kind = kind
        self.name = name


class NotFoundError(AclError):
    """Node does not exist."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(
            f"No such {kind} with name: {name}",
            code="NOT_FOUND",
            details={"kind": kind, "name": name},
        )
        self.kind = kind
        self.name = name


class UnmatchedRecordId(AclError):
    """Edit request references record ids absent from the record store."""

    def __init__(self, domain: str, record_ids: List[int]) -> None:
        super().__init__(
            f"There exist unmatched record ids for domain {domain}: {record_ids}",
            code="UNMATCHED_RECORD_ID",
            details={"domain": domain, "record_ids": record_ids},
        )
        self.domain = domain
        self.record_ids = record_ids


class RemoteStoreError(AclError):
    """External record store call failed.

    Raised when:
    - The host is unreachable or the call exceeds its deadline
    - The store answers with an error body or a non-200 status
    - The answer cannot be parsed
    """

    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="REMOTE_STORE_ERROR",
            details={"host": host, "operation": operation},
        )
        self.host = host
        self.operation = operation


class DuplicateEntryError(RemoteStoreError):
    """The record store already holds an identical entry."""


class GraphUnavailable(AclError):
    """Graph store cannot be reached."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="GRAPH_UNAVAILABLE")


class Diverged(AclError):
    """Graph mutation failed after the remote mutation succeeded.

    The external store holds the change, the graph does not. Nothing is
    rolled back; the details carry what an operator needs to reconcile.
    """

    def __init__(
        self,
        domain: str,
        operation: str,
        records: Optional[List[str]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            f"Record store and graph diverged for domain {domain} during {operation}: {cause}",
            code="DIVERGED",
            details={
                "domain": domain,
                "operation": operation,
                "records": records or [],
            },
        )
        self.domain = domain
        self.operation = operation
        self.records = records or []
        self.cause = cause


class CacheError(AclError):
    """Cache backend failed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CACHE_ERROR")
