"""
Base protocol and wire models for the external record store.

Record content lives in an independently owned record store reachable only
through a remote call interface. Every call carries the store credentials
held on the RecordHost node.

Invariants:
    - The record store is the source of truth for record content
    - Duplicate-entry failures are distinguishable (DuplicateEntryError)
    - Every call accepts a per-call deadline in seconds

How to change safely:
    - Protocol changes require updating HttpRecordStore and InMemoryRecordStore
    - Wire models must keep accepting unknown fields from the store
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from ..graph.types import HostNode


class RecordInput(BaseModel):
    """A record as submitted by a caller.

    The id is only meaningful for edits, where it names the store record
    being changed.
    """

    model_config = ConfigDict(extra="ignore")

    name: str
    type: str
    content: str
    ttl: Optional[int] = None
    id: Optional[int] = None

    def descriptor(self) -> dict[str, Any]:
        """Body sent to the store for create and edit calls."""
        body: dict[str, Any] = {"name": self.name, "type": self.type, "content": self.content}
        if self.ttl is not None:
            body["ttl"] = self.ttl
        return body


class RemoteRecord(BaseModel):
    """A record as listed by the store."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    type: str
    content: str
    ttl: Optional[int] = None

    def differs_from(self, submitted: RecordInput) -> bool:
        """Whether a submitted edit changes any field of this record."""
        return (
            self.name != submitted.name
            or self.type != submitted.type
            or self.content != submitted.content
            or (submitted.ttl is not None and self.ttl != submitted.ttl)
        )


class RemoteDomain(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str


class StoreResponse(BaseModel):
    """Envelope of every store answer: either an error or a result."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    error: Optional[str] = None
    result: Optional[str] = None
    record_id: Optional[int | str] = Field(default=None, alias="recordId")
    domains: Optional[list[RemoteDomain]] = None
    records: Optional[list[RemoteRecord]] = None


def is_duplicate_entry(message: str) -> bool:
    """Whether a store error message reports an already existing entry."""
    return message.startswith("Duplicate entry") or message.startswith("ER_DUP_ENTRY")


@runtime_checkable
class RecordStore(Protocol):
    """Protocol for external record store clients.

    Every method raises RemoteStoreError on failure (including deadline
    expiry) and DuplicateEntryError when the store reports a duplicate.
    """

    async def list_domains(
        self, host: HostNode, *, token: Optional[str] = None, timeout: Optional[float] = None
    ) -> list[str]:
        """Names of the domains a host serves."""
        ...

    async def add_domain(
        self,
        host: HostNode,
        domain: str,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        ...

    async def remove_domain(
        self,
        host: HostNode,
        domain: str,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        ...

    async def list_records(
        self,
        host: HostNode,
        domain: str,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> list[RemoteRecord]:
        ...

    async def create_record(
        self,
        host: HostNode,
        domain: str,
        record: RecordInput,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> int:
        """Create a record and return the id the store assigned."""
        ...

    async def edit_record(
        self,
        host: HostNode,
        domain: str,
        record_id: int,
        record: RecordInput,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        ...

    async def remove_record(
        self,
        host: HostNode,
        domain: str,
        record: RemoteRecord,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        ...
