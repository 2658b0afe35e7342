"""
In-memory record store for testing.

This module provides a fully functional RecordStore backend for:
- Unit tests
- Integration tests
- Local development without a running record store

Every call is appended to a call log, and failures can be injected per
operation (optionally restricted to one record name or domain) to exercise
the partial-failure paths of the synchronizer and lifecycle managers.

Invariants:
    - All data is lost on process exit
    - Record ids are unique across all hosts and never reused
    - Creating an identical (name, type, content) record raises DuplicateEntryError
    - add_domain seeds the new zone with an SOA and an NS record
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..errors import DuplicateEntryError, RemoteStoreError
from ..graph.types import HostNode
from .base import RecordInput, RemoteRecord


@dataclass
class StoreCall:
    """One recorded call against the store."""

    operation: str
    host: str
    domain: Optional[str] = None
    target: Optional[str] = None


@dataclass
class _Failure:
    operation: str
    match: Optional[str]
    error: RemoteStoreError
    remaining: Optional[int]


@dataclass
class _HostState:
    domains: Dict[str, Dict[int, RemoteRecord]] = field(default_factory=dict)


class InMemoryRecordStore:
    """In-memory implementation of RecordStore.

    Example:
        >>> store = InMemoryRecordStore()
        >>> store.seed_domain("10.0.0.1:8080", "acme.io")
        >>> store.inject_failure("remove_record", match="www.acme.io")
    """

    def __init__(self) -> None:
        self._hosts: Dict[str, _HostState] = {}
        self._ids = itertools.count(1)
        self._failures: List[_Failure] = []
        self._lock = asyncio.Lock()
        self.calls: List[StoreCall] = []

    # Test helpers

    def seed_domain(self, host: str, domain: str) -> None:
        self._hosts.setdefault(host, _HostState()).domains.setdefault(domain, {})

    def seed_record(
        self, host: str, domain: str, name: str, type: str, content: str, ttl: int = 3600
    ) -> RemoteRecord:
        self.seed_domain(host, domain)
        record = RemoteRecord(id=next(self._ids), name=name, type=type, content=content, ttl=ttl)
        self._hosts[host].domains[domain][record.id] = record
        return record

    def records(self, host: str, domain: str) -> List[RemoteRecord]:
        state = self._hosts.get(host)
        if state is None or domain not in state.domains:
            return []
        return sorted(state.domains[domain].values(), key=lambda r: r.id)

    def domains(self, host: str) -> List[str]:
        state = self._hosts.get(host)
        return sorted(state.domains) if state else []

    def inject_failure(
        self,
        operation: str,
        match: Optional[str] = None,
        error: Optional[RemoteStoreError] = None,
        times: Optional[int] = None,
    ) -> None:
        """Make calls to operation fail.

        Args:
            operation: Protocol method name (e.g. "remove_record")
            match: Only fail calls targeting this record name or domain
            error: Error to raise (RemoteStoreError by default)
            times: Number of failing calls, unlimited when None
        """
        self._failures.append(
            _Failure(
                operation=operation,
                match=match,
                error=error or RemoteStoreError(f"Injected {operation} failure", operation=operation),
                remaining=times,
            )
        )

    def clear_failures(self) -> None:
        self._failures.clear()

    def calls_to(self, operation: str) -> List[StoreCall]:
        return [call for call in self.calls if call.operation == operation]

    # Protocol implementation

    def _record_call(
        self, operation: str, host: HostNode, domain: Optional[str], target: Optional[str]
    ) -> None:
        self.calls.append(StoreCall(operation=operation, host=host.name, domain=domain, target=target))
        for failure in self._failures:
            if failure.operation != operation:
                continue
            if failure.match is not None and failure.match not in (domain, target):
                continue
            if failure.remaining is not None:
                if failure.remaining <= 0:
                    continue
                failure.remaining -= 1
            raise failure.error

    def _domain(self, host: HostNode, domain: str, operation: str) -> Dict[int, RemoteRecord]:
        state = self._hosts.get(host.name)
        if state is None or domain not in state.domains:
            raise RemoteStoreError(
                f"Unknown domain {domain} on {host.name}", host=host.name, operation=operation
            )
        return state.domains[domain]

    async def list_domains(
        self, host: HostNode, *, token: Optional[str] = None, timeout: Optional[float] = None
    ) -> list[str]:
        async with self._lock:
            self._record_call("list_domains", host, None, None)
            return self.domains(host.name)

    async def add_domain(
        self,
        host: HostNode,
        domain: str,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        async with self._lock:
            self._record_call("add_domain", host, domain, None)
            state = self._hosts.setdefault(host.name, _HostState())
            if domain in state.domains:
                raise DuplicateEntryError(
                    f"Duplicate entry '{domain}' for key 'name_index'",
                    host=host.name,
                    operation="add_domain",
                )
            records: Dict[int, RemoteRecord] = {}
            for type, content in (
                ("SOA", f"ns1.{domain} hostmaster.{domain} 1 10800 3600 604800 3600"),
                ("NS", f"ns1.{domain}"),
            ):
                record_id = next(self._ids)
                records[record_id] = RemoteRecord(
                    id=record_id, name=domain, type=type, content=content, ttl=3600
                )
            state.domains[domain] = records

    async def remove_domain(
        self,
        host: HostNode,
        domain: str,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        async with self._lock:
            self._record_call("remove_domain", host, domain, None)
            self._domain(host, domain, "remove_domain")
            del self._hosts[host.name].domains[domain]

    async def list_records(
        self,
        host: HostNode,
        domain: str,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> list[RemoteRecord]:
        async with self._lock:
            self._record_call("list_records", host, domain, None)
            records = self._domain(host, domain, "list_records")
            return sorted(records.values(), key=lambda r: r.id)

    async def create_record(
        self,
        host: HostNode,
        domain: str,
        record: RecordInput,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> int:
        async with self._lock:
            self._record_call("create_record", host, domain, record.name)
            records = self._domain(host, domain, "create_record")
            wanted: Tuple[str, str, str] = (record.name, record.type, record.content)
            for existing in records.values():
                if (existing.name, existing.type, existing.content) == wanted:
                    raise DuplicateEntryError(
                        f"Duplicate entry '{record.name}-{record.type}' for key 'rec_name_index'",
                        host=host.name,
                        operation="create_record",
                    )
            record_id = next(self._ids)
            records[record_id] = RemoteRecord(
                id=record_id,
                name=record.name,
                type=record.type,
                content=record.content,
                ttl=record.ttl if record.ttl is not None else 3600,
            )
            return record_id

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
        async with self._lock:
            self._record_call("edit_record", host, domain, record.name)
            records = self._domain(host, domain, "edit_record")
            if record_id not in records:
                raise RemoteStoreError(
                    f"No record {record_id} in {domain}", host=host.name, operation="edit_record"
                )
            previous = records[record_id]
            records[record_id] = RemoteRecord(
                id=record_id,
                name=record.name,
                type=record.type,
                content=record.content,
                ttl=record.ttl if record.ttl is not None else previous.ttl,
            )

    async def remove_record(
        self,
        host: HostNode,
        domain: str,
        record: RemoteRecord,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        async with self._lock:
            self._record_call("remove_record", host, domain, record.name)
            records = self._domain(host, domain, "remove_record")
            for record_id, existing in list(records.items()):
                if (existing.name, existing.type, existing.content) == (
                    record.name,
                    record.type,
                    record.content,
                ):
                    del records[record_id]
