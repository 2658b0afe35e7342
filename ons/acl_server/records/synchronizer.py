"""
Record synchronizer.

Every record mutation follows the same protocol:

    1. Resolve the caller's authority tier (Unauthorized on NONE)
    2. Delegatee creations consult the quota enforcer (QuotaExceeded)
    3. Canonicalize and validate record names against the domain
    4. Mutate the external record store
    5. Mirror the change into the graph (contains / delegateOf)
    6. A record store failure aborts before the graph is touched
    7. A graph failure after a remote success raises Diverged

Invariants:
    - Validation and authority errors are raised before any remote call
    - The graph is never mutated ahead of the record store
    - Duplicate-entry errors on creation count as already satisfied
    - Diverged is logged at ERROR and never retried or rolled back
    - Edits are validated all-or-nothing by id but applied one call per
      changed record, so a failure can leave earlier edits applied

How to change safely:
    - Keep remote-then-graph ordering in every new operation
    - Anything raised between steps 4 and 5 must become Diverged
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from ..authority.resolver import Tier
from ..errors import (
    AclError,
    Diverged,
    DuplicateEntryError,
    Unauthorized,
    UnmatchedRecordId,
    ValidationError,
)
from ..graph.types import NodeKind, record_key, validate_property
from .canonical import canonicalize_record

if TYPE_CHECKING:
    from ..authority.quota import QuotaEnforcer
    from ..authority.resolver import AuthorityGrant, AuthorityResolver
    from ..graph.store import EntityGraph
    from ..graph.types import HostNode
    from ..identity import Caller
    from ..lifecycle.hosts import HostLocator
    from ..remote.base import RecordInput, RecordStore, RemoteRecord

logger = logging.getLogger(__name__)


@dataclass
class RecordOutcome:
    """Result of one record creation.

    Attributes:
        name: Canonical record name
        record_id: Id assigned by the store (None when it already existed)
        created: False when the store already held an identical record
    """

    name: str
    record_id: Optional[int]
    created: bool


@dataclass
class RecordListing:
    """Records of a domain as seen by one caller.

    Owners see every record in `records`. Delegatees see the records they
    hold a delegation mark for in `delegated_records` and the rest,
    read-only, in `records`.
    """

    owner: bool
    records: list[RemoteRecord] = field(default_factory=list)
    delegated_records: list[RemoteRecord] = field(default_factory=list)


@dataclass
class DivergenceReport:
    """Record ids present on only one side of a domain."""

    domain: str
    missing_in_graph: list[int] = field(default_factory=list)
    missing_in_store: list[int] = field(default_factory=list)

    @property
    def diverged(self) -> bool:
        return bool(self.missing_in_graph or self.missing_in_store)


def _validate(record: RecordInput) -> None:
    validate_property(NodeKind.RECORD, "name", record.name)
    validate_property(NodeKind.RECORD, "type", record.type)
    validate_property(NodeKind.RECORD, "content", record.content)


class RecordSynchronizer:
    """Applies record mutations to the record store and mirrors them in the graph.

    Example:
        >>> sync = RecordSynchronizer(graph, store, resolver, quota, locator)
        >>> await sync.create_record(caller, "acme.io", RecordInput(name="www", type="A", content="1.2.3.4"))
        RecordOutcome(name='www.acme.io', record_id=7, created=True)
    """

    def __init__(
        self,
        graph: EntityGraph,
        store: RecordStore,
        resolver: AuthorityResolver,
        quota: QuotaEnforcer,
        locator: HostLocator,
        timeout: Optional[float] = None,
    ) -> None:
        self.graph = graph
        self.store = store
        self.resolver = resolver
        self.quota = quota
        self.locator = locator
        self.timeout = timeout

    def _deadline(self, timeout: Optional[float]) -> Optional[float]:
        return timeout if timeout is not None else self.timeout

    async def _delegated_ids(self, grant: AuthorityGrant, domain: str) -> set[int]:
        records = await self.graph.delegated_records(domain, grant.organization)
        return {record.record_id for record in records}

    def _diverged(self, domain: str, operation: str, keys: list[str], error: Exception) -> Diverged:
        logger.error(
            "Record store and graph diverged",
            extra={"domain": domain, "operation": operation, "records": keys, "error": str(error)},
        )
        return Diverged(domain, operation, records=keys, cause=error)

    async def _create_one(
        self,
        caller: Caller,
        grant: AuthorityGrant,
        host: HostNode,
        domain: str,
        record: RecordInput,
        deadline: Optional[float],
    ) -> RecordOutcome:
        if grant.tier == Tier.DELEGATEE:
            await self.quota.check(grant.organization, domain)

        try:
            record_id = await self.store.create_record(
                host, domain, record, token=caller.token, timeout=deadline
            )
        except DuplicateEntryError:
            logger.info(
                "Record already exists in record store",
                extra={"domain": domain, "record": record.name},
            )
            return RecordOutcome(name=record.name, record_id=None, created=False)

        key = record_key(record.name, record_id)
        delegatee = grant.organization if grant.tier == Tier.DELEGATEE else None
        try:
            await self.graph.create_record(domain, key, record.type, record.content, delegatee=delegatee)
        except AclError as e:
            raise self._diverged(domain, "create_record", [key], e) from e

        logger.info(
            "Created record",
            extra={"domain": domain, "record": key, "delegatee": delegatee},
        )
        return RecordOutcome(name=record.name, record_id=record_id, created=True)

    async def create_records(
        self,
        caller: Caller,
        domain: str,
        records: list[RecordInput],
        timeout: Optional[float] = None,
    ) -> list[RecordOutcome]:
        """Create records one by one.

        Every record is canonicalized and validated before the first remote
        call. A delegatee's quota is checked before each creation, so a batch
        can stop part way with QuotaExceeded.

        Raises:
            Unauthorized: If the caller has no authority over the domain
            ValidationError: If a record violates a property constraint
            QuotaExceeded: If a delegatee reached its bound
            RemoteStoreError: If the store rejects a record
            Diverged: If the graph mirror fails after the store accepted a record
        """
        grant = await self.resolver.require_domain(caller, domain)
        canonical = [canonicalize_record(domain, record) for record in records]
        for record in canonical:
            _validate(record)

        host = await self.locator.host_for_domain(domain)
        deadline = self._deadline(timeout)
        return [
            await self._create_one(caller, grant, host, domain, record, deadline)
            for record in canonical
        ]

    async def create_record(
        self,
        caller: Caller,
        domain: str,
        record: RecordInput,
        timeout: Optional[float] = None,
    ) -> RecordOutcome:
        """Create a single record. See create_records."""
        outcomes = await self.create_records(caller, domain, [record], timeout=timeout)
        return outcomes[0]

    async def edit_records(
        self,
        caller: Caller,
        domain: str,
        records: list[RecordInput],
        timeout: Optional[float] = None,
    ) -> list[int]:
        """Apply edits, matched to store records by numeric id.

        Returns:
            Ids of the records that changed (empty when nothing changed, in
            which case no remote call is made)

        Raises:
            ValidationError: If a record has no id or violates a constraint
            UnmatchedRecordId: If any id is absent from the store
            Unauthorized: If a delegatee edits a record it holds no mark for
            RemoteStoreError: If an edit call fails (earlier edits stay applied)
            Diverged: If the graph mirror fails after an edit call succeeded
        """
        grant = await self.resolver.require_domain(caller, domain)
        canonical = [canonicalize_record(domain, record) for record in records]
        for record in canonical:
            if record.id is None:
                raise ValidationError("Missing id (required).", field_name="id")
            _validate(record)

        host = await self.locator.host_for_domain(domain)
        deadline = self._deadline(timeout)
        current = {
            remote.id: remote
            for remote in await self.store.list_records(host, domain, token=caller.token, timeout=deadline)
        }

        unmatched = [record.id for record in canonical if record.id not in current]
        if unmatched:
            raise UnmatchedRecordId(domain, unmatched)

        if grant.tier == Tier.DELEGATEE:
            allowed = await self._delegated_ids(grant, domain)
            foreign = [record.id for record in canonical if record.id not in allowed]
            if foreign:
                raise Unauthorized(
                    f"Records {foreign} of {domain} are not delegated to {grant.organization}",
                    caller=caller.name,
                    target=domain,
                )

        changed = [record for record in canonical if current[record.id].differs_from(record)]
        if not changed:
            logger.debug("No record changed", extra={"domain": domain})
            return []

        edited: list[int] = []
        for record in changed:
            try:
                await self.store.edit_record(
                    host, domain, record.id, record, token=caller.token, timeout=deadline
                )
            except DuplicateEntryError:
                logger.info(
                    "Edited record already exists in record store",
                    extra={"domain": domain, "record_id": record.id},
                )
                continue

            key = record_key(record.name, record.id)
            try:
                await self.graph.update_record(domain, record.id, key, record.type, record.content)
            except AclError as e:
                raise self._diverged(domain, "edit_records", [key], e) from e
            edited.append(record.id)

        logger.info("Edited records", extra={"domain": domain, "record_ids": edited})
        return edited

    async def remove_record(
        self,
        caller: Caller,
        domain: str,
        record_id: int,
        timeout: Optional[float] = None,
    ) -> None:
        """Remove one record by its store id.

        Raises:
            UnmatchedRecordId: If the id is absent from the store
            Unauthorized: If a delegatee removes a record it holds no mark for
            RemoteStoreError: If the store deletion fails (graph untouched)
            Diverged: If the graph deletion fails after the store deletion
        """
        grant = await self.resolver.require_domain(caller, domain)
        host = await self.locator.host_for_domain(domain)
        deadline = self._deadline(timeout)

        remote = {
            record.id: record
            for record in await self.store.list_records(host, domain, token=caller.token, timeout=deadline)
        }
        if record_id not in remote:
            raise UnmatchedRecordId(domain, [record_id])

        if grant.tier == Tier.DELEGATEE and record_id not in await self._delegated_ids(grant, domain):
            raise Unauthorized(
                f"Record {record_id} of {domain} is not delegated to {grant.organization}",
                caller=caller.name,
                target=domain,
            )

        await self.store.remove_record(host, domain, remote[record_id], token=caller.token, timeout=deadline)

        key = record_key(remote[record_id].name, record_id)
        try:
            mirrored = await self.graph.find_record_by_id(domain, record_id)
            if mirrored is None:
                logger.warning(
                    "Removed record was not mirrored in graph",
                    extra={"domain": domain, "record": key},
                )
                return
            await self.graph.delete_record(domain, mirrored.key)
        except AclError as e:
            raise self._diverged(domain, "remove_record", [key], e) from e

        logger.info("Removed record", extra={"domain": domain, "record": key})

    async def remove_all_records(
        self,
        caller: Caller,
        domain: str,
        timeout: Optional[float] = None,
    ) -> int:
        """Remove every record of a domain (owner only).

        All store deletions run before the graph cascade; the first failing
        deletion aborts the operation with the graph untouched.

        Returns:
            Number of records removed

        Raises:
            Unauthorized: If the caller is not OWNER of the domain
            RemoteStoreError: If any store deletion fails
            Diverged: If the graph cascade fails after the store deletions
        """
        await self.resolver.require_domain(caller, domain, Tier.OWNER)
        host = await self.locator.host_for_domain(domain)
        deadline = self._deadline(timeout)

        records = await self.store.list_records(host, domain, token=caller.token, timeout=deadline)
        for record in records:
            await self.store.remove_record(host, domain, record, token=caller.token, timeout=deadline)

        keys = [record_key(record.name, record.id) for record in records]
        try:
            await self.graph.delete_domain_records(domain)
        except AclError as e:
            raise self._diverged(domain, "remove_all_records", keys, e) from e

        logger.info("Removed all records", extra={"domain": domain, "records": len(records)})
        return len(records)

    async def list_records(
        self,
        caller: Caller,
        domain: str,
        timeout: Optional[float] = None,
    ) -> RecordListing:
        """List the records of a domain as the caller may see them."""
        grant = await self.resolver.require_domain(caller, domain)
        host = await self.locator.host_for_domain(domain)
        records = await self.store.list_records(
            host, domain, token=caller.token, timeout=self._deadline(timeout)
        )

        if grant.tier == Tier.OWNER:
            return RecordListing(owner=True, records=records)

        delegated = await self._delegated_ids(grant, domain)
        return RecordListing(
            owner=False,
            records=[record for record in records if record.id not in delegated],
            delegated_records=[record for record in records if record.id in delegated],
        )

    async def divergence(self, domain: str, timeout: Optional[float] = None) -> DivergenceReport:
        """Compare the graph's records of a domain with the record store's.

        Read-only; divergence is reported, never repaired.
        """
        host = await self.locator.host_for_domain(domain)
        remote = await self.store.list_records(host, domain, timeout=self._deadline(timeout))
        remote_ids = {record.id for record in remote}
        graph_ids = {record.record_id for record in await self.graph.domain_records(domain)}
        return DivergenceReport(
            domain=domain,
            missing_in_graph=sorted(remote_ids - graph_ids),
            missing_in_store=sorted(graph_ids - remote_ids),
        )
