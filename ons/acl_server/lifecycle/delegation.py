"""
Delegation lifecycle.

A domain owner grants another organization bounded authority over the
domain's records with a delegates edge, and withdraws it again.

Invariants:
    - Only the OWNER of a domain may delegate or undelegate it
    - Undelegation deletes every record the delegation implies, remotely
      first; one failed remote deletion aborts with the graph untouched
    - The delegates edge and the delegated records leave the graph together
    - Cached authority of the delegatee is evicted on every change
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from ..authority.resolver import Tier
from ..errors import AclError, Diverged, NotFoundError, RemoteStoreError, ValidationError
from ..graph.types import Edge, EdgeKind, NodeKind, record_key

if TYPE_CHECKING:
    from ..authority.resolver import AuthorityResolver
    from ..graph.store import EntityGraph
    from ..identity import Caller
    from ..remote.base import RecordStore
    from .hosts import HostLocator

logger = logging.getLogger(__name__)


@dataclass
class DelegationView:
    """Owner's view of a domain's delegations.

    Attributes:
        delegatees: (organization, bound) pairs the domain delegates to
        others: Organizations that could still be delegated to
    """

    delegatees: list[tuple[str, int]] = field(default_factory=list)
    others: list[str] = field(default_factory=list)


class DelegationManager:
    """Creates and removes delegations.

    Example:
        >>> manager = DelegationManager(graph, store, resolver, locator)
        >>> await manager.delegate(Caller.organization("acme"), "acme.io", "bob", 2)
        >>> await manager.undelegate(Caller.organization("acme"), "acme.io", "bob")
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

    async def delegate(self, caller: Caller, domain: str, organization: str, bound: int) -> Edge:
        """Delegate a domain to an organization, or change the bound of an existing delegation.

        Args:
            caller: Domain owner (or a user administering it)
            domain: Domain to delegate
            organization: Delegatee organization
            bound: Maximum number of delegated records, 0 for unlimited

        Raises:
            Unauthorized: If the caller is not OWNER of the domain
            ValidationError: If the bound is negative or the target is the owner
            NotFoundError: If the delegatee organization does not exist
        """
        grant = await self.resolver.require_domain(caller, domain, Tier.OWNER)

        if isinstance(bound, bool) or not isinstance(bound, int) or bound < 0:
            raise ValidationError(
                "Invalid bound (format). Requirements: a non-negative integer; 0 means unlimited.",
                field_name="bound",
            )
        if organization == grant.organization:
            raise ValidationError(
                f"Organization {organization} already owns {domain}", field_name="organization"
            )
        if not await self.graph.node_exists(NodeKind.ORGANIZATION, organization):
            raise NotFoundError(NodeKind.ORGANIZATION.value, organization)

        edge = await self.graph.set_delegation(domain, organization, bound)
        await self.resolver.invalidate(organization, domain)

        logger.info(
            "Delegated domain",
            extra={"domain": domain, "organization": organization, "bound": bound},
        )
        return edge

    async def undelegate(
        self,
        caller: Caller,
        domain: str,
        organization: str,
        timeout: Optional[float] = None,
    ) -> list[str]:
        """Withdraw a delegation and delete the records it implies.

        Returns:
            Keys of the removed records

        Raises:
            Unauthorized: If the caller is not OWNER of the domain
            NotFoundError: If the domain does not delegate to the organization
            RemoteStoreError: If any remote deletion fails (graph untouched)
            Diverged: If the graph cascade fails after the remote deletions
        """
        await self.resolver.require_domain(caller, domain, Tier.OWNER)
        if await self.graph.get_edge(EdgeKind.DELEGATES, domain, organization) is None:
            raise NotFoundError("delegation", f"{domain}->{organization}")

        host = await self.locator.host_for_domain(domain)
        deadline = timeout if timeout is not None else self.timeout

        delegated = {record.record_id for record in await self.graph.delegated_records(domain, organization)}
        remote = await self.store.list_records(host, domain, token=caller.token, timeout=deadline)
        doomed = [record for record in remote if record.id in delegated]

        for record in doomed:
            try:
                await self.store.remove_record(host, domain, record, token=caller.token, timeout=deadline)
            except RemoteStoreError:
                logger.warning(
                    "Undelegation aborted by record store failure",
                    extra={"domain": domain, "organization": organization, "record_id": record.id},
                )
                raise

        try:
            removed = await self.graph.remove_delegation(domain, organization)
        except AclError as e:
            keys = [record_key(record.name, record.id) for record in doomed]
            logger.error(
                "Undelegation diverged",
                extra={"domain": domain, "organization": organization, "records": keys},
            )
            raise Diverged(domain, "undelegate", records=keys, cause=e) from e

        await self.resolver.invalidate(organization, domain)
        logger.info(
            "Undelegated domain",
            extra={"domain": domain, "organization": organization, "records": len(removed)},
        )
        return removed

    async def delegatees_and_others(self, caller: Caller, domain: str) -> DelegationView:
        """Delegatees of a domain and the organizations that are neither owner nor delegatee.

        Raises:
            Unauthorized: If the caller is not OWNER of the domain
        """
        grant = await self.resolver.require_domain(caller, domain, Tier.OWNER)
        delegatees = await self.graph.delegatees(domain)
        taken = {grant.organization, *(name for name, _ in delegatees)}
        others = [
            node.name
            for node in await self.graph.list_nodes(NodeKind.ORGANIZATION)
            if node.name not in taken
        ]
        return DelegationView(delegatees=delegatees, others=others)

