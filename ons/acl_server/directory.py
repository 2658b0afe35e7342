"""
Organization directory.

Manages organizations, principals (users) and the affiliations between them:
- worksFor: a principal is employed by an organization
- requestsOrg: a principal asked to administer an organization
- administersOrg: a principal acts with the organization's authority

Invariants:
    - Only the organization itself approves or revokes administrators
    - Approval replaces the pending request with administersOrg + worksFor
    - Administration is looked up per request by the authority resolver,
      so revoking takes effect on the next call
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .errors import Unauthorized
from .graph.types import EdgeKind, Node, NodeKind

if TYPE_CHECKING:
    from .graph.store import EntityGraph
    from .identity import Caller

logger = logging.getLogger(__name__)


@dataclass
class Membership:
    """Principals of an organization, grouped by affiliation."""

    employees: list[str] = field(default_factory=list)
    administrators: list[str] = field(default_factory=list)
    requests: list[str] = field(default_factory=list)
    others: list[str] = field(default_factory=list)


@dataclass
class DomainsView:
    """Domains a caller owns and domains delegated to it."""

    owned: list[str] = field(default_factory=list)
    delegated: list[tuple[str, int]] = field(default_factory=list)


class Directory:
    """Organization and principal management."""

    def __init__(self, graph: EntityGraph) -> None:
        self.graph = graph

    async def create_organization(self, name: str) -> Node:
        """Create an organization.

        Raises:
            ValidationError: If the name is invalid
            DuplicateName: If the organization exists
        """
        node = await self.graph.create_node(NodeKind.ORGANIZATION, {"name": name})
        logger.info("Created organization", extra={"organization": name})
        return node

    async def create_principal(self, name: str) -> Node:
        """Create a principal (user).

        Raises:
            ValidationError: If the name is invalid
            DuplicateName: If the principal exists
        """
        node = await self.graph.create_node(NodeKind.PRINCIPAL, {"name": name})
        logger.info("Created principal", extra={"principal": name})
        return node

    def _require_user(self, caller: Caller) -> str:
        if caller.is_organization:
            raise Unauthorized("Only users can join organizations", caller=caller.name)
        return caller.name

    def _require_organization(self, caller: Caller) -> str:
        if not caller.is_organization:
            raise Unauthorized("Only organizations can manage their members", caller=caller.name)
        return caller.name

    async def join(self, caller: Caller, organization: str) -> None:
        """Record that the calling user works for an organization."""
        principal = self._require_user(caller)
        await self.graph.create_edge(EdgeKind.WORKS_FOR, principal, organization)

    async def leave(self, caller: Caller, organization: str) -> bool:
        principal = self._require_user(caller)
        return await self.graph.delete_edge(EdgeKind.WORKS_FOR, principal, organization)

    async def request_admin(self, caller: Caller, organization: str) -> None:
        """Ask to administer an organization."""
        principal = self._require_user(caller)
        await self.graph.create_edge(EdgeKind.REQUESTS_ORG, principal, organization)
        logger.info(
            "Administration requested",
            extra={"principal": principal, "organization": organization},
        )

    async def withdraw_request(self, caller: Caller, organization: str) -> bool:
        principal = self._require_user(caller)
        return await self.graph.delete_edge(EdgeKind.REQUESTS_ORG, principal, organization)

    async def approve_admin(self, caller: Caller, principal: str) -> None:
        """Grant a pending administration request.

        Raises:
            Unauthorized: If the caller is not an organization
            NotFoundError: If the principal has no pending request
        """
        organization = self._require_organization(caller)
        await self.graph.grant_administration(principal, organization)
        logger.info(
            "Administration approved",
            extra={"principal": principal, "organization": organization},
        )

    async def revoke_admin(self, caller: Caller, principal: str) -> bool:
        """Remove a principal's administration of the calling organization."""
        organization = self._require_organization(caller)
        removed = await self.graph.delete_edge(EdgeKind.ADMINISTERS_ORG, principal, organization)
        if removed:
            logger.info(
                "Administration revoked",
                extra={"principal": principal, "organization": organization},
            )
        return removed

    async def members(self, caller: Caller) -> Membership:
        """Principals of the calling organization, grouped by affiliation."""
        organization = self._require_organization(caller)
        employees = [e.from_name for e in await self.graph.get_edges_to(EdgeKind.WORKS_FOR, organization)]
        administrators = [
            e.from_name for e in await self.graph.get_edges_to(EdgeKind.ADMINISTERS_ORG, organization)
        ]
        requests = [e.from_name for e in await self.graph.get_edges_to(EdgeKind.REQUESTS_ORG, organization)]

        related = set(employees) | set(administrators) | set(requests)
        others = [
            node.name
            for node in await self.graph.list_nodes(NodeKind.PRINCIPAL)
            if node.name not in related
        ]
        return Membership(
            employees=employees,
            administrators=administrators,
            requests=requests,
            others=others,
        )

    async def organizations_of(self, principal: str) -> list[str]:
        """Organizations a principal works for."""
        return [e.to_name for e in await self.graph.get_edges_from(EdgeKind.WORKS_FOR, principal)]

    async def my_domains(self, caller: Caller) -> DomainsView:
        """Domains owned by, and delegated to, the caller's organizations."""
        if caller.is_organization:
            organizations = [caller.name]
        else:
            organizations = await self.graph.administered_organizations(caller.name)

        view = DomainsView()
        for organization in organizations:
            view.owned.extend(
                e.to_name for e in await self.graph.get_edges_from(EdgeKind.OWNS, organization)
            )
            view.delegated.extend(
                (e.from_name, int(e.props.get("bound", 0)))
                for e in await self.graph.get_edges_to(EdgeKind.DELEGATES, organization)
            )
        return view
