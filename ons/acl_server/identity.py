"""
Caller identity resolution.

A bearer token is turned into a principal name by the token service, and the
name is then looked up in the graph to decide whether the caller acts as an
organization or as a user. The lookup happens on every request; no role is
remembered between requests.

Invariants:
    - Any token service failure raises Unauthenticated
    - Organization names take precedence over principal names
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, Optional, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from .errors import Unauthenticated
from .graph.types import NodeKind

if TYPE_CHECKING:
    from .graph.store import EntityGraph

logger = logging.getLogger(__name__)


class CallerKind(Enum):
    ORGANIZATION = "organization"
    USER = "user"


@dataclass(frozen=True)
class Caller:
    """The principal on whose behalf an operation runs.

    Attributes:
        kind: Organization or user
        name: Organization or principal name
        token: Bearer token, forwarded to the record store
    """

    kind: CallerKind
    name: str
    token: Optional[str] = None

    @classmethod
    def organization(cls, name: str, token: Optional[str] = None) -> Caller:
        return cls(kind=CallerKind.ORGANIZATION, name=name, token=token)

    @classmethod
    def user(cls, name: str, token: Optional[str] = None) -> Caller:
        return cls(kind=CallerKind.USER, name=name, token=token)

    @property
    def is_organization(self) -> bool:
        return self.kind == CallerKind.ORGANIZATION


class TokenInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: Optional[str] = None


@runtime_checkable
class TokenResolver(Protocol):
    """Protocol for the token service."""

    async def resolve_principal(self, token: str) -> str:
        """Return the principal name a bearer token belongs to.

        Raises:
            Unauthenticated: If the token is unknown or the service fails
        """
        ...


class HttpTokenResolver:
    """Asks the token service: GET {auth_url}/token/{token} -> {"username": ...}."""

    def __init__(
        self,
        auth_url: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.auth_url = auth_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def resolve_principal(self, token: str) -> str:
        if not token:
            raise Unauthenticated()

        try:
            response = await self._client.get(
                f"{self.auth_url}/token/{token}",
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Token service unreachable: {e}")
            raise Unauthenticated() from e

        if response.status_code != 200:
            raise Unauthenticated()

        try:
            info = TokenInfo.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise Unauthenticated() from e

        if not info.username:
            raise Unauthenticated()
        return info.username


class StaticTokenResolver:
    """Token resolver backed by a fixed mapping, for tests and local development."""

    def __init__(self, tokens: Optional[Dict[str, str]] = None) -> None:
        self.tokens: Dict[str, str] = dict(tokens or {})

    async def resolve_principal(self, token: str) -> str:
        try:
            return self.tokens[token]
        except KeyError:
            raise Unauthenticated() from None


async def resolve_caller(token: str, tokens: TokenResolver, graph: EntityGraph) -> Caller:
    """Resolve a bearer token to a Caller.

    Raises:
        Unauthenticated: If the token does not resolve, or the name is
            neither an organization nor a principal
    """
    name = await tokens.resolve_principal(token)

    if await graph.node_exists(NodeKind.ORGANIZATION, name):
        return Caller.organization(name, token=token)
    if await graph.node_exists(NodeKind.PRINCIPAL, name):
        return Caller.user(name, token=token)

    logger.info("Token resolved to an unknown principal", extra={"principal": name})
    raise Unauthenticated()
