"""
HTTP client for the external record store.

The store exposes /domain and /record resources. Credentials travel in the
JSON body (dbUsername, dbPassword); the caller's bearer token is forwarded
when given. Every answer is a JSON object holding either "error" or a
result payload.

Invariants:
    - A non-200 status, an "error" body, a transport failure or an expired
      deadline all raise RemoteStoreError
    - Duplicate-entry errors raise DuplicateEntryError
    - No call is retried
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..errors import DuplicateEntryError, RemoteStoreError
from ..graph.types import HostNode
from .base import RecordInput, RemoteRecord, StoreResponse, is_duplicate_entry

logger = logging.getLogger(__name__)


class HttpRecordStore:
    """httpx implementation of RecordStore.

    Example:
        >>> store = HttpRecordStore(scheme="http", timeout=10.0)
        >>> records = await store.list_records(host, "acme.io")
        >>> await store.close()
    """

    def __init__(
        self,
        scheme: str = "http",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize the client.

        Args:
            scheme: URL scheme used to reach hosts
            timeout: Default deadline in seconds for calls without one
            client: Shared AsyncClient (one is created when omitted)
        """
        self.scheme = scheme
        self.timeout = timeout
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _url(self, host: HostNode, resource: str) -> str:
        return f"{self.scheme}://{host.name}/{resource}"

    async def _call(
        self,
        method: str,
        host: HostNode,
        resource: str,
        body: dict[str, Any],
        token: Optional[str],
        timeout: Optional[float],
    ) -> StoreResponse:
        operation = f"{method} /{resource}"
        payload = {
            **body,
            "dbUsername": host.store_username,
            "dbPassword": host.store_password,
        }
        headers = {"Authorization": f"Bearer {token}"} if token else {}

        try:
            response = await self._client.request(
                method,
                self._url(host, resource),
                json=payload,
                headers=headers,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as e:
            raise RemoteStoreError(
                f"Record store call timed out: {operation}", host=host.name, operation=operation
            ) from e
        except httpx.HTTPError as e:
            raise RemoteStoreError(
                f"Record store unreachable: {e}", host=host.name, operation=operation
            ) from e

        if response.status_code != 200:
            raise RemoteStoreError(
                f"Record store answered {response.status_code} to {operation}",
                host=host.name,
                operation=operation,
            )

        try:
            parsed = StoreResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise RemoteStoreError(
                f"Unparseable record store answer to {operation}: {e}",
                host=host.name,
                operation=operation,
            ) from e

        if parsed.error:
            error_cls = DuplicateEntryError if is_duplicate_entry(parsed.error) else RemoteStoreError
            raise error_cls(parsed.error, host=host.name, operation=operation)

        logger.debug("Record store call succeeded", extra={"host": host.name, "operation": operation})
        return parsed

    async def list_domains(
        self, host: HostNode, *, token: Optional[str] = None, timeout: Optional[float] = None
    ) -> list[str]:
        response = await self._call("GET", host, "domain", {}, token, timeout)
        return [domain.name for domain in response.domains or []]

    async def add_domain(
        self,
        host: HostNode,
        domain: str,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        await self._call(
            "POST", host, "domain", {"domainname": domain, "soa": True, "ns": True}, token, timeout
        )

    async def remove_domain(
        self,
        host: HostNode,
        domain: str,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        await self._call("DELETE", host, "domain", {"domainname": domain}, token, timeout)

    async def list_records(
        self,
        host: HostNode,
        domain: str,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> list[RemoteRecord]:
        response = await self._call("GET", host, "record", {"domainname": domain}, token, timeout)
        return list(response.records or [])

    async def create_record(
        self,
        host: HostNode,
        domain: str,
        record: RecordInput,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> int:
        response = await self._call(
            "POST",
            host,
            "record",
            {"domainname": domain, "record": record.descriptor()},
            token,
            timeout,
        )
        raw_id = "" if response.record_id is None else str(response.record_id)
        if not raw_id.isdigit():
            raise RemoteStoreError(
                f"Record store returned no record id for {record.name}",
                host=host.name,
                operation="POST /record",
            )
        return int(raw_id)

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
        await self._call(
            "PUT",
            host,
            "record",
            {"domainname": domain, "record": record.descriptor(), "id": record_id},
            token,
            timeout,
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
        await self._call(
            "DELETE",
            host,
            "record",
            {
                "domainname": domain,
                "record": {"name": record.name, "type": record.type, "content": record.content},
            },
            token,
            timeout,
        )
