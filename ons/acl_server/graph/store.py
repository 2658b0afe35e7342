"""
Entity graph SQLite store.

This module manages the SQLite database that holds the authority graph:
- Nodes (organizations, domains, record hosts, records, principals)
- Directed edges between them (owns, delegates, contains, ...)

The graph mirrors record state that lives in external record stores. It is
only mutated after the corresponding remote mutation succeeded, so every
multi-statement change here runs in a single transaction.

Invariants:
    - (kind, name) is unique for nodes (PRIMARY KEY)
    - (kind, from_name, to_name) is unique for edges (PRIMARY KEY)
    - At most one 'owns' edge per domain (partial UNIQUE index)
    - Edges never outlive their endpoints (detach delete)
    - All cascades are atomic (BEGIN IMMEDIATE ... COMMIT)

How to change safely:
    - Schema changes must be additive (CREATE ... IF NOT EXISTS)
    - Keep EDGE_ENDPOINTS in sync when adding edge kinds
    - Use _transaction() for every write touching more than one row

Table schema:
    nodes:
        - kind TEXT (NodeKind value)
        - name TEXT
        - props_json TEXT
        - created_at INTEGER (Unix ms)
        - PRIMARY KEY (kind, name)

    edges:
        - kind TEXT (EdgeKind value)
        - from_name TEXT
        - to_name TEXT
        - props_json TEXT
        - created_at INTEGER (Unix ms)
        - PRIMARY KEY (kind, from_name, to_name)
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..errors import DuplicateName, GraphUnavailable, NotFoundError, ValidationError
from .types import (
    EDGE_ENDPOINTS,
    Edge,
    EdgeKind,
    GraphRecord,
    HostNode,
    Node,
    NodeKind,
    split_record_key,
    validate_node,
)

logger = logging.getLogger(__name__)

_RECORD = NodeKind.RECORD.value
_CONTAINS = EdgeKind.CONTAINS.value
_DELEGATE_OF = EdgeKind.DELEGATE_OF.value
_DELEGATES = EdgeKind.DELEGATES.value
_OWNS = EdgeKind.OWNS.value
_HOSTS = EdgeKind.HOSTS.value
_ADMINISTERS = EdgeKind.ADMINISTERS.value


def _now_ms() -> int:
    return int(time.time() * 1000)


class EntityGraph:
    """SQLite-backed repository for the authority graph.

    This class provides:
    - Typed node and edge CRUD
    - Authority queries (ownership, delegation, administration)
    - Atomic cascades for record, delegation, domain and host removal

    Thread safety:
        Each database connection is created per-operation.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> graph = EntityGraph("/var/lib/ons-acl/graph.db")
        >>> await graph.initialize()
        >>> await graph.create_node(NodeKind.ORGANIZATION, {"name": "acme"})
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the graph store.

        Args:
            db_path: SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._lock = asyncio.Lock()

    @contextmanager
    def _get_connection(self, create: bool = False) -> Iterator[sqlite3.Connection]:
        """Get a database connection.

        Args:
            create: Whether to create the database if it does not exist

        Yields:
            SQLite connection

        Raises:
            GraphUnavailable: If the database is missing, locked or unreadable
        """
        if not create and not self.db_path.exists():
            raise GraphUnavailable(f"Graph database not found: {self.db_path}")

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
            )
        except (OSError, sqlite3.DatabaseError) as e:
            raise GraphUnavailable(f"Cannot open graph database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")

            yield conn
        except sqlite3.DatabaseError as e:
            raise GraphUnavailable(f"Graph store error: {e}") from e
        finally:
            conn.close()

    @contextmanager
    def _transaction(self, conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript(f"""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS nodes (
                kind TEXT NOT NULL,
                name TEXT NOT NULL,
                props_json TEXT NOT NULL DEFAULT '{{}}',
                created_at INTEGER NOT NULL,
                PRIMARY KEY (kind, name)
            );

            CREATE TABLE IF NOT EXISTS edges (
                kind TEXT NOT NULL,
                from_name TEXT NOT NULL,
                to_name TEXT NOT NULL,
                props_json TEXT NOT NULL DEFAULT '{{}}',
                created_at INTEGER NOT NULL,
                PRIMARY KEY (kind, from_name, to_name)
            );

            CREATE INDEX IF NOT EXISTS idx_edges_from ON edges(kind, from_name);
            CREATE INDEX IF NOT EXISTS idx_edges_to ON edges(kind, to_name);

            -- A domain has at most one owning organization
            CREATE UNIQUE INDEX IF NOT EXISTS idx_edges_single_owner
                ON edges(to_name) WHERE kind = '{_OWNS}';

            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES ({self.SCHEMA_VERSION}, strftime('%s', 'now') * 1000);
        """)

    async def initialize(self) -> None:
        """Create the database file and schema if they don't exist."""
        async with self._lock:
            with self._get_connection(create=True) as conn:
                self._create_schema(conn)
        logger.info(f"Initialized graph database: {self.db_path}")

    # ------------------------------------------------------------------
    # Generic nodes and edges
    # ------------------------------------------------------------------

    def _node_exists(self, conn: sqlite3.Connection, kind: NodeKind, name: str) -> bool:
        cursor = conn.execute(
            "SELECT 1 FROM nodes WHERE kind = ? AND name = ?", (kind.value, name)
        )
        return cursor.fetchone() is not None

    def _insert_node(
        self,
        conn: sqlite3.Connection,
        kind: NodeKind,
        props: dict[str, Any],
        now: int,
    ) -> Node:
        safe_props = validate_node(kind, props)
        name = safe_props.pop("name")
        try:
            conn.execute(
                "INSERT INTO nodes (kind, name, props_json, created_at) VALUES (?, ?, ?, ?)",
                (kind.value, name, json.dumps(safe_props), now),
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateName(kind.value, name) from e
        return Node(kind=kind, name=name, props=safe_props, created_at=now)

    def _insert_edge(
        self,
        conn: sqlite3.Connection,
        kind: EdgeKind,
        from_name: str,
        to_name: str,
        props: dict[str, Any],
        now: int,
    ) -> Edge:
        from_kind, to_kind = EDGE_ENDPOINTS[kind]
        if not self._node_exists(conn, from_kind, from_name):
            raise NotFoundError(from_kind.value, from_name)
        if not self._node_exists(conn, to_kind, to_name):
            raise NotFoundError(to_kind.value, to_name)

        try:
            conn.execute(
                """
                INSERT INTO edges (kind, from_name, to_name, props_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (kind, from_name, to_name)
                DO UPDATE SET props_json = excluded.props_json
                """,
                (kind.value, from_name, to_name, json.dumps(props), now),
            )
        except sqlite3.IntegrityError as e:
            # Only the single-owner index can fail here
            raise DuplicateName(
                "Domain",
                to_name,
                message=f"Domain '{to_name}' already has an owning organization.",
            ) from e
        return Edge(kind=kind, from_name=from_name, to_name=to_name, props=props, created_at=now)

    def _detach_delete(self, conn: sqlite3.Connection, kind: NodeKind, name: str) -> bool:
        """Delete a node and every edge attached to it."""
        outgoing = [k.value for k, (src, _) in EDGE_ENDPOINTS.items() if src == kind]
        incoming = [k.value for k, (_, dst) in EDGE_ENDPOINTS.items() if dst == kind]

        if outgoing:
            marks = ",".join("?" * len(outgoing))
            conn.execute(
                f"DELETE FROM edges WHERE kind IN ({marks}) AND from_name = ?",
                (*outgoing, name),
            )
        if incoming:
            marks = ",".join("?" * len(incoming))
            conn.execute(
                f"DELETE FROM edges WHERE kind IN ({marks}) AND to_name = ?",
                (*incoming, name),
            )
        cursor = conn.execute("DELETE FROM nodes WHERE kind = ? AND name = ?", (kind.value, name))
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_node(row: sqlite3.Row) -> Node:
        return Node(
            kind=NodeKind(row["kind"]),
            name=row["name"],
            props=json.loads(row["props_json"]),
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_edge(row: sqlite3.Row) -> Edge:
        return Edge(
            kind=EdgeKind(row["kind"]),
            from_name=row["from_name"],
            to_name=row["to_name"],
            props=json.loads(row["props_json"]),
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> GraphRecord:
        props = json.loads(row["props_json"])
        return GraphRecord(key=row["name"], type=props["type"], content=props["content"])

    async def create_node(self, kind: NodeKind, props: dict[str, Any]) -> Node:
        """Create a node after validating its properties.

        Args:
            kind: Node kind
            props: Properties including the 'name' key

        Returns:
            Created Node

        Raises:
            ValidationError: If a property violates its constraint
            DuplicateName: If a node of this kind and name exists
        """
        with self._get_connection() as conn:
            node = self._insert_node(conn, kind, props, _now_ms())

        logger.debug("Created node", extra={"kind": kind.value, "name": node.name})
        return node

    async def get_node(self, kind: NodeKind, name: str) -> Node | None:
        """Get a node by kind and name."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM nodes WHERE kind = ? AND name = ?", (kind.value, name)
            )
            row = cursor.fetchone()
            return self._row_to_node(row) if row else None

    async def node_exists(self, kind: NodeKind, name: str) -> bool:
        with self._get_connection() as conn:
            return self._node_exists(conn, kind, name)

    async def list_nodes(self, kind: NodeKind) -> list[Node]:
        """Get all nodes of a kind, ordered by name."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM nodes WHERE kind = ? ORDER BY name", (kind.value,)
            )
            return [self._row_to_node(row) for row in cursor.fetchall()]

    async def delete_node(self, kind: NodeKind, name: str) -> bool:
        """Delete a node and its edges.

        Returns:
            True if deleted, False if not found
        """
        with self._get_connection() as conn:
            with self._transaction(conn):
                return self._detach_delete(conn, kind, name)

    async def create_edge(
        self,
        kind: EdgeKind,
        from_name: str,
        to_name: str,
        props: dict[str, Any] | None = None,
    ) -> Edge:
        """Create (or merge) an edge between two existing nodes.

        Re-creating an existing edge replaces its properties.

        Raises:
            NotFoundError: If an endpoint does not exist
            DuplicateName: If a second organization would own a domain
        """
        with self._get_connection() as conn:
            with self._transaction(conn):
                edge = self._insert_edge(conn, kind, from_name, to_name, props or {}, _now_ms())

        logger.debug(
            "Created edge",
            extra={"edge_kind": kind.value, "from": from_name, "to": to_name},
        )
        return edge

    async def get_edge(self, kind: EdgeKind, from_name: str, to_name: str) -> Edge | None:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM edges WHERE kind = ? AND from_name = ? AND to_name = ?",
                (kind.value, from_name, to_name),
            )
            row = cursor.fetchone()
            return self._row_to_edge(row) if row else None

    async def delete_edge(self, kind: EdgeKind, from_name: str, to_name: str) -> bool:
        """Delete an edge.

        Returns:
            True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM edges WHERE kind = ? AND from_name = ? AND to_name = ?",
                (kind.value, from_name, to_name),
            )
            return cursor.rowcount > 0

    async def get_edges_from(self, kind: EdgeKind, from_name: str) -> list[Edge]:
        """Get outgoing edges of one kind, ordered by target name."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM edges WHERE kind = ? AND from_name = ? ORDER BY to_name",
                (kind.value, from_name),
            )
            return [self._row_to_edge(row) for row in cursor.fetchall()]

    async def get_edges_to(self, kind: EdgeKind, to_name: str) -> list[Edge]:
        """Get incoming edges of one kind, ordered by source name."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM edges WHERE kind = ? AND to_name = ? ORDER BY from_name",
                (kind.value, to_name),
            )
            return [self._row_to_edge(row) for row in cursor.fetchall()]

    # ------------------------------------------------------------------
    # Authority queries
    # ------------------------------------------------------------------

    async def domain_authority(self, organization: str, domain: str) -> tuple[bool, int | None]:
        """Look up the edges that grant an organization authority over a domain.

        Returns:
            (owns, delegation bound or None when no delegates edge exists)
        """
        with self._get_connection() as conn:
            owns = conn.execute(
                "SELECT 1 FROM edges WHERE kind = ? AND from_name = ? AND to_name = ?",
                (_OWNS, organization, domain),
            ).fetchone()
            delegation = conn.execute(
                "SELECT props_json FROM edges WHERE kind = ? AND from_name = ? AND to_name = ?",
                (_DELEGATES, domain, organization),
            ).fetchone()

        bound = None
        if delegation is not None:
            bound = int(json.loads(delegation["props_json"]).get("bound", 0))
        return owns is not None, bound

    async def host_authority(self, organization: str, host: str) -> tuple[bool, bool]:
        """Look up how an organization relates to a record host.

        Returns:
            (administers the host, is delegatee of any domain the host serves)
        """
        with self._get_connection() as conn:
            administers = conn.execute(
                "SELECT 1 FROM edges WHERE kind = ? AND from_name = ? AND to_name = ?",
                (_ADMINISTERS, organization, host),
            ).fetchone()
            delegated = conn.execute(
                """
                SELECT 1 FROM edges h
                JOIN edges d ON d.kind = ? AND d.from_name = h.to_name AND d.to_name = ?
                WHERE h.kind = ? AND h.from_name = ?
                LIMIT 1
                """,
                (_DELEGATES, organization, _HOSTS, host),
            ).fetchone()
        return administers is not None, delegated is not None

    async def administered_organizations(self, principal: str) -> list[str]:
        """Organizations a principal administers (administersOrg)."""
        edges = await self.get_edges_from(EdgeKind.ADMINISTERS_ORG, principal)
        return [edge.to_name for edge in edges]

    async def delegation_usage(self, organization: str, domain: str) -> tuple[int | None, int]:
        """Count records an organization holds under a delegation.

        Returns:
            (bound or None when the domain does not delegate to the organization,
             number of distinct records marked delegateOf and contained by the domain)
        """
        with self._get_connection() as conn:
            delegation = conn.execute(
                "SELECT props_json FROM edges WHERE kind = ? AND from_name = ? AND to_name = ?",
                (_DELEGATES, domain, organization),
            ).fetchone()
            if delegation is None:
                return None, 0

            count = conn.execute(
                """
                SELECT COUNT(DISTINCT c.to_name) FROM edges c
                JOIN edges d ON d.kind = ? AND d.to_name = c.to_name AND d.from_name = ?
                WHERE c.kind = ? AND c.from_name = ?
                """,
                (_DELEGATE_OF, organization, _CONTAINS, domain),
            ).fetchone()[0]

        return int(json.loads(delegation["props_json"]).get("bound", 0)), count

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def create_record(
        self,
        domain: str,
        key: str,
        record_type: str,
        content: str,
        delegatee: str | None = None,
    ) -> GraphRecord:
        """Create a Record node contained by a domain.

        When a delegatee is given the record is also marked delegateOf.
        Node and edges are written in one transaction.

        Raises:
            ValidationError: If the record properties are invalid
            DuplicateName: If the record key exists
            NotFoundError: If the domain or delegatee does not exist
        """
        now = _now_ms()
        with self._get_connection() as conn:
            with self._transaction(conn):
                self._insert_node(
                    conn,
                    NodeKind.RECORD,
                    {"name": key, "type": record_type, "content": content},
                    now,
                )
                self._insert_edge(conn, EdgeKind.CONTAINS, domain, key, {}, now)
                if delegatee is not None:
                    self._insert_edge(conn, EdgeKind.DELEGATE_OF, delegatee, key, {}, now)

        logger.debug(
            "Created record",
            extra={"domain": domain, "record": key, "delegatee": delegatee},
        )
        return GraphRecord(key=key, type=record_type, content=content)

    async def get_record(self, key: str) -> GraphRecord | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM nodes WHERE kind = ? AND name = ?", (_RECORD, key)
            ).fetchone()
            return self._row_to_record(row) if row else None

    async def domain_records(self, domain: str) -> list[GraphRecord]:
        """Records contained by a domain."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT n.* FROM edges c
                JOIN nodes n ON n.kind = ? AND n.name = c.to_name
                WHERE c.kind = ? AND c.from_name = ?
                ORDER BY n.name
                """,
                (_RECORD, _CONTAINS, domain),
            )
            return [self._row_to_record(row) for row in cursor.fetchall()]

    async def delegated_records(self, domain: str, organization: str) -> list[GraphRecord]:
        """Records contained by a domain and marked delegateOf the organization."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT n.* FROM edges c
                JOIN edges d ON d.kind = ? AND d.to_name = c.to_name AND d.from_name = ?
                JOIN nodes n ON n.kind = ? AND n.name = c.to_name
                WHERE c.kind = ? AND c.from_name = ?
                ORDER BY n.name
                """,
                (_DELEGATE_OF, organization, _RECORD, _CONTAINS, domain),
            )
            return [self._row_to_record(row) for row in cursor.fetchall()]

    async def find_record_by_id(self, domain: str, record_id: int) -> GraphRecord | None:
        """Find the record a domain contains under a numeric store id."""
        for record in await self.domain_records(domain):
            if record.record_id == record_id:
                return record
        return None

    async def update_record(
        self,
        domain: str,
        record_id: int,
        key: str,
        record_type: str,
        content: str,
    ) -> GraphRecord:
        """Rewrite the record a domain holds under record_id.

        The key may change (a rename keeps the numeric id). Edges pointing at
        the record follow the rename. A record that was never mirrored is
        created with a contains edge.
        """
        validate_node(NodeKind.RECORD, {"name": key, "type": record_type, "content": content})
        _, key_id = split_record_key(key)
        if key_id != record_id:
            raise ValidationError(f"Record key {key} does not carry id {record_id}", "name")

        existing = await self.find_record_by_id(domain, record_id)
        props_json = json.dumps({"type": record_type, "content": content})
        now = _now_ms()

        with self._get_connection() as conn:
            with self._transaction(conn):
                if existing is None:
                    self._insert_node(
                        conn,
                        NodeKind.RECORD,
                        {"name": key, "type": record_type, "content": content},
                        now,
                    )
                    self._insert_edge(conn, EdgeKind.CONTAINS, domain, key, {}, now)
                else:
                    try:
                        conn.execute(
                            "UPDATE nodes SET name = ?, props_json = ? WHERE kind = ? AND name = ?",
                            (key, props_json, _RECORD, existing.key),
                        )
                    except sqlite3.IntegrityError as e:
                        raise DuplicateName(NodeKind.RECORD.value, key) from e
                    conn.execute(
                        "UPDATE edges SET to_name = ? WHERE kind IN (?, ?) AND to_name = ?",
                        (key, _CONTAINS, _DELEGATE_OF, existing.key),
                    )

        return GraphRecord(key=key, type=record_type, content=content)

    async def is_delegated_record(self, organization: str, domain: str, key: str) -> bool:
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM edges c
                JOIN edges d ON d.kind = ? AND d.to_name = c.to_name AND d.from_name = ?
                WHERE c.kind = ? AND c.from_name = ? AND c.to_name = ?
                """,
                (_DELEGATE_OF, organization, _CONTAINS, domain, key),
            ).fetchone()
            return row is not None

    async def delete_record(self, domain: str, key: str) -> bool:
        """Detach-delete a record contained by the domain.

        Returns:
            True if deleted, False if the domain does not contain it
        """
        with self._get_connection() as conn:
            with self._transaction(conn):
                contained = conn.execute(
                    "SELECT 1 FROM edges WHERE kind = ? AND from_name = ? AND to_name = ?",
                    (_CONTAINS, domain, key),
                ).fetchone()
                if contained is None:
                    return False
                return self._detach_delete(conn, NodeKind.RECORD, key)

    async def delete_domain_records(self, domain: str) -> list[str]:
        """Detach-delete every record a domain contains.

        Returns:
            Keys of the deleted records
        """
        with self._get_connection() as conn:
            with self._transaction(conn):
                return self._delete_contained(conn, domain)

    def _delete_contained(self, conn: sqlite3.Connection, domain: str) -> list[str]:
        keys = [
            row["to_name"]
            for row in conn.execute(
                "SELECT to_name FROM edges WHERE kind = ? AND from_name = ?",
                (_CONTAINS, domain),
            ).fetchall()
        ]
        for key in keys:
            self._detach_delete(conn, NodeKind.RECORD, key)
        return keys

    # ------------------------------------------------------------------
    # Delegation
    # ------------------------------------------------------------------

    async def set_delegation(self, domain: str, organization: str, bound: int) -> Edge:
        """Create the delegates edge, or replace the bound of an existing one."""
        return await self.create_edge(EdgeKind.DELEGATES, domain, organization, {"bound": bound})

    async def remove_delegation(self, domain: str, organization: str) -> list[str]:
        """Remove a delegates edge together with the records it implies.

        Every record contained by the domain and marked delegateOf the
        organization is detach-deleted in the same transaction.

        Returns:
            Keys of the deleted records

        Raises:
            NotFoundError: If the domain does not delegate to the organization
        """
        with self._get_connection() as conn:
            with self._transaction(conn):
                cursor = conn.execute(
                    "DELETE FROM edges WHERE kind = ? AND from_name = ? AND to_name = ?",
                    (_DELEGATES, domain, organization),
                )
                if cursor.rowcount == 0:
                    raise NotFoundError("delegation", f"{domain}->{organization}")

                keys = [
                    row["to_name"]
                    for row in conn.execute(
                        """
                        SELECT c.to_name FROM edges c
                        JOIN edges d ON d.kind = ? AND d.to_name = c.to_name AND d.from_name = ?
                        WHERE c.kind = ? AND c.from_name = ?
                        """,
                        (_DELEGATE_OF, organization, _CONTAINS, domain),
                    ).fetchall()
                ]
                for key in keys:
                    self._detach_delete(conn, NodeKind.RECORD, key)

        logger.info(
            "Removed delegation",
            extra={"domain": domain, "organization": organization, "records": len(keys)},
        )
        return keys

    async def delegatees(self, domain: str) -> list[tuple[str, int]]:
        """Organizations a domain delegates to, with their bounds."""
        edges = await self.get_edges_from(EdgeKind.DELEGATES, domain)
        return [(edge.to_name, int(edge.props.get("bound", 0))) for edge in edges]

    # ------------------------------------------------------------------
    # Hosts and domains
    # ------------------------------------------------------------------

    async def create_host(self, name: str, store_username: str, store_password: str) -> HostNode:
        """Create a RecordHost node."""
        node = await self.create_node(
            NodeKind.RECORD_HOST,
            {"name": name, "store_username": store_username, "store_password": store_password},
        )
        return HostNode(
            name=node.name,
            store_username=node.props["store_username"],
            store_password=node.props["store_password"],
        )

    async def get_host(self, name: str) -> HostNode | None:
        node = await self.get_node(NodeKind.RECORD_HOST, name)
        if node is None:
            return None
        return HostNode(
            name=node.name,
            store_username=node.props["store_username"],
            store_password=node.props["store_password"],
        )

    async def host_for_domain(self, domain: str) -> HostNode | None:
        """The RecordHost that serves a domain (hosts edge)."""
        edges = await self.get_edges_to(EdgeKind.HOSTS, domain)
        if not edges:
            return None
        return await self.get_host(edges[0].from_name)

    async def domain_owner(self, domain: str) -> str | None:
        edges = await self.get_edges_to(EdgeKind.OWNS, domain)
        return edges[0].from_name if edges else None

    async def host_domains(self, host: str) -> list[str]:
        return [edge.to_name for edge in await self.get_edges_from(EdgeKind.HOSTS, host)]

    async def delegated_domains_on_host(self, organization: str, host: str) -> list[str]:
        """Domains served by a host that delegate to the organization."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT h.to_name FROM edges h
                JOIN edges d ON d.kind = ? AND d.from_name = h.to_name AND d.to_name = ?
                WHERE h.kind = ? AND h.from_name = ?
                ORDER BY h.to_name
                """,
                (_DELEGATES, organization, _HOSTS, host),
            )
            return [row["to_name"] for row in cursor.fetchall()]

    async def administered_hosts(self, organization: str) -> list[str]:
        return [edge.to_name for edge in await self.get_edges_from(EdgeKind.ADMINISTERS, organization)]

    async def delegated_hosts(self, organization: str) -> list[str]:
        """Hosts serving at least one domain that delegates to the organization."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT DISTINCT h.from_name FROM edges d
                JOIN edges h ON h.kind = ? AND h.to_name = d.from_name
                WHERE d.kind = ? AND d.to_name = ?
                ORDER BY h.from_name
                """,
                (_HOSTS, _DELEGATES, organization),
            )
            return [row["from_name"] for row in cursor.fetchall()]

    async def grant_administration(self, principal: str, organization: str) -> None:
        """Turn a pending requestsOrg edge into administersOrg and worksFor, atomically.

        Raises:
            NotFoundError: If the principal has no pending request
        """
        now = _now_ms()
        with self._get_connection() as conn:
            with self._transaction(conn):
                cursor = conn.execute(
                    "DELETE FROM edges WHERE kind = ? AND from_name = ? AND to_name = ?",
                    (EdgeKind.REQUESTS_ORG.value, principal, organization),
                )
                if cursor.rowcount == 0:
                    raise NotFoundError("administration request", f"{principal}->{organization}")
                self._insert_edge(conn, EdgeKind.ADMINISTERS_ORG, principal, organization, {}, now)
                self._insert_edge(conn, EdgeKind.WORKS_FOR, principal, organization, {}, now)

        logger.debug(
            "Granted administration",
            extra={"principal": principal, "organization": organization},
        )

    async def attach_domain(
        self,
        host: str,
        domain: str,
        owner: str,
        records: list[GraphRecord] | tuple[GraphRecord, ...] = (),
    ) -> None:
        """Create a Domain served by host and owned by owner, atomically.

        Records the record store seeded for the new zone are contained by
        the domain in the same transaction.

        Raises:
            ValidationError: If the domain name or a record is invalid
            DuplicateName: If the domain or a record exists
            NotFoundError: If the host or owner does not exist
        """
        now = _now_ms()
        with self._get_connection() as conn:
            with self._transaction(conn):
                self._insert_node(conn, NodeKind.DOMAIN, {"name": domain}, now)
                self._insert_edge(conn, EdgeKind.HOSTS, host, domain, {}, now)
                self._insert_edge(conn, EdgeKind.OWNS, owner, domain, {}, now)
                for record in records:
                    self._insert_node(
                        conn,
                        NodeKind.RECORD,
                        {"name": record.key, "type": record.type, "content": record.content},
                        now,
                    )
                    self._insert_edge(conn, EdgeKind.CONTAINS, domain, record.key, {}, now)

        logger.debug(
            "Attached domain",
            extra={"host": host, "domain": domain, "owner": owner, "records": len(records)},
        )

    async def import_host(
        self,
        host: HostNode,
        organization: str,
        domains: dict[str, list[GraphRecord]],
    ) -> None:
        """Create a host administered by organization, with its domains and records.

        Everything is written in one transaction; a clash on any domain
        leaves the graph unchanged.

        Raises:
            ValidationError: If a host, domain or record property is invalid
            DuplicateName: If the host, a domain or a record exists
            NotFoundError: If the organization does not exist
        """
        now = _now_ms()
        with self._get_connection() as conn:
            with self._transaction(conn):
                self._insert_node(
                    conn,
                    NodeKind.RECORD_HOST,
                    {
                        "name": host.name,
                        "store_username": host.store_username,
                        "store_password": host.store_password,
                    },
                    now,
                )
                self._insert_edge(conn, EdgeKind.ADMINISTERS, organization, host.name, {}, now)
                for domain, records in domains.items():
                    self._insert_node(conn, NodeKind.DOMAIN, {"name": domain}, now)
                    self._insert_edge(conn, EdgeKind.HOSTS, host.name, domain, {}, now)
                    self._insert_edge(conn, EdgeKind.OWNS, organization, domain, {}, now)
                    for record in records:
                        self._insert_node(
                            conn,
                            NodeKind.RECORD,
                            {"name": record.key, "type": record.type, "content": record.content},
                            now,
                        )
                        self._insert_edge(conn, EdgeKind.CONTAINS, domain, record.key, {}, now)

        logger.info(
            "Imported host",
            extra={"host": host.name, "organization": organization, "domains": len(domains)},
        )

    async def remove_domain(self, domain: str) -> list[str]:
        """Detach-delete a domain and every record it contains.

        Returns:
            Keys of the deleted records
        """
        with self._get_connection() as conn:
            with self._transaction(conn):
                keys = self._delete_contained(conn, domain)
                if not self._detach_delete(conn, NodeKind.DOMAIN, domain):
                    raise NotFoundError(NodeKind.DOMAIN.value, domain)
        return keys

    async def remove_host(self, host: str) -> list[str]:
        """Detach-delete a host, every domain it serves and their records.

        Returns:
            Names of the deleted domains
        """
        with self._get_connection() as conn:
            with self._transaction(conn):
                domains = [
                    row["to_name"]
                    for row in conn.execute(
                        "SELECT to_name FROM edges WHERE kind = ? AND from_name = ?",
                        (_HOSTS, host),
                    ).fetchall()
                ]
                for domain in domains:
                    self._delete_contained(conn, domain)
                    self._detach_delete(conn, NodeKind.DOMAIN, domain)
                if not self._detach_delete(conn, NodeKind.RECORD_HOST, host):
                    raise NotFoundError(NodeKind.RECORD_HOST.value, host)

        logger.info("Removed host", extra={"host": host, "domains": len(domains)})
        return domains

    async def get_stats(self) -> dict[str, int]:
        """Node and edge counts, keyed by kind."""
        with self._get_connection() as conn:
            stats = {kind.value: 0 for kind in NodeKind}
            stats.update({kind.value: 0 for kind in EdgeKind})
            for row in conn.execute("SELECT kind, COUNT(*) AS n FROM nodes GROUP BY kind"):
                stats[row["kind"]] = row["n"]
            for row in conn.execute("SELECT kind, COUNT(*) AS n FROM edges GROUP BY kind"):
                stats[row["kind"]] = row["n"]
            return stats
