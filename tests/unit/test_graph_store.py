"""
Unit tests for the entity graph SQLite store.

Tests cover:
- Node creation, validation and uniqueness
- Edge creation, endpoint checks and owner uniqueness
- Record transactions and renames
- Delegation, domain and host cascades
"""

import tempfile
from pathlib import Path

import pytest

from ons.acl_server.errors import DuplicateName, GraphUnavailable, NotFoundError, ValidationError
from ons.acl_server.graph import EdgeKind, EntityGraph, GraphRecord, HostNode, NodeKind

HOST = "10.0.0.1:8080"


class TestEntityGraph:
    """Tests for EntityGraph."""

    @pytest.fixture
    def db_path(self):
        """Create temporary database path."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield str(Path(tmpdir) / "graph.db")

    @pytest.fixture
    def graph(self, db_path):
        return EntityGraph(db_path, wal_mode=False)

    async def _world(self, graph):
        await graph.initialize()
        for name in ("acme", "bob"):
            await graph.create_node(NodeKind.ORGANIZATION, {"name": name})
        await graph.create_host(HOST, "pdns", "secret")
        await graph.create_edge(EdgeKind.ADMINISTERS, "acme", HOST)
        await graph.attach_domain(HOST, "acme.io", "acme")

    @pytest.mark.asyncio
    async def test_uninitialized_graph_is_unavailable(self, graph):
        """Operations before initialize raise GraphUnavailable."""
        with pytest.raises(GraphUnavailable):
            await graph.get_node(NodeKind.ORGANIZATION, "acme")

    @pytest.mark.asyncio
    async def test_create_and_get_node(self, graph):
        """Created nodes can be read back."""
        await graph.initialize()
        node = await graph.create_node(NodeKind.ORGANIZATION, {"name": "acme", "extra": "x"})

        assert node.name == "acme"
        assert node.props == {}

        fetched = await graph.get_node(NodeKind.ORGANIZATION, "acme")
        assert fetched is not None
        assert fetched.kind == NodeKind.ORGANIZATION

    @pytest.mark.asyncio
    async def test_duplicate_node_name(self, graph):
        """A second node with the same kind and name is rejected."""
        await graph.initialize()
        await graph.create_node(NodeKind.ORGANIZATION, {"name": "acme"})

        with pytest.raises(DuplicateName):
            await graph.create_node(NodeKind.ORGANIZATION, {"name": "acme"})

    @pytest.mark.asyncio
    async def test_same_name_different_kind(self, graph):
        """Uniqueness is scoped to the node kind."""
        await graph.initialize()
        await graph.create_node(NodeKind.ORGANIZATION, {"name": "acme"})
        await graph.create_node(NodeKind.PRINCIPAL, {"name": "acme"})

        assert await graph.node_exists(NodeKind.PRINCIPAL, "acme")

    @pytest.mark.asyncio
    async def test_invalid_name_rejected(self, graph):
        """Names violating the format are rejected before insert."""
        await graph.initialize()

        with pytest.raises(ValidationError):
            await graph.create_node(NodeKind.ORGANIZATION, {"name": "a"})
        with pytest.raises(ValidationError):
            await graph.create_node(NodeKind.DOMAIN, {"name": "bad_domain!"})

        assert await graph.list_nodes(NodeKind.ORGANIZATION) == []

    @pytest.mark.asyncio
    async def test_edge_requires_endpoints(self, graph):
        """Edges between missing nodes are rejected."""
        await graph.initialize()
        await graph.create_node(NodeKind.ORGANIZATION, {"name": "acme"})

        with pytest.raises(NotFoundError):
            await graph.create_edge(EdgeKind.OWNS, "acme", "missing.io")

    @pytest.mark.asyncio
    async def test_single_owner_per_domain(self, graph):
        """A domain cannot be owned by two organizations."""
        await self._world(graph)

        with pytest.raises(DuplicateName):
            await graph.create_edge(EdgeKind.OWNS, "bob", "acme.io")

        assert await graph.domain_owner("acme.io") == "acme"

    @pytest.mark.asyncio
    async def test_create_edge_merges_props(self, graph):
        """Re-creating an edge replaces its properties."""
        await self._world(graph)

        await graph.set_delegation("acme.io", "bob", 2)
        await graph.set_delegation("acme.io", "bob", 5)

        assert await graph.delegatees("acme.io") == [("bob", 5)]

    @pytest.mark.asyncio
    async def test_domain_authority(self, graph):
        """Ownership and delegation bound are read together."""
        await self._world(graph)
        await graph.set_delegation("acme.io", "bob", 3)

        assert await graph.domain_authority("acme", "acme.io") == (True, None)
        assert await graph.domain_authority("bob", "acme.io") == (False, 3)
        assert await graph.domain_authority("bob", "other.io") == (False, None)

    @pytest.mark.asyncio
    async def test_create_record_is_atomic(self, graph):
        """A failing delegateOf edge leaves no record behind."""
        await self._world(graph)

        with pytest.raises(NotFoundError):
            await graph.create_record("acme.io", "www.acme.io:1", "A", "1.2.3.4", delegatee="nobody")

        assert await graph.get_record("www.acme.io:1") is None
        assert await graph.domain_records("acme.io") == []

    @pytest.mark.asyncio
    async def test_delegation_usage_counts_contained_records(self, graph):
        """Only records both delegated and contained are counted."""
        await self._world(graph)
        await graph.set_delegation("acme.io", "bob", 2)
        await graph.create_record("acme.io", "a.acme.io:1", "A", "1.1.1.1", delegatee="bob")
        await graph.create_record("acme.io", "b.acme.io:2", "A", "1.1.1.2", delegatee="bob")
        await graph.create_record("acme.io", "c.acme.io:3", "A", "1.1.1.3")

        assert await graph.delegation_usage("bob", "acme.io") == (2, 2)
        assert await graph.delegation_usage("acme", "acme.io") == (None, 0)

    @pytest.mark.asyncio
    async def test_update_record_rename_keeps_edges(self, graph):
        """Renaming a record moves its contains and delegateOf edges."""
        await self._world(graph)
        await graph.set_delegation("acme.io", "bob", 0)
        await graph.create_record("acme.io", "www.acme.io:7", "A", "1.2.3.4", delegatee="bob")

        updated = await graph.update_record("acme.io", 7, "web.acme.io:7", "A", "5.6.7.8")

        assert updated.name == "web.acme.io"
        assert await graph.get_record("www.acme.io:7") is None
        assert await graph.is_delegated_record("bob", "acme.io", "web.acme.io:7")
        records = await graph.domain_records("acme.io")
        assert [r.content for r in records] == ["5.6.7.8"]

    @pytest.mark.asyncio
    async def test_update_record_id_mismatch(self, graph):
        """The new key must carry the edited id."""
        await self._world(graph)

        with pytest.raises(ValidationError):
            await graph.update_record("acme.io", 7, "www.acme.io:8", "A", "1.2.3.4")

    @pytest.mark.asyncio
    async def test_remove_delegation_cascades(self, graph):
        """Removing a delegation removes its records and nothing else."""
        await self._world(graph)
        await graph.set_delegation("acme.io", "bob", 0)
        await graph.create_record("acme.io", "a.acme.io:1", "A", "1.1.1.1", delegatee="bob")
        await graph.create_record("acme.io", "c.acme.io:3", "A", "1.1.1.3")

        removed = await graph.remove_delegation("acme.io", "bob")

        assert removed == ["a.acme.io:1"]
        assert await graph.get_edge(EdgeKind.DELEGATES, "acme.io", "bob") is None
        assert await graph.get_edges_from(EdgeKind.DELEGATE_OF, "bob") == []
        assert [r.key for r in await graph.domain_records("acme.io")] == ["c.acme.io:3"]

    @pytest.mark.asyncio
    async def test_remove_missing_delegation(self, graph):
        await self._world(graph)

        with pytest.raises(NotFoundError):
            await graph.remove_delegation("acme.io", "bob")

    @pytest.mark.asyncio
    async def test_remove_host_cascades(self, graph):
        """Removing a host removes its domains, records and edges."""
        await self._world(graph)
        await graph.create_record("acme.io", "www.acme.io:1", "A", "1.2.3.4")

        domains = await graph.remove_host(HOST)

        assert domains == ["acme.io"]
        assert await graph.get_host(HOST) is None
        assert not await graph.node_exists(NodeKind.DOMAIN, "acme.io")
        assert await graph.get_record("www.acme.io:1") is None
        assert await graph.administered_hosts("acme") == []
        assert await graph.get_edges_from(EdgeKind.OWNS, "acme") == []

    @pytest.mark.asyncio
    async def test_import_host_rolls_back_on_clash(self, graph):
        """A domain clash leaves no part of the host behind."""
        await self._world(graph)
        await graph.create_node(NodeKind.ORGANIZATION, {"name": "carol"})
        other = HostNode(name="10.0.0.2:8080", store_username="pdns", store_password="secret")

        with pytest.raises(DuplicateName):
            await graph.import_host(
                other,
                "carol",
                {"carol.io": [GraphRecord("www.carol.io:1", "A", "1.1.1.1")], "acme.io": []},
            )

        assert await graph.get_host("10.0.0.2:8080") is None
        assert not await graph.node_exists(NodeKind.DOMAIN, "carol.io")

    @pytest.mark.asyncio
    async def test_host_queries(self, graph):
        """Host lookups follow hosts, administers and delegates edges."""
        await self._world(graph)
        await graph.set_delegation("acme.io", "bob", 1)

        host = await graph.host_for_domain("acme.io")
        assert host is not None
        assert host.address == "10.0.0.1"
        assert host.port == 8080

        assert await graph.host_authority("acme", HOST) == (True, False)
        assert await graph.host_authority("bob", HOST) == (False, True)
        assert await graph.delegated_hosts("bob") == [HOST]
        assert await graph.delegated_domains_on_host("bob", HOST) == ["acme.io"]

    @pytest.mark.asyncio
    async def test_stats(self, graph):
        """Stats count nodes and edges by kind."""
        await self._world(graph)

        stats = await graph.get_stats()

        assert stats["Organization"] == 2
        assert stats["Domain"] == 1
        assert stats["owns"] == 1
        assert stats["hosts"] == 1
        assert stats["Record"] == 0

    @pytest.mark.asyncio
    async def test_corrupt_database_is_unavailable(self, graph, db_path):
        """A file that is not a SQLite database raises GraphUnavailable."""
        await graph.initialize()
        Path(db_path).write_bytes(b"not a database file" * 256)

        with pytest.raises(GraphUnavailable):
            await graph.get_node(NodeKind.ORGANIZATION, "acme")

    @pytest.mark.asyncio
    async def test_attach_domain_with_records(self, graph):
        """Zone records are contained by the domain they are attached with."""
        await self._world(graph)

        await graph.attach_domain(
            HOST,
            "new.io",
            "acme",
            [
                GraphRecord("new.io:10", "SOA", "ns1.new.io hostmaster.new.io 1 10800 3600 604800 3600"),
                GraphRecord("new.io:11", "NS", "ns1.new.io"),
            ],
        )

        assert await graph.domain_owner("new.io") == "acme"
        records = await graph.domain_records("new.io")
        assert sorted(r.key for r in records) == ["new.io:10", "new.io:11"]

    @pytest.mark.asyncio
    async def test_attach_domain_record_clash_rolls_back(self, graph):
        await self._world(graph)
        await graph.create_record("acme.io", "acme.io:10", "NS", "ns1.acme.io")

        with pytest.raises(DuplicateName):
            await graph.attach_domain(
                HOST, "new.io", "acme", [GraphRecord("acme.io:10", "NS", "ns1.acme.io")]
            )

        assert not await graph.node_exists(NodeKind.DOMAIN, "new.io")
        assert [r.key for r in await graph.domain_records("acme.io")] == ["acme.io:10"]

    @pytest.mark.asyncio
    async def test_grant_administration(self, graph):
        """A pending request becomes administersOrg plus worksFor."""
        await self._world(graph)
        await graph.create_node(NodeKind.PRINCIPAL, {"name": "alice"})
        await graph.create_edge(EdgeKind.REQUESTS_ORG, "alice", "acme")

        await graph.grant_administration("alice", "acme")

        assert await graph.get_edge(EdgeKind.REQUESTS_ORG, "alice", "acme") is None
        assert await graph.get_edge(EdgeKind.ADMINISTERS_ORG, "alice", "acme") is not None
        assert await graph.get_edge(EdgeKind.WORKS_FOR, "alice", "acme") is not None

    @pytest.mark.asyncio
    async def test_grant_administration_without_request(self, graph):
        await self._world(graph)
        await graph.create_node(NodeKind.PRINCIPAL, {"name": "alice"})

        with pytest.raises(NotFoundError):
            await graph.grant_administration("alice", "acme")

        assert await graph.get_edge(EdgeKind.ADMINISTERS_ORG, "alice", "acme") is None
        assert await graph.get_edge(EdgeKind.WORKS_FOR, "alice", "acme") is None

    @pytest.mark.asyncio
    async def test_grant_administration_is_atomic(self, graph, monkeypatch):
        """A failing worksFor insert keeps the request and grants nothing."""
        await self._world(graph)
        await graph.create_node(NodeKind.PRINCIPAL, {"name": "alice"})
        await graph.create_edge(EdgeKind.REQUESTS_ORG, "alice", "acme")

        insert_edge = graph._insert_edge

        def failing_insert_edge(conn, kind, *args):
            if kind == EdgeKind.WORKS_FOR:
                raise GraphUnavailable("disk I/O error")
            return insert_edge(conn, kind, *args)

        monkeypatch.setattr(graph, "_insert_edge", failing_insert_edge)

        with pytest.raises(GraphUnavailable):
            await graph.grant_administration("alice", "acme")

        assert await graph.get_edge(EdgeKind.REQUESTS_ORG, "alice", "acme") is not None
        assert await graph.get_edge(EdgeKind.ADMINISTERS_ORG, "alice", "acme") is None
