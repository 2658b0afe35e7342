"""
Unit tests for the host lifecycle and the host locator.
"""

import json

import pytest

from ons.acl_server.authority import Tier
from ons.acl_server.cache import mapped_host_key
from ons.acl_server.errors import (
    Diverged,
    DuplicateName,
    NotFoundError,
    RemoteStoreError,
    Unauthorized,
    ValidationError,
)
from ons.acl_server.graph import EdgeKind, NodeKind
from ons.acl_server.identity import Caller
from ons.acl_server.remote import RecordInput

HOST = "10.0.0.1:8080"
ACME = Caller.organization("acme")
BOB = Caller.organization("bob")
CAROL = Caller.organization("carol")


class TestRegisterHost:
    """Tests for register_host."""

    @pytest.mark.asyncio
    async def test_register_mirrors_existing_records(self, acme):
        seeded = acme.store.seed_record("10.0.0.2:53", "carol.io", "www.carol.io", "A", "5.5.5.5")

        host = await acme.hosts.register_host(CAROL, "10.0.0.2", 53, "pdns", "pw")

        assert host.name == "10.0.0.2:53"
        assert await acme.graph.domain_owner("carol.io") == "carol"
        assert await acme.graph.host_domains("10.0.0.2:53") == ["carol.io"]
        records = await acme.graph.domain_records("carol.io")
        assert [r.key for r in records] == [f"www.carol.io:{seeded.id}"]

        report = await acme.records.divergence("carol.io")
        assert report.diverged is False

    @pytest.mark.asyncio
    async def test_fixture_host(self, acme):
        assert await acme.graph.administered_hosts("acme") == [HOST]
        assert sorted(await acme.graph.host_domains(HOST)) == ["acme.io", "empty.io"]

    @pytest.mark.asyncio
    async def test_duplicate_host(self, acme):
        with pytest.raises(DuplicateName):
            await acme.hosts.register_host(BOB, "10.0.0.1", 8080, "pdns", "secret")

    @pytest.mark.asyncio
    async def test_domain_clash_leaves_graph_unchanged(self, acme):
        """A host serving an already-owned domain is rejected as a whole."""
        acme.store.seed_domain("10.0.0.3:53", "fresh.io")
        acme.store.seed_domain("10.0.0.3:53", "acme.io")

        with pytest.raises(DuplicateName):
            await acme.hosts.register_host(BOB, "10.0.0.3", 53, "pdns", "pw")

        assert await acme.graph.get_host("10.0.0.3:53") is None
        assert not await acme.graph.node_exists(NodeKind.DOMAIN, "fresh.io")

    @pytest.mark.asyncio
    async def test_invalid_address(self, acme):
        with pytest.raises(ValidationError):
            await acme.hosts.register_host(BOB, "300.0.0.1", 53, "pdns", "pw")

        assert all(call.host == HOST for call in acme.store.calls_to("list_domains"))

    @pytest.mark.asyncio
    async def test_invalid_credentials(self, acme):
        with pytest.raises(ValidationError):
            await acme.hosts.register_host(BOB, "10.0.0.4", 53, "pdns1", "pw")

    @pytest.mark.asyncio
    async def test_users_cannot_register(self, acme):
        with pytest.raises(Unauthorized):
            await acme.hosts.register_host(Caller.user("alice"), "10.0.0.5", 53, "pdns", "pw")


class TestAddDomain:
    """Tests for add_domain."""

    @pytest.mark.asyncio
    async def test_manager_adds_domain(self, acme):
        await acme.hosts.add_domain(ACME, HOST, "new.io")

        assert "new.io" in acme.store.domains(HOST)
        assert await acme.graph.domain_owner("new.io") == "acme"
        grant = await acme.resolver.resolve_domain(ACME, "new.io")
        assert grant.tier == Tier.OWNER

    @pytest.mark.asyncio
    async def test_non_manager_rejected(self, acme):
        await acme.delegations.delegate(ACME, "acme.io", "bob", 0)

        with pytest.raises(Unauthorized):
            await acme.hosts.add_domain(BOB, HOST, "bob.io")

        assert acme.store.calls_to("add_domain") == []

    @pytest.mark.asyncio
    async def test_existing_domain(self, acme):
        with pytest.raises(DuplicateName):
            await acme.hosts.add_domain(ACME, HOST, "acme.io")

        assert acme.store.calls_to("add_domain") == []

    @pytest.mark.asyncio
    async def test_remote_failure_leaves_graph_untouched(self, acme):
        acme.store.inject_failure("add_domain")

        with pytest.raises(RemoteStoreError):
            await acme.hosts.add_domain(ACME, HOST, "new.io")

        assert not await acme.graph.node_exists(NodeKind.DOMAIN, "new.io")

    @pytest.mark.asyncio
    async def test_zone_records_are_mirrored(self, acme):
        """The SOA and NS records the store seeds for a new zone land in the graph."""
        await acme.hosts.add_domain(ACME, HOST, "new.io")

        remote = acme.store.records(HOST, "new.io")
        assert sorted(r.type for r in remote) == ["NS", "SOA"]
        mirrored = await acme.graph.domain_records("new.io")
        assert sorted(r.key for r in mirrored) == sorted(f"new.io:{r.id}" for r in remote)

        report = await acme.records.divergence("new.io")
        assert report.diverged is False

    @pytest.mark.asyncio
    async def test_unlisted_zone_records_diverge(self, acme):
        acme.store.inject_failure("list_records", match="new.io")

        with pytest.raises(Diverged):
            await acme.hosts.add_domain(ACME, HOST, "new.io")

        assert "new.io" in acme.store.domains(HOST)
        assert not await acme.graph.node_exists(NodeKind.DOMAIN, "new.io")



class TestRemoveDomain:
    """Tests for remove_domain."""

    @pytest.mark.asyncio
    async def test_remove_empty_domain(self, acme):
        """A domain without records needs no record deletions."""
        removed = await acme.hosts.remove_domain(ACME, "empty.io")

        assert removed == 0
        assert acme.store.calls_to("remove_record") == []
        assert "empty.io" not in acme.store.domains(HOST)
        assert not await acme.graph.node_exists(NodeKind.DOMAIN, "empty.io")

    @pytest.mark.asyncio
    async def test_remove_domain_with_records(self, acme):
        await acme.delegations.delegate(ACME, "acme.io", "bob", 0)
        await acme.records.create_record(BOB, "acme.io", RecordInput(name="www", type="A", content="1.1.1.1"))

        removed = await acme.hosts.remove_domain(ACME, "acme.io")

        assert removed == 1
        assert await acme.graph.get_edges_from(EdgeKind.DELEGATE_OF, "bob") == []
        grant = await acme.resolver.resolve_domain(BOB, "acme.io")
        assert grant.tier == Tier.NONE

    @pytest.mark.asyncio
    async def test_only_owner_removes(self, acme):
        await acme.delegations.delegate(ACME, "acme.io", "bob", 0)

        with pytest.raises(Unauthorized):
            await acme.hosts.remove_domain(BOB, "acme.io")


class TestRemoveHost:
    """Tests for remove_host."""

    @pytest.mark.asyncio
    async def test_remove_host(self, acme):
        await acme.records.create_record(ACME, "acme.io", RecordInput(name="www", type="A", content="1.1.1.1"))

        domains = await acme.hosts.remove_host(ACME, HOST)

        assert sorted(domains) == ["acme.io", "empty.io"]
        assert acme.store.domains(HOST) == []
        assert await acme.graph.get_host(HOST) is None
        assert await acme.graph.list_nodes(NodeKind.RECORD) == []

    @pytest.mark.asyncio
    async def test_remote_failure_leaves_graph_untouched(self, acme):
        await acme.records.create_record(ACME, "acme.io", RecordInput(name="www", type="A", content="1.1.1.1"))
        acme.store.inject_failure("remove_domain", match="empty.io")

        with pytest.raises(RemoteStoreError):
            await acme.hosts.remove_host(ACME, HOST)

        assert await acme.graph.get_host(HOST) is not None
        assert sorted(await acme.graph.host_domains(HOST)) == ["acme.io", "empty.io"]
        assert len(await acme.graph.domain_records("acme.io")) == 1

    @pytest.mark.asyncio
    async def test_only_manager_removes(self, acme):
        with pytest.raises(Unauthorized):
            await acme.hosts.remove_host(CAROL, HOST)


class TestListing:
    """Tests for list_hosts / list_domains."""

    @pytest.mark.asyncio
    async def test_manager_view(self, acme):
        hosts = await acme.hosts.list_hosts(ACME)

        assert [(h.name, h.tier) for h in hosts] == [(HOST, Tier.MANAGER)]
        assert sorted(hosts[0].domains) == ["acme.io", "empty.io"]

    @pytest.mark.asyncio
    async def test_delegatee_view(self, acme):
        await acme.delegations.delegate(ACME, "acme.io", "bob", 0)

        hosts = await acme.hosts.list_hosts(BOB)

        assert [(h.name, h.tier, h.domains) for h in hosts] == [(HOST, Tier.DELEGATEE, ["acme.io"])]
        assert await acme.hosts.list_domains(BOB, HOST) == ["acme.io"]

    @pytest.mark.asyncio
    async def test_stranger_view(self, acme):
        assert await acme.hosts.list_hosts(CAROL) == []

        with pytest.raises(Unauthorized):
            await acme.hosts.list_domains(CAROL, HOST)


class TestHostLocator:
    """Tests for the domain -> host cache."""

    @pytest.mark.asyncio
    async def test_lookup_is_cached(self, acme):
        host = await acme.locator.host_for_domain("acme.io")

        assert host.name == HOST
        assert host.store_username == "pdns"
        cached = json.loads(await acme.cache.get(mapped_host_key("acme.io")))
        assert cached["name"] == HOST

    @pytest.mark.asyncio
    async def test_unknown_domain(self, acme):
        with pytest.raises(NotFoundError):
            await acme.locator.host_for_domain("nowhere.io")

    @pytest.mark.asyncio
    async def test_evict(self, acme):
        await acme.locator.host_for_domain("acme.io")

        await acme.locator.evict("acme.io")

        assert await acme.cache.get(mapped_host_key("acme.io")) is None
