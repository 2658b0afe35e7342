"""
Unit tests for the delegation quota enforcer.
"""

import pytest

from ons.acl_server.authority import QuotaVerdict
from ons.acl_server.cache import quota_key
from ons.acl_server.errors import QuotaExceeded
from ons.acl_server.identity import Caller

ACME = Caller.organization("acme")


async def _delegated_records(service, organization, count, start=1):
    for i in range(start, start + count):
        await service.graph.create_record(
            "acme.io", f"r{i}.acme.io:{i}", "A", "10.0.0.1", delegatee=organization
        )


class TestQuotaEnforcer:
    """Tests for QuotaEnforcer."""

    @pytest.mark.asyncio
    async def test_bound_reached(self, acme):
        """Three delegated records under bound 3 exceed the quota."""
        await acme.delegations.delegate(ACME, "acme.io", "bob", 3)
        await _delegated_records(acme, "bob", 3)

        assert await acme.quota.is_exceeded_bound("bob", "acme.io") == QuotaVerdict.EXCEEDED

        with pytest.raises(QuotaExceeded) as exc_info:
            await acme.quota.check("bob", "acme.io")
        assert exc_info.value.bound == 3

    @pytest.mark.asyncio
    async def test_below_bound(self, acme):
        await acme.delegations.delegate(ACME, "acme.io", "bob", 3)
        await _delegated_records(acme, "bob", 2)

        assert await acme.quota.is_exceeded_bound("bob", "acme.io") == QuotaVerdict.OK

    @pytest.mark.asyncio
    async def test_unbounded(self, acme):
        """Bound 0 allows the 100th record."""
        await acme.delegations.delegate(ACME, "acme.io", "bob", 0)
        await _delegated_records(acme, "bob", 99)

        assert await acme.quota.is_exceeded_bound("bob", "acme.io") == QuotaVerdict.OK
        assert await acme.cache.get(quota_key("bob", "acme.io")) == "no"

    @pytest.mark.asyncio
    async def test_records_of_other_delegatees_not_counted(self, acme):
        await acme.delegations.delegate(ACME, "acme.io", "bob", 1)
        await acme.delegations.delegate(ACME, "acme.io", "carol", 0)
        await _delegated_records(acme, "carol", 3)

        assert await acme.quota.is_exceeded_bound("bob", "acme.io") == QuotaVerdict.OK

    @pytest.mark.asyncio
    async def test_rebinding_evicts_unbounded_verdict(self, acme):
        """Lowering a bound from unlimited takes effect immediately."""
        await acme.delegations.delegate(ACME, "acme.io", "bob", 0)
        await _delegated_records(acme, "bob", 2)
        assert await acme.quota.is_exceeded_bound("bob", "acme.io") == QuotaVerdict.OK

        await acme.delegations.delegate(ACME, "acme.io", "bob", 2)

        assert await acme.quota.is_exceeded_bound("bob", "acme.io") == QuotaVerdict.EXCEEDED
