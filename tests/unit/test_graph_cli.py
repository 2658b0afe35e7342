"""
Unit tests for the graph operator tool.
"""

import json
import sys

import pytest

from ons.acl_server.identity import Caller
from ons.acl_server.remote import RecordInput
from ons.acl_server.tools import graph_cli
from ons.acl_server.tools.graph_cli import GraphCLI


class TestGraphCLI:
    """Tests for GraphCLI commands."""

    @pytest.mark.asyncio
    async def test_stats(self, acme):
        await acme.records.create_record(
            Caller.organization("acme"), "acme.io", RecordInput(name="www", type="A", content="1.1.1.1")
        )

        stats = json.loads(await GraphCLI(acme).stats())

        assert stats["Organization"] == 3
        assert stats["Domain"] == 2
        assert stats["Record"] == 1
        assert stats["owns"] == 2
        assert stats["contains"] == 1
        assert stats["delegates"] == 0

    @pytest.mark.asyncio
    async def test_divergence_clean(self, acme):
        diverged, report = await GraphCLI(acme).divergence("acme.io")

        assert diverged is False
        assert json.loads(report)["domain"] == "acme.io"

    @pytest.mark.asyncio
    async def test_divergence_found(self, acme):
        stray = acme.store.seed_record("10.0.0.1:8080", "acme.io", "ftp.acme.io", "A", "4.4.4.4")

        diverged, report = await GraphCLI(acme).divergence("acme.io")

        assert diverged is True
        assert json.loads(report)["missing_in_graph"] == [stray.id]


class TestMain:
    """Tests for the command line entry point."""

    @pytest.fixture
    def env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GRAPH_DB_PATH", str(tmp_path / "graph.db"))
        monkeypatch.setenv("CACHE_BACKEND", "memory")
        monkeypatch.setattr(graph_cli, "setup_logging", lambda config: None)
        return monkeypatch

    def test_init_then_stats(self, env, capsys):
        env.setattr(sys, "argv", ["ons-acl", "init"])
        with pytest.raises(SystemExit) as exc_info:
            graph_cli.main()
        assert exc_info.value.code == 0

        env.setattr(sys, "argv", ["ons-acl", "stats"])
        with pytest.raises(SystemExit) as exc_info:
            graph_cli.main()
        assert exc_info.value.code == 0

        out = capsys.readouterr().out
        stats = json.loads(out[out.index("\n{") + 1:])
        assert stats["Organization"] == 0

    def test_unknown_domain_exits_2(self, env, capsys):
        env.setattr(sys, "argv", ["ons-acl", "divergence", "nowhere.io"])

        with pytest.raises(SystemExit) as exc_info:
            graph_cli.main()

        assert exc_info.value.code == 2
        assert "nowhere.io" in capsys.readouterr().err

    def test_configuration_error_exits_2(self, env):
        env.setenv("CACHE_BACKEND", "memcached")
        env.setattr(sys, "argv", ["ons-acl", "stats"])

        with pytest.raises(SystemExit) as exc_info:
            graph_cli.main()

        assert exc_info.value.code == 2
