# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Tests for the node model and node identity builder."""

import pytest

from nodeagent.exceptions import IdentityUnresolvedError, ServiceUnavailableError
from nodeagent.facts import StaticFactSource, SystemFactSource
from nodeagent.node import Node, NodeIdentityBuilder, safe_identifier


# =========================================================================
# Safe identifier
# =========================================================================


class TestSafeIdentifier:

    @pytest.mark.parametrize("name,expected", [
        ("web1.example.com", "web1_example_com"),
        ("a..b.", "a__b_"),
        ("nodots", "nodots"),
        ("", ""),
    ])
    def test_dots_become_underscores(self, name, expected):
        assert safe_identifier(name) == expected

    @pytest.mark.parametrize("name", ["web1.example.com", "x.y", "plain", "..."])
    def test_idempotent(self, name):
        once = safe_identifier(name)
        assert safe_identifier(once) == once
        assert "." not in once

    def test_node_safe_id_follows_name(self):
        node = Node("db.internal")
        assert node.safe_id == "db_internal"
        node.name = "db2.internal"
        assert node.safe_id == "db2_internal"


# =========================================================================
# Node mapping behaviour
# =========================================================================


class TestNode:

    def test_mapping_access(self):
        node = Node("web1", {"a": 1})
        node["b"] = 2
        assert node["a"] == 1
        assert "b" in node
        assert node.get("missing", "x") == "x"
        assert sorted(node) == ["a", "b"]
        assert len(node) == 2

    def test_payload_round_trip_keeps_name_and_attributes(self):
        node = Node("web1.example.com", {"nested": {"k": [1, 2]}})
        copy = Node.from_payload(node.to_payload())
        assert copy.name == node.name
        assert copy.attributes == node.attributes


# =========================================================================
# Name resolution
# =========================================================================


class TestResolveName:

    def test_explicit_name_wins(self):
        assert NodeIdentityBuilder.resolve_name({"fqdn": "a.b"}, "given") == "given"

    def test_fqdn_before_hostname(self):
        assert NodeIdentityBuilder.resolve_name({"fqdn": "a.b", "hostname": "a"}) == "a.b"

    def test_hostname_fallback(self):
        assert NodeIdentityBuilder.resolve_name({"fqdn": None, "hostname": "a"}) == "a"

    def test_unresolved(self):
        with pytest.raises(IdentityUnresolvedError):
            NodeIdentityBuilder.resolve_name({"os": "linux"})


# =========================================================================
# Build
# =========================================================================


class TestBuildNode:

    @pytest.mark.asyncio
    async def test_new_node_has_only_name_before_facts(self, service_client, fake_service):
        builder = NodeIdentityBuilder(service_client, StaticFactSource({"hostname": "web1"}))

        node = await builder.build()
        assert node.name == "web1"
        # Nothing but the merged fact.
        assert node.attributes == {"hostname": "web1"}
        assert fake_service.calls("GET", "nodes/web1")

    @pytest.mark.asyncio
    async def test_existing_node_overlaid_by_facts(self, service_client, fake_service, fact_source):
        fake_service.nodes["web1_example_com"] = {
            "name": "web1.example.com",
            "attributes": {"os": "solaris", "role": "web"},
        }
        builder = NodeIdentityBuilder(service_client, fact_source)

        node = await builder.build()
        assert node["role"] == "web"
        assert node["os"] == "linux"  # fact wins over stored value
        assert node["fqdn"] == "web1.example.com"

    @pytest.mark.asyncio
    async def test_explicit_name_used_for_lookup(self, service_client, fake_service, fact_source):
        builder = NodeIdentityBuilder(service_client, fact_source)

        node = await builder.build("db.example.com")
        assert node.name == "db.example.com"
        assert fake_service.calls("GET", "nodes/db_example_com")

    @pytest.mark.asyncio
    async def test_service_error_is_fatal(self, service_client, fake_service, fact_source):
        fake_service.fail("GET", "nodes/web1_example_com", 500)
        builder = NodeIdentityBuilder(service_client, fact_source)

        with pytest.raises(ServiceUnavailableError):
            await builder.build()

    @pytest.mark.asyncio
    async def test_unresolved_name_makes_no_remote_call(self, service_client, fake_service):
        builder = NodeIdentityBuilder(service_client, StaticFactSource({"os": "linux"}))

        with pytest.raises(IdentityUnresolvedError):
            await builder.build()
        assert fake_service.requests == []

    @pytest.mark.asyncio
    async def test_build_performs_no_writes(self, service_client, fake_service, fact_source):
        builder = NodeIdentityBuilder(service_client, fact_source)
        await builder.build()
        assert all(method == "GET" for method, _, _ in fake_service.requests)


# =========================================================================
# Fact sources
# =========================================================================


class TestFactSources:

    def test_static_source_returns_copy(self):
        source = StaticFactSource({"a": 1})
        facts = source.facts()
        facts["a"] = 2
        assert source.facts() == {"a": 1}

    def test_system_source_reports_platform(self):
        facts = SystemFactSource().facts()
        assert "os" in facts
        assert "python_version" in facts
        if "fqdn" in facts:
            assert "." in facts["fqdn"]

    def test_system_source_omits_unresolvable_names(self, monkeypatch):
        import socket

        def boom(*args):
            raise OSError("no resolver")

        monkeypatch.setattr(socket, "gethostname", boom)
        monkeypatch.setattr(socket, "getfqdn", boom)
        facts = SystemFactSource().facts()
        assert "hostname" not in facts
        assert "fqdn" not in facts
        assert "ipaddress" not in facts
