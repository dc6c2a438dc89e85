# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Tests for node save, compile and engine hand-off."""

import pytest

from nodeagent.converge import (
    ConvergenceTrigger,
    LoggingExecutionEngine,
    load_execution_engine,
)
from nodeagent.exceptions import ConfigError, ServiceUnavailableError
from nodeagent.node import Node

RESOURCES = [
    {"type": "package", "name": "nginx"},
    {"type": "service", "name": "nginx", "params": {"action": "start"}},
]


class AsyncEngine:
    """Engine whose converge() is a coroutine."""

    def __init__(self):
        self.calls = []

    async def converge(self, node, graph):
        self.calls.append((node.name, [r.key for r in graph]))


# Module-level objects for load_execution_engine path tests.
READY_ENGINE = LoggingExecutionEngine()
NOT_AN_ENGINE = 42


def engine_factory():
    return AsyncEngine()


class TestSave:

    @pytest.mark.asyncio
    async def test_put_carries_full_node(self, service_client, fake_service, engine):
        node = Node("web1.example.com", {"role": "web", "ports": [80, 443]})

        await ConvergenceTrigger(service_client, engine).save(node)
        puts = fake_service.calls("PUT")
        assert puts == [(
            "PUT",
            "nodes/web1_example_com",
            {"name": "web1.example.com", "attributes": {"role": "web", "ports": [80, 443]}},
        )]

    @pytest.mark.asyncio
    async def test_save_failure_is_fatal(self, service_client, fake_service, engine):
        fake_service.fail("PUT", "nodes/web1", 503)

        with pytest.raises(ServiceUnavailableError):
            await ConvergenceTrigger(service_client, engine).save(Node("web1"))


class TestHandOff:

    @pytest.mark.asyncio
    async def test_converge_saves_then_compiles(self, service_client, fake_service, engine):
        fake_service.resources = RESOURCES
        node = Node("web1", {"role": "web"})

        compiled_node, graph = await ConvergenceTrigger(service_client, engine).converge(node)
        methods = [(m, p) for m, p, _ in fake_service.requests]
        assert methods == [("PUT", "nodes/web1"), ("GET", "nodes/web1/compile")]
        assert compiled_node.attributes == {"role": "web"}
        assert [r.key for r in graph] == ["package[nginx]", "service[nginx]"]

    @pytest.mark.asyncio
    async def test_engine_receives_relinked_graph(self, service_client, fake_service, engine):
        fake_service.resources = RESOURCES
        fake_service.nodes["web1"] = {"name": "web1", "attributes": {}}

        _, graph = await ConvergenceTrigger(service_client, engine).hand_off(Node("web1"))
        assert len(engine.converged) == 1
        handed_node, handed_graph = engine.converged[0]
        assert handed_graph is graph
        assert handed_node.name == "web1"
        assert all(handed_graph.owns(r) for r in handed_graph)

    @pytest.mark.asyncio
    async def test_async_engine_is_awaited(self, service_client, fake_service):
        fake_service.resources = RESOURCES
        fake_service.nodes["web1"] = {"name": "web1", "attributes": {}}
        engine = AsyncEngine()

        await ConvergenceTrigger(service_client, engine).hand_off(Node("web1"))
        assert engine.calls == [("web1", ["package[nginx]", "service[nginx]"])]

    @pytest.mark.asyncio
    async def test_compile_failure_skips_engine(self, service_client, fake_service, engine):
        fake_service.nodes["web1"] = {"name": "web1", "attributes": {}}
        fake_service.fail("GET", "nodes/web1/compile", 500)

        with pytest.raises(ServiceUnavailableError):
            await ConvergenceTrigger(service_client, engine).hand_off(Node("web1"))
        assert engine.converged == []


class TestLoadExecutionEngine:

    def test_default_engine_class(self):
        engine = load_execution_engine("nodeagent.converge:LoggingExecutionEngine")
        assert isinstance(engine, LoggingExecutionEngine)

    def test_ready_instance_used_as_is(self):
        assert load_execution_engine("tests.test_converge:READY_ENGINE") is READY_ENGINE

    def test_factory_function_is_called(self):
        assert isinstance(load_execution_engine("tests.test_converge:engine_factory"), AsyncEngine)

    @pytest.mark.parametrize("path", [
        "nodeagent.converge",
        ":LoggingExecutionEngine",
        "nodeagent.converge:",
        "nodeagent.no_such_module:Engine",
        "nodeagent.converge:NoSuchEngine",
        "tests.test_converge:NOT_AN_ENGINE",
    ])
    def test_bad_paths_raise_config_error(self, path):
        with pytest.raises(ConfigError) as exc_info:
            load_execution_engine(path)
        assert exc_info.value.code == "ENGINE_IMPORT_FAILED"
