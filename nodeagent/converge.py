# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Node save and convergence hand-off.

Saves the node, fetches the compiled resource graph, re-links it and
passes it to the execution engine. What the engine does with the graph
is outside the agent's contract.
"""

import importlib
import inspect
import logging
from typing import Any, Protocol

from nodeagent.exceptions import ConfigError
from nodeagent.graph import CompiledResourceGraph
from nodeagent.node import Node
from nodeagent.rest import ConfigServiceClient

log = logging.getLogger(__name__)


class ExecutionEngine(Protocol):
    """Consumes a node and its compiled graph. ``converge`` may be async."""

    def converge(self, node: Node, graph: CompiledResourceGraph) -> Any:
        ...


class LoggingExecutionEngine:
    """Stand-in engine that only logs the resources it is handed."""

    def __init__(self) -> None:
        self.converged: list[tuple[Node, CompiledResourceGraph]] = []

    def converge(self, node: Node, graph: CompiledResourceGraph) -> None:
        log.info(f"Converging {node.name} with {len(graph)} resources")
        for resource in graph:
            log.info(f"  {resource.key}")
        self.converged.append((node, graph))


def load_execution_engine(path: str) -> ExecutionEngine:
    """Import ``module:attribute`` and instantiate it if it is a class.

    Raises:
        ConfigError: If the path is malformed or cannot be imported
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError.engine_import(path, "expected 'module:attribute'")
    try:
        module = importlib.import_module(module_name)
        target = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigError.engine_import(path, str(e)) from e

    # Classes and factory functions are called; ready instances are used as is.
    if inspect.isclass(target) or (callable(target) and not hasattr(target, "converge")):
        engine = target()
    else:
        engine = target
    if not hasattr(engine, "converge"):
        raise ConfigError.engine_import(path, "object has no converge() method")
    return engine


class ConvergenceTrigger:
    """Persists the node and hands the compiled graph to the engine."""

    def __init__(self, service: ConfigServiceClient, engine: ExecutionEngine):
        self._service = service
        self._engine = engine

    async def save(self, node: Node) -> None:
        """Overwrite the node stored on the service."""
        await self._service.save_node(node.safe_id, node.to_payload())
        log.info(f"Saved node {node.safe_id}")

    async def converge(self, node: Node) -> tuple[Node, CompiledResourceGraph]:
        """Save the node, then fetch and hand off its compiled graph."""
        await self.save(node)
        return await self.hand_off(node)

    async def hand_off(self, node: Node) -> tuple[Node, CompiledResourceGraph]:
        """Fetch, re-link and hand off the compiled graph.

        Returns the compiled node snapshot and graph given to the engine.
        """
        compiled = await self._service.compile_node(node.safe_id)
        compiled_node = Node.from_payload(compiled.node)
        graph = CompiledResourceGraph.from_payload(compiled.collection)
        graph.relink()
        log.info(f"Compiled {len(graph)} resources for {node.safe_id}")

        result = self._engine.converge(compiled_node, graph)
        if inspect.isawaitable(result):
            await result
        return compiled_node, graph
