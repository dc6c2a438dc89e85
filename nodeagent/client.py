# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Node lifecycle orchestrator.

Runs one full client pass, strictly in order:

    START -> NODE_BUILT -> REGISTERED -> AUTHENTICATED
          -> ATTRIBUTES_APPLIED -> CONVERGING -> DONE

Each step blocks on its remote calls before the next one starts. Any
exception moves the run to FAILED and is re-raised unchanged; there is
no retry and no resume. A new run needs a new orchestrator.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from nodeagent.attributes import AttributeApplier
from nodeagent.auth import AuthenticationHandshake, Session
from nodeagent.config import AgentConfig
from nodeagent.converge import ConvergenceTrigger, ExecutionEngine, load_execution_engine
from nodeagent.exceptions import LifecycleError
from nodeagent.facts import FactSource, SystemFactSource
from nodeagent.graph import CompiledResourceGraph
from nodeagent.node import Node, NodeIdentityBuilder
from nodeagent.registration import Credential, RegistrationManager
from nodeagent.rest import ConfigServiceClient
from nodeagent.secret_store import SecretStore, get_secret_store

log = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    START = "start"
    NODE_BUILT = "node_built"
    REGISTERED = "registered"
    AUTHENTICATED = "authenticated"
    ATTRIBUTES_APPLIED = "attributes_applied"
    CONVERGING = "converging"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunResult:
    """What a successful run produced."""

    node: Node
    credential: Credential
    session: Session
    attribute_files: list[str]
    compiled_node: Node
    graph: CompiledResourceGraph
    history: list[LifecycleState] = field(default_factory=list)

    def summary(self) -> dict:
        return {
            "node": self.node.name,
            "safe_id": self.node.safe_id,
            "state": self.history[-1].value if self.history else None,
            "attribute_files": len(self.attribute_files),
            "resources": len(self.graph),
        }


class LifecycleOrchestrator:
    """Sequences identity, registration, auth, attributes and convergence."""

    def __init__(
        self,
        service: ConfigServiceClient,
        fact_source: FactSource,
        secret_store: SecretStore,
        engine: ExecutionEngine,
        openid_url: str,
        node_name: Optional[str] = None,
    ):
        self.service = service
        self.node_name = node_name
        self.identity = NodeIdentityBuilder(service, fact_source)
        self.registration = RegistrationManager(service, secret_store)
        self.handshake = AuthenticationHandshake(service, openid_url)
        self.attributes = AttributeApplier(service)
        self.convergence = ConvergenceTrigger(service, engine)

        self.state = LifecycleState.START
        self.history: list[LifecycleState] = [LifecycleState.START]
        self.failed_at: Optional[LifecycleState] = None
        self.error: Optional[BaseException] = None
        self.safe_id: Optional[str] = None

    @classmethod
    def from_config(
        cls,
        config: AgentConfig,
        fact_source: Optional[FactSource] = None,
        engine: Optional[ExecutionEngine] = None,
    ) -> "LifecycleOrchestrator":
        """Wire the default collaborators from a config."""
        if engine is None:
            engine = load_execution_engine(config.execution_engine)
        return cls(
            service=ConfigServiceClient(config.server_url, timeout=config.http_timeout),
            fact_source=fact_source or SystemFactSource(),
            secret_store=get_secret_store(config.data_dir),
            engine=engine,
            openid_url=config.openid_url,
            node_name=config.node_name,
        )

    def _advance(self, state: LifecycleState) -> None:
        self.state = state
        self.history.append(state)
        log.info(
            f"Lifecycle -> {state.value}",
            extra={"safe_id": self.safe_id, "state": state.value},
        )

    async def run(self, node_name: Optional[str] = None) -> RunResult:
        """Perform one full lifecycle pass.

        Raises:
            LifecycleError: If this orchestrator has already run
            NodeAgentError: Whatever the failing step raised
        """
        if self.state is not LifecycleState.START:
            raise LifecycleError(
                f"Lifecycle already ran (state={self.state.value}); start a new run"
            )

        target = LifecycleState.NODE_BUILT
        try:
            node = await self.identity.build(node_name or self.node_name)
            self.safe_id = node.safe_id
            self._advance(target)

            target = LifecycleState.REGISTERED
            credential = await self.registration.ensure(node)
            self._advance(target)

            target = LifecycleState.AUTHENTICATED
            session = await self.handshake.authenticate(node, credential)
            self._advance(target)

            target = LifecycleState.ATTRIBUTES_APPLIED
            applied = await self.attributes.apply(node)
            self._advance(target)

            target = LifecycleState.CONVERGING
            await self.convergence.save(node)
            self._advance(target)

            target = LifecycleState.DONE
            compiled_node, graph = await self.convergence.hand_off(node)
            self._advance(target)
        except Exception as e:
            self.failed_at = target
            self.error = e
            self.state = LifecycleState.FAILED
            self.history.append(LifecycleState.FAILED)
            log.error(
                f"Lifecycle failed before reaching {target.value}: {e}",
                extra={"safe_id": self.safe_id, "state": LifecycleState.FAILED.value},
            )
            raise

        return RunResult(
            node=node,
            credential=credential,
            session=session,
            attribute_files=applied,
            compiled_node=compiled_node,
            graph=graph,
            history=list(self.history),
        )

    async def close(self) -> None:
        await self.service.close()
