# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Node model and node identity builder.

The node is the host's configuration identity: its canonical name, the
dot-free safe identifier used as the remote key, and the attribute
mapping built from the stored node, host facts and attribute files.
"""

import logging
from typing import Any, Iterator, Optional

from nodeagent.exceptions import IdentityUnresolvedError, NotFoundError
from nodeagent.facts import FactSource
from nodeagent.models import NodePayload
from nodeagent.rest import ConfigServiceClient

log = logging.getLogger(__name__)


def safe_identifier(name: str) -> str:
    """Derive the remote resource key for a node name (dots become underscores)."""
    return name.replace(".", "_")


class Node:
    """A managed host's configuration state.

    Attributes are reached mapping-style (``node["key"]``). The safe
    identifier is derived from the name on every access so the two can
    never disagree.
    """

    def __init__(self, name: str, attributes: Optional[dict[str, Any]] = None):
        self.name = name
        self.attributes: dict[str, Any] = dict(attributes or {})

    @property
    def safe_id(self) -> str:
        return safe_identifier(self.name)

    def __getitem__(self, key: str) -> Any:
        return self.attributes[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self.attributes

    def __iter__(self) -> Iterator[str]:
        return iter(self.attributes)

    def __len__(self) -> int:
        return len(self.attributes)

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    def merge(self, values: dict[str, Any]) -> None:
        """Overlay values onto the attributes; incoming values win."""
        self.attributes.update(values)

    def to_payload(self) -> NodePayload:
        return NodePayload(name=self.name, attributes=self.attributes)

    @classmethod
    def from_payload(cls, payload: NodePayload) -> "Node":
        return cls(payload.name, payload.attributes)

    def __repr__(self) -> str:
        return f"Node(name={self.name!r}, attributes={len(self.attributes)})"


class NodeIdentityBuilder:
    """Resolves the node name, fetches or creates the node, merges facts."""

    def __init__(self, service: ConfigServiceClient, fact_source: FactSource):
        self._service = service
        self._fact_source = fact_source

    @staticmethod
    def resolve_name(facts: dict[str, Any], explicit_name: Optional[str] = None) -> str:
        """Pick the node name: explicit, then fqdn fact, then hostname fact."""
        if explicit_name:
            return explicit_name
        for fact in ("fqdn", "hostname"):
            value = facts.get(fact)
            if value:
                return str(value)
        raise IdentityUnresolvedError()

    async def build(self, explicit_name: Optional[str] = None) -> Node:
        """Build the node for this run. Performs no remote writes."""
        facts = self._fact_source.facts()
        name = self.resolve_name(facts, explicit_name)
        safe_id = safe_identifier(name)

        try:
            payload = await self._service.get_node(safe_id)
            node = Node.from_payload(payload)
            log.info(f"Fetched existing node {name} ({safe_id})")
        except NotFoundError:
            node = Node(name)
            log.info(f"No node stored for {safe_id}; starting a new one")

        # The stored name may be stale; this run's name is authoritative.
        node.name = name
        node.merge(facts)
        return node
