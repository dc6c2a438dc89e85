# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Compiled resource graph.

The graph owns its resources in an ordered list. Each resource refers
back to its owner through a handle (graph id + position) rather than a
direct reference, so the graph and its resources never form a reference
cycle. The handle is lost in transit and restored by ``relink()``.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from nodeagent.models import CollectionPayload


@dataclass
class Resource:
    """A declarative resource compiled for this node.

    Attributes:
        resource_type: Resource type, e.g. ``package`` or ``service``
        name: Resource name
        params: Resource parameters, opaque to the agent
        graph_id: Id of the owning graph (None until linked)
        index: Position within the owning graph (None until linked)
    """

    resource_type: str
    name: str
    params: Dict[str, Any] = field(default_factory=dict)
    graph_id: Optional[str] = None
    index: Optional[int] = None

    @property
    def key(self) -> str:
        """Lookup key in ``type[name]`` form."""
        return f"{self.resource_type}[{self.name}]"

    @property
    def linked(self) -> bool:
        return self.graph_id is not None and self.index is not None


@dataclass
class CompiledResourceGraph:
    """Ordered resource collection for one node.

    Attributes:
        resources: The resources, in execution order
        graph_id: Unique id referenced by each linked resource
    """

    resources: List[Resource] = field(default_factory=list)
    graph_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __len__(self) -> int:
        return len(self.resources)

    def __iter__(self) -> Iterator[Resource]:
        return iter(self.resources)

    def __getitem__(self, index: int) -> Resource:
        return self.resources[index]

    def relink(self) -> None:
        """Point every resource's handle at this graph."""
        for index, resource in enumerate(self.resources):
            resource.graph_id = self.graph_id
            resource.index = index

    def owns(self, resource: Resource) -> bool:
        """True if the resource's handle resolves to itself in this graph."""
        if resource.graph_id != self.graph_id or resource.index is None:
            return False
        if not 0 <= resource.index < len(self.resources):
            return False
        return self.resources[resource.index] is resource

    def lookup(self, key: str) -> Resource:
        """Find a resource by its ``type[name]`` key.

        Raises:
            KeyError: If no resource has that key
        """
        for resource in self.resources:
            if resource.key == key:
                return resource
        raise KeyError(key)

    @classmethod
    def from_payload(cls, payload: CollectionPayload) -> "CompiledResourceGraph":
        """Build an unlinked graph from a compile response collection."""
        return cls(
            resources=[
                Resource(
                    resource_type=item.resource_type,
                    name=item.name,
                    params=dict(item.params),
                )
                for item in payload.resources
            ]
        )
