"""
Explicit resource graph for the two stacks.

Each unit plans its resources as nodes first, then materialises pulumi
resources from the plan, so dependencies are declared on the node rather
than implied by the order of constructor calls.
"""
import enum
import graphlib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Tuple

from magicmail_infra.errors import TopologyError


class ResourceKind(enum.Enum):
    BUCKET = "bucket"
    INSTANCE = "instance"
    DISK = "disk"
    ADDRESS = "address"
    RULE = "rule"
    ROLE = "role"


@dataclass(frozen=True)
class ResourceNode:
    kind: ResourceKind
    name: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    depends_on: Tuple[str, ...] = ()


class Topology:

    def __init__(self, nodes=()):
        self._nodes: Dict[str, ResourceNode] = {}
        for node in nodes:
            self.add(node)

    def add(self, node: ResourceNode) -> ResourceNode:
        if node.name in self._nodes:
            raise TopologyError(f"duplicate resource name {node.name!r}")
        unknown = [d for d in node.depends_on if d not in self._nodes]
        if unknown:
            # nodes may only depend on what is already planned, which also rules out cycles
            raise TopologyError(f"{node.name!r} depends on unplanned {', '.join(unknown)}")
        self._nodes[node.name] = node
        return node

    def __getitem__(self, name: str) -> ResourceNode:
        return self._nodes[name]

    def __contains__(self, name) -> bool:
        return name in self._nodes

    def __iter__(self) -> Iterator[ResourceNode]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def of_kind(self, kind: ResourceKind) -> List[ResourceNode]:
        return [n for n in self._nodes.values() if n.kind is kind]

    def dependency_order(self) -> List[ResourceNode]:
        sorter = graphlib.TopologicalSorter(
            {name: node.depends_on for name, node in self._nodes.items()})
        return [self._nodes[name] for name in sorter.static_order()]
