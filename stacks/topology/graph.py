"""Explicit dependency graph of the resources that make up a stage.

Each node names the nodes it consumes. The graph is ordered with Kahn's
algorithm before anything is built, so an unknown dependency or a cycle
is reported without creating a single construct. A builder only ever
receives the outputs of the dependencies it declared.
"""
from __future__ import annotations

import dataclasses
import heapq
from collections import defaultdict
from typing import Any, Callable, Iterable, Mapping

from stacks.topology.errors import AttachmentError

Builder = Callable[[Mapping[str, Any]], Any]


@dataclasses.dataclass(frozen=True)
class ResourceNode:
    """One resource: its name, how to build it and what it consumes."""

    name: str
    builder: Builder
    depends_on: tuple[str, ...] = ()


class ResourceGraph:
    """Directed acyclic graph of resource builders."""

    def __init__(self) -> None:
        self._nodes: dict[str, ResourceNode] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def add(self, name: str, builder: Builder, depends_on: Iterable[str] = ()) -> "ResourceGraph":
        """Register a resource builder.

        Args:
            name: Unique resource name, used as the key of the built outputs.
            builder: Callable receiving the outputs of ``depends_on`` by name.
            depends_on: Names of the resources this one consumes. Duplicates
                are collapsed. The names may be registered later.

        Returns:
            The graph itself, so registrations can be chained.

        Raises:
            AttachmentError: ``name`` is already registered or lists itself.
        """
        if name in self._nodes:
            raise AttachmentError(f"Resource '{name}' is already registered")
        deps = tuple(dict.fromkeys(depends_on))
        if name in deps:
            raise AttachmentError(f"Resource '{name}' depends on itself")
        self._nodes[name] = ResourceNode(name=name, builder=builder, depends_on=deps)
        return self

    def dependencies(self, name: str) -> tuple[str, ...]:
        return self._nodes[name].depends_on

    def _validate_references(self) -> None:
        """Raise AttachmentError for a dependency nobody registered."""
        for node in self._nodes.values():
            for dep in node.depends_on:
                if dep not in self._nodes:
                    raise AttachmentError(f"Resource '{node.name}' depends on unknown resource '{dep}'")

    def topological_order(self) -> list[str]:
        """Return node names so that every node follows its dependencies.

        Among nodes that are ready at the same time, the one registered first
        wins, which keeps the order stable between runs.

        Raises:
            AttachmentError: a dependency is unknown or the nodes form a cycle.
        """
        self._validate_references()

        position = {name: i for i, name in enumerate(self._nodes)}
        in_degree = {name: len(node.depends_on) for name, node in self._nodes.items()}
        dependents: dict[str, list[str]] = defaultdict(list)
        for node in self._nodes.values():
            for dep in node.depends_on:
                dependents[dep].append(node.name)

        ready = [(position[name], name) for name, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)
        order: list[str] = []

        while ready:
            _, name = heapq.heappop(ready)
            order.append(name)
            for dependent in dependents[name]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, (position[dependent], dependent))

        if len(order) != len(self._nodes):
            blocked = [name for name, degree in in_degree.items() if degree > 0]
            raise AttachmentError(f"Dependency cycle detected among resources: {blocked}")
        return order

    def build(self) -> dict[str, Any]:
        """Build every node in topological order.

        Ordering is computed first, so an inconsistent graph raises
        AttachmentError before any builder has run.

        Returns:
            Builder outputs keyed by resource name.
        """
        built: dict[str, Any] = {}
        for name in self.topological_order():
            node = self._nodes[name]
            inputs = {dep: built[dep] for dep in node.depends_on}
            built[name] = node.builder(inputs)
        return built
