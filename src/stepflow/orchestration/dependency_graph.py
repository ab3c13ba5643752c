"""Dependency Graph — step names and their prerequisites.

Manifesto:
    The graph is pure data. It knows nothing about actions or Outcomes; it
only answers ordering questions about names, so reporting tools can query it
without running a pipeline. It is validated once, at construction: an
unknown dependency or a cycle makes the graph unusable and raises.

ARCHITECTURE
────────────
::

    DependencyGraph({"a": [], "b": ["a"], "c": ["a"], "d": ["b", "c"]})
      ├── .topological_order()  → ["a", "b", "c", "d"]
      ├── .level_order()        → [["a"], ["b", "c"], ["d"]]
      ├── .reverse_order()      → ["d", "c", "b", "a"]
      ├── .subgraph("b")        → DependencyGraph({"a": [], "b": ["a"]})
      └── .merge(other)         → union of nodes, union of dependency sets

Ordering is deterministic: whenever several nodes are eligible, declaration
order decides. Hash ordering never leaks into the output.

Related modules:
    exceptions.py      — DependencyError, CycleDetectedError
    pipeline.py        — drives level_order() through the GroupExecutor

Tags:
    stepflow, orchestration, DAG, topological-sort, levels

Doc-Types:
    api-reference
"""

from __future__ import annotations

import heapq
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING

from stepflow.orchestration.exceptions import CycleDetectedError, DependencyError

if TYPE_CHECKING:
    from stepflow.orchestration.step_types import Step


def _unique(names: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(names))


class DependencyGraph:
    """
    Directed acyclic graph of step names.

    Args:
        dependencies: Mapping of step name → iterable of prerequisite names.
            ``None`` values are treated as no dependencies.

    Raises:
        DependencyError: A dependency names a node that is not declared.
        CycleDetectedError: The graph contains a cycle.
    """

    def __init__(self, dependencies: Mapping[str, Iterable[str] | None] | None = None) -> None:
        edges: dict[str, tuple[str, ...]] = {}
        for name, deps in (dependencies or {}).items():
            if isinstance(deps, str):
                deps = (deps,)
            edges[name] = _unique(deps or ())
        self._edges = edges
        self._index = {name: i for i, name in enumerate(edges)}

        self._validate_dependencies()
        self._validate_no_cycles()

    @classmethod
    def from_steps(cls, steps: Iterable[Step]) -> DependencyGraph:
        """Build a graph from named steps, in declaration order."""
        return cls({step.name: step.depends_on for step in steps if step.name is not None})

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate_dependencies(self) -> None:
        for name, deps in self._edges.items():
            missing = [dep for dep in deps if dep not in self._edges]
            if missing:
                raise DependencyError(name, missing)

    def _validate_no_cycles(self) -> None:
        cycle = self._find_cycle()
        if cycle:
            raise CycleDetectedError(cycle)

    def _find_cycle(self) -> list[str] | None:
        """Iterative depth-first search; returns the nodes of the first cycle found."""
        done: set[str] = set()

        for root in self._edges:
            if root in done:
                continue
            path = [root]
            on_path = {root}
            stack = [iter(self._edges[root])]
            while stack:
                dep = next(stack[-1], None)
                if dep is None:
                    node = path.pop()
                    on_path.discard(node)
                    done.add(node)
                    stack.pop()
                elif dep in on_path:
                    return path[path.index(dep):] + [dep]
                elif dep not in done:
                    path.append(dep)
                    on_path.add(dep)
                    stack.append(iter(self._edges[dep]))
        return None

    # =========================================================================
    # Ordering
    # =========================================================================

    def topological_order(self) -> list[str]:
        """
        Return every node after all of its dependencies.

        Kahn's algorithm; among ready nodes the earliest declared runs first.
        """
        in_degree = {name: len(deps) for name, deps in self._edges.items()}
        dependents = self._dependents_map()

        ready = [(self._index[name], name) for name, deg in in_degree.items() if deg == 0]
        heapq.heapify(ready)
        order: list[str] = []

        while ready:
            _, node = heapq.heappop(ready)
            order.append(node)
            for dependent in dependents[node]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, (self._index[dependent], dependent))

        if len(order) != len(self._edges):
            raise CycleDetectedError(self._find_cycle() or [n for n, d in in_degree.items() if d > 0])
        return order

    def level_order(self) -> list[list[str]]:
        """
        Group nodes into levels that can run concurrently.

        Level *i* holds every node not yet placed whose dependencies are all
        placed in levels ``0..i-1``. Nodes do not need identical dependency
        sets to share a level. Each level lists names in declaration order.
        """
        placed: set[str] = set()
        remaining = list(self._edges)
        levels: list[list[str]] = []

        while remaining:
            level = [name for name in remaining if all(dep in placed for dep in self._edges[name])]
            if not level:
                raise CycleDetectedError(self._find_cycle() or remaining)
            levels.append(level)
            placed.update(level)
            remaining = [name for name in remaining if name not in placed]

        return levels

    def reverse_order(self) -> list[str]:
        """Exact reverse of ``topological_order()``, for teardown-style runs."""
        return list(reversed(self.topological_order()))

    # =========================================================================
    # Derived graphs
    # =========================================================================

    def subgraph(self, node: str) -> DependencyGraph:
        """
        Return ``node`` plus the transitive closure of its dependencies.

        Nodes are declared in this graph's topological order so the
        subgraph's order is this graph's order restricted to the closure.
        An unknown node yields an empty graph.
        """
        if node not in self._edges:
            return DependencyGraph({})

        closure: set[str] = set()
        stack = [node]
        while stack:
            current = stack.pop()
            if current in closure:
                continue
            closure.add(current)
            stack.extend(self._edges[current])

        return DependencyGraph({name: self._edges[name] for name in self.topological_order() if name in closure})

    def merge(self, other: DependencyGraph) -> DependencyGraph:
        """
        Return a graph with the nodes of both graphs.

        A node declared in both gets the union of both dependency sets,
        this graph's dependencies first.
        """
        merged: dict[str, tuple[str, ...]] = dict(self._edges)
        for name, deps in other._edges.items():
            merged[name] = _unique((*merged.get(name, ()), *deps))
        return DependencyGraph(merged)

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def edges(self) -> Mapping[str, tuple[str, ...]]:
        """Read-only mapping of step name → prerequisite names."""
        return MappingProxyType(self._edges)

    @property
    def nodes(self) -> list[str]:
        """Node names in declaration order."""
        return list(self._edges)

    def dependencies_of(self, name: str) -> tuple[str, ...]:
        """Direct prerequisites of ``name``."""
        if name not in self._edges:
            raise KeyError(name)
        return self._edges[name]

    def dependents_of(self, name: str) -> list[str]:
        """Nodes that list ``name`` as a direct prerequisite."""
        if name not in self._edges:
            raise KeyError(name)
        return self._dependents_map()[name]

    def is_empty(self) -> bool:
        return not self._edges

    def to_dict(self) -> dict[str, list[str]]:
        """Plain ``dict[str, list[str]]`` copy of the edges."""
        return {name: list(deps) for name, deps in self._edges.items()}

    def _dependents_map(self) -> dict[str, list[str]]:
        dependents: dict[str, list[str]] = {name: [] for name in self._edges}
        for name, deps in self._edges.items():
            for dep in deps:
                dependents[dep].append(name)
        return dependents

    def __contains__(self, name: object) -> bool:
        return name in self._edges

    def __len__(self) -> int:
        return len(self._edges)

    def __iter__(self):
        return iter(self._edges)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DependencyGraph):
            return NotImplemented
        return {n: set(d) for n, d in self._edges.items()} == {n: set(d) for n, d in other._edges.items()}

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"DependencyGraph({self.to_dict()!r})"
