"""Field dependency graph for calculated values.

Built fresh for every evaluation from the formulas that fired, never
cached between calls. Edges point from a referenced field to the field
whose formula references it, so a valid calculation order is a
topological order of the graph.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import networkx as nx

type _Graph = nx.DiGraph


class DependencyGraph:
    """Dependency analysis over ``target -> referenced fields`` pairs."""

    def __init__(self, dependencies: Mapping[str, Iterable[str]]) -> None:
        g: _Graph = nx.DiGraph()
        for target in dependencies:
            g.add_node(target)
        for target, refs in dependencies.items():
            for ref in sorted(refs):
                g.add_edge(ref, target)
        self._graph = g

    @property
    def graph(self) -> _Graph:
        return self._graph

    def cycles(self) -> list[list[str]]:
        """Return every cyclic strongly connected component, members sorted.

        A self-reference counts as a cycle of one. The list is sorted by
        first member so repeated runs report cycles in the same order.
        """
        found: list[list[str]] = []
        for component in nx.strongly_connected_components(self._graph):
            members = sorted(component)
            if len(members) > 1 or self._graph.has_edge(members[0], members[0]):
                found.append(members)
        return sorted(found)

    def blocked(self, cycles: Iterable[Iterable[str]]) -> set[str]:
        """Nodes inside any of *cycles* or downstream of one."""
        blocked: set[str] = set()
        for component in cycles:
            for node in component:
                blocked.add(node)
                blocked.update(nx.descendants(self._graph, node))
        return blocked

    def evaluation_order(self, exclude: set[str]) -> list[str]:
        """Deterministic topological order of the nodes not in *exclude*."""
        acyclic = self._graph.subgraph(n for n in self._graph if n not in exclude)
        return list(nx.lexicographical_topological_sort(acyclic))
