"""Tests for the calculated-value dependency graph."""

from __future__ import annotations

from formctl.engine.dependencies import DependencyGraph


class TestDependencyGraph:
    def test_edges_point_from_reference_to_target(self) -> None:
        graph = DependencyGraph({"total": ["price", "quantity"]})
        assert graph.graph.has_edge("price", "total")
        assert graph.graph.has_edge("quantity", "total")

    def test_no_cycles(self) -> None:
        graph = DependencyGraph({"b": ["a"], "c": ["b"]})
        assert graph.cycles() == []

    def test_each_cycle_reported_once(self) -> None:
        graph = DependencyGraph({"a": ["b"], "b": ["a"], "x": ["y"], "y": ["x"]})
        assert graph.cycles() == [["a", "b"], ["x", "y"]]

    def test_self_reference_is_cycle(self) -> None:
        graph = DependencyGraph({"a": ["a"]})
        assert graph.cycles() == [["a"]]

    def test_downstream_of_cycle_is_blocked(self) -> None:
        graph = DependencyGraph({"a": ["b"], "b": ["a"], "c": ["a"], "d": ["price"]})
        blocked = graph.blocked(graph.cycles())
        assert blocked == {"a", "b", "c"}

    def test_evaluation_order_is_topological_and_stable(self) -> None:
        graph = DependencyGraph({"tax": ["subtotal"], "total": ["subtotal", "tax"], "subtotal": []})
        order = graph.evaluation_order(exclude=set())
        assert order.index("subtotal") < order.index("tax") < order.index("total")
        assert order == graph.evaluation_order(exclude=set())

    def test_evaluation_order_excludes(self) -> None:
        graph = DependencyGraph({"b": ["a"], "c": []})
        assert "b" not in graph.evaluation_order(exclude={"b"})
