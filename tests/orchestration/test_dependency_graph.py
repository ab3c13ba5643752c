"""Tests for DependencyGraph: validation, orders, levels, subgraph, merge."""

import pytest

from stepflow.orchestration import (
    CycleDetectedError,
    DependencyError,
    DependencyGraph,
    Step,
)


def assert_topological(graph: DependencyGraph, order: list[str]) -> None:
    assert sorted(order) == sorted(graph.nodes)
    position = {name: i for i, name in enumerate(order)}
    for name, deps in graph.edges.items():
        for dep in deps:
            assert position[dep] < position[name], f"{dep} must precede {name}"


def assert_levels(graph: DependencyGraph, levels: list[list[str]]) -> None:
    level_of = {name: i for i, level in enumerate(levels) for name in level}
    assert sorted(level_of) == sorted(graph.nodes)
    for name, deps in graph.edges.items():
        for dep in deps:
            assert level_of[dep] < level_of[name]
        # Earliest legal level
        expected = 0 if not deps else max(level_of[d] for d in deps) + 1
        assert level_of[name] == expected


class TestConstruction:
    """Test graph construction and validation."""

    def test_empty_graph(self):
        graph = DependencyGraph()
        assert graph.is_empty()
        assert len(graph) == 0
        assert graph.topological_order() == []
        assert graph.level_order() == []

    def test_none_means_no_dependencies(self):
        graph = DependencyGraph({"a": None, "b": "a"})
        assert graph.dependencies_of("a") == ()
        assert graph.dependencies_of("b") == ("a",)

    def test_duplicate_dependencies_collapse(self):
        graph = DependencyGraph({"a": [], "b": ["a", "a"]})
        assert graph.dependencies_of("b") == ("a",)

    def test_unknown_dependency(self):
        with pytest.raises(DependencyError, match="unknown steps: ghost") as exc_info:
            DependencyGraph({"a": [], "b": ["a", "ghost"]})
        assert exc_info.value.step_name == "b"
        assert exc_info.value.missing_deps == ["ghost"]

    def test_self_dependency_is_cycle(self):
        with pytest.raises(CycleDetectedError) as exc_info:
            DependencyGraph({"a": ["a"]})
        assert exc_info.value.cycle == ["a", "a"]

    def test_cycle_lists_nodes_in_order(self):
        with pytest.raises(CycleDetectedError) as exc_info:
            DependencyGraph({"a": ["c"], "b": ["a"], "c": ["b"]})
        cycle = exc_info.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"a", "b", "c"}
        # Each node depends on the one after it
        edges = {"a": ["c"], "b": ["a"], "c": ["b"]}
        for node, nxt in zip(cycle, cycle[1:]):
            assert nxt in edges[node]

    def test_cycle_not_involving_first_node(self):
        with pytest.raises(CycleDetectedError) as exc_info:
            DependencyGraph({"root": [], "x": ["root", "y"], "y": ["x"]})
        assert "root" not in exc_info.value.cycle

    def test_long_chain_declared_leaf_first(self):
        size = 1500
        edges = {f"n{i}": [f"n{i - 1}"] for i in range(size - 1, 0, -1)}
        edges["n0"] = []
        graph = DependencyGraph(edges)
        assert graph.topological_order() == [f"n{i}" for i in range(size)]
        assert len(graph.level_order()) == size

    def test_cycle_at_end_of_long_chain(self):
        size = 1500
        edges = {f"n{i}": [f"n{i - 1}"] for i in range(size - 1, 0, -1)}
        edges["n0"] = [f"n{size - 1}"]
        with pytest.raises(CycleDetectedError) as exc_info:
            DependencyGraph(edges)
        assert len(exc_info.value.cycle) == size + 1

    def test_from_steps(self):
        graph = DependencyGraph.from_steps(
            [
                Step.named("a", lambda o: o),
                Step.named("b", lambda o: o, depends_on=["a"]),
            ]
        )
        assert graph.to_dict() == {"a": [], "b": ["a"]}


class TestOrdering:
    """Test topological, level, and reverse order."""

    def test_diamond_levels(self, diamond_edges):
        graph = DependencyGraph(diamond_edges)
        assert graph.level_order() == [["a"], ["b", "c"], ["d"]]

    def test_diamond_topological(self, diamond_edges):
        assert DependencyGraph(diamond_edges).topological_order() == ["a", "b", "c", "d"]

    def test_reverse_order(self, diamond_edges):
        graph = DependencyGraph(diamond_edges)
        assert graph.reverse_order() == list(reversed(graph.topological_order()))

    def test_declaration_order_breaks_ties(self):
        graph = DependencyGraph({"z": [], "y": [], "x": ["z"]})
        assert graph.topological_order() == ["z", "y", "x"]

    def test_declaration_order_with_later_declared_dependency(self):
        graph = DependencyGraph({"b": ["a"], "c": [], "a": []})
        assert graph.topological_order() == ["c", "a", "b"]

    def test_levels_do_not_require_identical_dependencies(self, wide_edges):
        graph = DependencyGraph(wide_edges)
        assert graph.level_order() == [
            ["extract", "config"],
            ["clean", "enrich"],
            ["report"],
            ["publish"],
        ]

    def test_levels_keep_declaration_order(self):
        graph = DependencyGraph({"root": [], "c": ["root"], "a": ["root"], "b": ["root"]})
        assert graph.level_order() == [["root"], ["c", "a", "b"]]

    @pytest.mark.parametrize(
        "edges",
        [
            {"a": [], "b": ["a"], "c": ["b"], "d": ["c"]},
            {"a": [], "b": [], "c": [], "d": ["a", "b", "c"]},
            {"a": [], "b": ["a"], "c": ["a"], "d": ["b"], "e": ["c", "d"], "f": []},
            {"n5": ["n3", "n4"], "n1": [], "n2": ["n1"], "n3": ["n1"], "n4": ["n2"]},
        ],
    )
    def test_orders_are_valid(self, edges):
        graph = DependencyGraph(edges)
        assert_topological(graph, graph.topological_order())
        assert_levels(graph, graph.level_order())

    def test_deterministic(self, wide_edges):
        orders = {tuple(DependencyGraph(wide_edges).topological_order()) for _ in range(5)}
        assert len(orders) == 1


class TestSubgraph:
    """Test transitive-closure subgraphs."""

    def test_subgraph_of_chain_end_is_whole_chain(self):
        graph = DependencyGraph({"a": [], "b": ["a"], "c": ["b"]})
        sub = graph.subgraph("c")
        assert sub.to_dict() == {"a": [], "b": ["a"], "c": ["b"]}
        assert sub.topological_order() == ["a", "b", "c"]

    def test_subgraph_excludes_unrelated_nodes(self, wide_edges):
        graph = DependencyGraph(wide_edges)
        sub = graph.subgraph("report")
        assert sorted(sub.nodes) == ["clean", "extract", "report"]

    def test_subgraph_order_matches_parent(self, wide_edges):
        graph = DependencyGraph(wide_edges)
        sub = graph.subgraph("publish")
        parent_order = [n for n in graph.topological_order() if n in sub]
        assert sub.topological_order() == parent_order

    def test_subgraph_of_root(self, diamond_edges):
        assert DependencyGraph(diamond_edges).subgraph("a").to_dict() == {"a": []}

    def test_subgraph_unknown_node_is_empty(self, diamond_edges):
        assert DependencyGraph(diamond_edges).subgraph("nope").is_empty()


class TestMerge:
    """Test graph merge."""

    def test_merge_union(self):
        merged = DependencyGraph({"x": []}).merge(DependencyGraph({"x": [], "y": ["x"]}))
        assert merged.to_dict() == {"x": [], "y": ["x"]}

    def test_merge_unions_dependencies_receiver_first(self):
        left = DependencyGraph({"a": [], "b": [], "c": ["a"]})
        right = DependencyGraph({"b": [], "c": ["b"]})
        merged = left.merge(right)
        assert merged.dependencies_of("c") == ("a", "b")
        assert merged.nodes == ["a", "b", "c"]

    def test_merge_does_not_modify_inputs(self):
        left = DependencyGraph({"a": []})
        right = DependencyGraph({"b": []})
        left.merge(right)
        assert left.nodes == ["a"]
        assert right.nodes == ["b"]

    def test_merge_detects_new_cycle(self):
        left = DependencyGraph({"a": [], "b": ["a"]})
        right = DependencyGraph({"b": [], "a": ["b"]})
        with pytest.raises(CycleDetectedError):
            left.merge(right)


class TestIntrospection:
    """Test read-only introspection."""

    def test_dependents_of(self, diamond_edges):
        graph = DependencyGraph(diamond_edges)
        assert graph.dependents_of("a") == ["b", "c"]
        assert graph.dependents_of("d") == []

    def test_unknown_name_raises_key_error(self, diamond_edges):
        graph = DependencyGraph(diamond_edges)
        with pytest.raises(KeyError):
            graph.dependencies_of("zzz")
        with pytest.raises(KeyError):
            graph.dependents_of("zzz")

    def test_contains_len_iter(self, diamond_edges):
        graph = DependencyGraph(diamond_edges)
        assert "a" in graph
        assert "z" not in graph
        assert len(graph) == 4
        assert list(graph) == ["a", "b", "c", "d"]

    def test_edges_are_read_only(self, diamond_edges):
        graph = DependencyGraph(diamond_edges)
        with pytest.raises(TypeError):
            graph.edges["e"] = ()  # type: ignore[index]

    def test_to_dict_is_a_copy(self, diamond_edges):
        graph = DependencyGraph(diamond_edges)
        data = graph.to_dict()
        data["a"].append("x")
        assert graph.dependencies_of("a") == ()

    def test_equality_ignores_dependency_order(self):
        assert DependencyGraph({"a": [], "b": [], "c": ["a", "b"]}) == DependencyGraph(
            {"a": [], "b": [], "c": ["b", "a"]}
        )
