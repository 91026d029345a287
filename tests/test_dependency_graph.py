from adaptive_cache.dependency_graph import DependencyGraph


def test_back_edge_requires_existing_node(clock):
    graph = DependencyGraph(clock=clock)

    assert graph.register_dependency("listing:42", ["category:5"])

    node = graph.get_node("listing:42")
    assert node.dependencies == {"category:5"}
    assert not graph.has_node("category:5")
    assert graph.collect_cascade("category:5") == []


def test_back_edge_added_when_dependency_registered_first(clock):
    graph = DependencyGraph(clock=clock)
    graph.register_dependency("category:5", [])
    graph.register_dependency("listing:42", ["category:5"])

    assert graph.get_node("category:5").dependents == {"listing:42"}


def test_collect_cascade_depth(clock):
    graph = DependencyGraph(clock=clock)
    graph.register_dependency("A", [])
    graph.register_dependency("B", ["A"])
    graph.register_dependency("C", ["B"])

    assert graph.collect_cascade("A") == ["A", "B"]
    assert graph.collect_cascade("A", depth=2) == ["A", "B", "C"]
    assert graph.collect_cascade("A", depth=0) == ["A"]


def test_collect_cascade_visits_shared_dependents_once(clock):
    graph = DependencyGraph(clock=clock)
    graph.register_dependency("A", [])
    graph.register_dependency("B", ["A"])
    graph.register_dependency("C", ["A"])
    graph.register_dependency("D", ["B", "C"])

    assert graph.collect_cascade("A", depth=5) == ["A", "B", "C", "D"]


def test_reregistration_resets_dependents(clock):
    graph = DependencyGraph(clock=clock)
    graph.register_dependency("A", [])
    graph.register_dependency("B", ["A"])
    graph.register_dependency("A", [])

    assert graph.get_node("A").dependents == set()
    assert graph.get_node("B").dependencies == {"A"}
    assert graph.collect_cascade("A", depth=5) == ["A"]


def test_reregistration_overwrites_dependencies(clock):
    graph = DependencyGraph(clock=clock)
    graph.register_dependency("X", [])
    graph.register_dependency("Y", [])
    graph.register_dependency("K", ["X"])
    graph.register_dependency("K", ["Y"])

    assert graph.get_node("K").dependencies == {"Y"}
    assert graph.get_node("X").dependents == set()
    assert graph.get_node("Y").dependents == {"K"}


def test_remove_nodes_clears_edges(clock):
    graph = DependencyGraph(clock=clock)
    graph.register_dependency("A", [])
    graph.register_dependency("B", ["A"])

    assert graph.remove_nodes(["B", "missing"]) == 1
    assert graph.get_node("A").dependents == set()
    assert len(graph) == 1


def test_record_access_updates_score(clock):
    graph = DependencyGraph(clock=clock)
    graph.register_dependency("A", [])
    clock.advance(10)

    assert graph.record_access("A")
    assert not graph.record_access("missing")

    node = graph.get_node("A")
    assert node.access_count == 1
    assert node.last_accessed == clock.now
    assert 0.0 < node.invalidation_score <= 1.0


def test_missing_dependency_list_means_no_dependencies(clock):
    graph = DependencyGraph(clock=clock)
    assert graph.register_dependency("A", None)
    assert graph.get_node("A").dependencies == set()
    assert len(graph) == 1


def test_get_dependencies_is_serializable(clock):
    graph = DependencyGraph(clock=clock)
    graph.register_dependency("A", [])
    graph.register_dependency("B", ["A"])

    dependencies = graph.get_dependencies()
    assert dependencies["A"]["dependents"] == ["B"]
    assert dependencies["B"]["dependencies"] == ["A"]
