"""Tests for the verbose graph builder: test pruning and dependency management."""

import pytest

from depcheck.exceptions import ResolutionError
from depcheck.graph_builder import DependencyGraphBuilder
from depcheck.management import ManagementIndex
from depcheck.models import (
    ArtifactCoordinate,
    CoordinateKey,
    DependencyManagementEntry,
    DependencyNode,
    Project,
)


def node(artifact_id: str, version: str = "1.0", scope: str = "compile", group_id: str = "org.example"):
    return DependencyNode(artifact=ArtifactCoordinate(group_id, artifact_id, version, scope=scope))


def link(parent: DependencyNode, *children: DependencyNode):
    parent.children.extend(children)


def project(**kwargs) -> Project:
    return Project(group_id="com.acme", artifact_id="app", version="1.0.0", **kwargs)


def by_artifact_id(root: DependencyNode):
    return {n.artifact.artifact_id: (n, depth) for n, depth in root.walk()}


class StaticResolver:
    """Resolver returning a prepared raw graph."""

    def __init__(self, root):
        self.root = root
        self.calls = []
        self.closed = False

    def resolve(self, project, management):
        self.calls.append((project, management))
        return self.root

    def close(self):
        self.closed = True


class FailingResolver:
    def resolve(self, project, management):
        raise ResolutionError("repository unreachable")


class TestPruneTransitiveTestDependencies:
    """Tests for pruning transitive test-scoped dependencies."""

    def test_direct_test_dependency_is_kept(self):
        raw = node("raw-root")
        junit = node("junit", scope="test")
        hamcrest = node("hamcrest", scope="test")
        link(raw, junit)
        link(junit, hamcrest)

        root = DependencyGraphBuilder().prune_transitive_test_dependencies(raw, project())

        assert [child.artifact.artifact_id for child in root.children] == ["junit"]
        assert root.children[0].children == []

    def test_transitive_test_subtree_is_dropped(self):
        raw, a, c, d, e = node("raw"), node("a"), node("c", scope="test"), node("d"), node("e")
        link(raw, a)
        link(a, c, e)
        link(c, d)

        builder = DependencyGraphBuilder()
        root = builder.prune_transitive_test_dependencies(raw, project())
        nodes = by_artifact_id(root)

        assert "c" not in nodes
        assert "d" not in nodes
        assert nodes["e"][1] == 2
        assert builder.pruned_count == 1

    def test_new_root_is_the_project(self):
        raw = node("something-else")

        root = DependencyGraphBuilder().prune_transitive_test_dependencies(raw, project(packaging="war"))

        assert str(root.artifact) == "com.acme:app:war:1.0.0"
        assert root.is_root

    def test_no_node_below_depth_one_is_test_scoped(self):
        raw = node("raw")
        a, b = node("a"), node("b", scope="test")
        t1, t2, r = node("t1", scope="test"), node("t2", scope="test"), node("r", scope="runtime")
        link(raw, a, b)
        link(a, t1, r)
        link(b, t2, r)
        link(r, t1)

        root = DependencyGraphBuilder().prune_transitive_test_dependencies(raw, project())

        for n, depth in root.walk():
            if depth >= 2:
                assert n.scope != "test"
        assert [child.artifact.artifact_id for child in root.children] == ["a", "b"]

    def test_shared_nodes_are_copied_per_parent(self):
        raw, a, b, shared, leaf = node("raw"), node("a"), node("b"), node("shared"), node("leaf")
        link(raw, a, b)
        link(a, shared)
        link(b, shared)
        link(shared, leaf)

        root = DependencyGraphBuilder().prune_transitive_test_dependencies(raw, project())
        under_a = root.children[0].children[0]
        under_b = root.children[1].children[0]

        assert under_a is not under_b
        assert under_a.parent is root.children[0]
        assert under_b.parent is root.children[1]
        assert [c.artifact.artifact_id for c in under_b.children] == ["leaf"]

    def test_same_coordinates_with_different_children_are_kept_apart(self):
        # As when one declared dependency excludes z and another does not
        raw, a, b, x1, x2, z = node("raw"), node("a"), node("b"), node("x"), node("x"), node("z")
        link(raw, a, b)
        link(a, x1)
        link(b, x2)
        link(x2, z)

        root = DependencyGraphBuilder().prune_transitive_test_dependencies(raw, project())

        assert [(n.artifact.artifact_id, d) for n, d in root.walk()] == [
            ("app", 0), ("a", 1), ("x", 2), ("b", 1), ("x", 2), ("z", 3),
        ]

    def test_raw_graph_is_not_modified(self):
        raw, a, t = node("raw"), node("a"), node("t", scope="test")
        link(raw, a)
        link(a, t)

        DependencyGraphBuilder().prune_transitive_test_dependencies(raw, project())

        assert a.children == [t]
        assert raw.children == [a]

    def test_every_node_has_one_parent(self):
        raw, a, b, shared = node("raw"), node("a"), node("b"), node("shared")
        link(raw, a, b)
        link(a, shared)
        link(b, shared)

        root = DependencyGraphBuilder().prune_transitive_test_dependencies(raw, project())

        seen = set()
        for n, _ in root.walk():
            assert id(n) not in seen
            seen.add(id(n))
            for child in n.children:
                assert child.parent is n

    def test_cyclic_input_still_terminates(self):
        raw, a, b = node("raw"), node("a"), node("b")
        link(raw, a)
        link(a, b)
        link(b, a)

        root = DependencyGraphBuilder().prune_transitive_test_dependencies(raw, project())

        assert [(n.artifact.artifact_id, d) for n, d in root.walk()] == [("app", 0), ("a", 1), ("b", 2)]


class TestApplyDependencyManagement:
    """Tests for applying dependencyManagement to transitive nodes."""

    def _tree(self):
        root = node("app")
        direct = node("direct")
        transitive = node("lib", "1.0")
        deeper = node("deep", "1.0")
        root.add_child(direct)
        direct.add_child(transitive)
        transitive.add_child(deeper)
        return root, direct, transitive, deeper

    def test_transitive_version_is_overridden(self):
        root, direct, transitive, _ = self._tree()
        index = ManagementIndex([DependencyManagementEntry(CoordinateKey("org.example", "lib"), "2.0")])

        count = DependencyGraphBuilder().apply_dependency_management(root, index)

        assert count == 1
        assert transitive.artifact.version == "2.0"
        assert transitive.metadata.pre_managed_version == "1.0"

    def test_direct_dependency_is_never_overridden(self):
        root, direct, _, _ = self._tree()
        index = ManagementIndex([DependencyManagementEntry(CoordinateKey("org.example", "direct"), "9.9")])

        DependencyGraphBuilder().apply_dependency_management(root, index)

        assert direct.artifact.version == "1.0"
        assert direct.metadata.is_empty

    def test_scope_is_annotated_but_not_changed(self):
        root, _, transitive, _ = self._tree()
        index = ManagementIndex([
            DependencyManagementEntry(CoordinateKey("org.example", "lib"), scope="provided"),
        ])

        DependencyGraphBuilder().apply_dependency_management(root, index)

        assert transitive.scope == "compile"
        assert transitive.metadata.pre_managed_scope == "compile"
        assert transitive.metadata.managed_scope == "provided"
        assert transitive.metadata.pre_managed_version is None

    def test_equal_version_writes_no_version_metadata(self):
        root, _, transitive, _ = self._tree()
        index = ManagementIndex([
            DependencyManagementEntry(CoordinateKey("org.example", "lib"), "1.0", "runtime"),
        ])

        DependencyGraphBuilder().apply_dependency_management(root, index)

        assert transitive.metadata.pre_managed_version is None
        assert transitive.metadata.managed_scope == "runtime"

    def test_deeper_nodes_are_managed(self):
        root, _, _, deeper = self._tree()
        index = ManagementIndex([DependencyManagementEntry(CoordinateKey("org.example", "deep"), "5.0")])

        DependencyGraphBuilder().apply_dependency_management(root, index)

        assert deeper.artifact.version == "5.0"

    def test_classifier_must_match(self):
        root, _, transitive, _ = self._tree()
        index = ManagementIndex([
            DependencyManagementEntry(CoordinateKey("org.example", "lib", "jar", "tests"), "2.0"),
        ])

        assert DependencyGraphBuilder().apply_dependency_management(root, index) == 0
        assert transitive.artifact.version == "1.0"

    def test_rerun_does_not_stack_annotations(self):
        root, _, transitive, _ = self._tree()
        index = ManagementIndex([
            DependencyManagementEntry(CoordinateKey("org.example", "lib"), "2.0", "runtime"),
        ])
        builder = DependencyGraphBuilder()

        builder.apply_dependency_management(root, index)
        second = builder.apply_dependency_management(root, index)

        assert transitive.artifact.version == "2.0"
        assert transitive.metadata.pre_managed_version == "1.0"
        assert transitive.metadata.managed_scope == "runtime"
        assert second == 1  # scope still differs, annotation rewritten with the same values

    def test_set_dependency_management_is_used_by_default(self):
        root, _, transitive, _ = self._tree()
        builder = DependencyGraphBuilder()
        builder.set_dependency_management([DependencyManagementEntry(CoordinateKey("org.example", "lib"), "3.0")])

        builder.apply_dependency_management(root)

        assert transitive.artifact.version == "3.0"

    def test_empty_index_is_a_no_op(self):
        root, _, transitive, _ = self._tree()

        assert DependencyGraphBuilder().apply_dependency_management(root, ManagementIndex()) == 0
        assert transitive.metadata.is_empty


class TestBuildVerboseGraph:
    """End-to-end tests for build_verbose_graph."""

    def test_used_and_unused_scenario_tree(self):
        raw = node("app", group_id="com.acme")
        a, b, c = node("a"), node("b"), node("c", scope="test")
        link(raw, a, b)
        link(a, c)
        resolver = StaticResolver(raw)

        with DependencyGraphBuilder(resolver) as builder:
            root = builder.build_verbose_graph(project())

        assert [(n.artifact.artifact_id, d) for n, d in root.walk()] == [("app", 0), ("a", 1), ("b", 1)]
        assert resolver.closed

    def test_management_two_levels_deep(self):
        raw = node("app", group_id="com.acme")
        direct_a = node("a", "1.0")
        x = node("x")
        y = node("y")
        deep_a = node("a", "1.0")
        link(raw, direct_a, x)
        link(x, y)
        link(y, deep_a)
        management = [DependencyManagementEntry(CoordinateKey("org.example", "a"), "3.0")]
        resolver = StaticResolver(raw)

        root = DependencyGraphBuilder(resolver).build_verbose_graph(project(dependency_management=management))
        nodes = [(n, d) for n, d in root.walk() if n.artifact.artifact_id == "a"]

        direct = [n for n, d in nodes if d == 1][0]
        deep = [n for n, d in nodes if d == 3][0]
        assert direct.artifact.version == "1.0"
        assert direct.metadata.is_empty
        assert deep.artifact.version == "3.0"
        assert deep.metadata.pre_managed_version == "1.0"
        assert isinstance(resolver.calls[0][1], ManagementIndex)

    def test_cycles_are_broken_before_pruning(self):
        raw = node("app", group_id="com.acme")
        a, b = node("a"), node("b")
        link(raw, a)
        link(a, b)
        link(b, a)

        builder = DependencyGraphBuilder(StaticResolver(raw))
        root = builder.build_verbose_graph(project())

        assert builder.cycle_breaker.removed_edges == 1
        assert root.count_nodes() == 3

    def test_resolution_error_is_fatal(self):
        with pytest.raises(ResolutionError):
            DependencyGraphBuilder(FailingResolver()).build_verbose_graph(project())

    def test_resolver_is_required(self):
        with pytest.raises(ValueError):
            DependencyGraphBuilder().build_verbose_graph(project())
