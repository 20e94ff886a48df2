"""Tests for the evidence based dependency usage analysis."""

import pytest

from depcheck.analysis import EvidenceAnalyzer, ProjectDependencyAnalysis, UsageEvidence
from depcheck.exceptions import AnalysisError
from depcheck.models import ArtifactCoordinate, DependencyNode


def artifact(artifact_id: str, version: str = "1.0", scope: str = "compile") -> ArtifactCoordinate:
    return ArtifactCoordinate("org.example", artifact_id, version, scope=scope)


def tree(*declared):
    """Root with the given (artifact, [transitive artifacts]) children."""
    root = DependencyNode(ArtifactCoordinate("com.acme", "app", "1.0", scope=""))
    for direct, transitive in declared:
        child = DependencyNode(direct)
        root.add_child(child)
        for nested in transitive:
            child.add_child(DependencyNode(nested))
    return root


class TestEvidenceAnalyzer:
    """Tests for EvidenceAnalyzer."""

    def test_used_unused_and_undeclared(self):
        a, b, c = artifact("a"), artifact("b"), artifact("c")
        root = tree((a, [c]), (b, []))
        evidence = UsageEvidence(main={
            artifact("a"): {"org.example.a.A"},
            artifact("c"): {"org.example.c.C"},
        })

        analysis = EvidenceAnalyzer(evidence).analyze(root)

        assert analysis.used_declared == [a]
        assert analysis.unused_declared == [b]
        assert analysis.used_undeclared == {c: {"org.example.c.C"}}
        assert analysis.test_artifacts_with_non_test_scope == []

    def test_declared_dependencies_are_partitioned(self):
        declared = [artifact(name) for name in ("a", "b", "c", "d")]
        root = tree(*((a, []) for a in declared))
        evidence = UsageEvidence(main={declared[0]: {"A"}}, test={declared[2]: {"C"}})

        analysis = EvidenceAnalyzer(evidence).analyze(root)

        assert not set(analysis.used_declared) & set(analysis.unused_declared)
        assert sorted(analysis.used_declared + analysis.unused_declared, key=str) == sorted(declared, key=str)
        assert analysis.test_artifacts_with_non_test_scope == [declared[2]]

    def test_evidence_matches_managed_version(self):
        managed = artifact("lib", "2.0")
        root = tree((artifact("a"), [managed]))
        evidence = UsageEvidence(main={artifact("lib", "1.0"): {"Lib"}})

        analysis = EvidenceAnalyzer(evidence).analyze(root)

        assert analysis.used_undeclared_artifacts == [managed]

    def test_unknown_artifacts_in_evidence_are_dropped(self):
        root = tree((artifact("a"), []))
        evidence = UsageEvidence(main={artifact("elsewhere"): {"X"}})

        analysis = EvidenceAnalyzer(evidence).analyze(root)

        assert analysis.used_undeclared == {}
        assert analysis.unused_declared == [artifact("a")]

    def test_empty_class_set_is_not_usage(self):
        root = tree((artifact("a"), []))
        evidence = UsageEvidence(main={artifact("a"): set()})

        assert EvidenceAnalyzer(evidence).analyze(root).unused_declared == [artifact("a")]

    def test_test_only_usage_of_compile_dependency(self):
        mockito = artifact("mockito", scope="test")
        assertj = artifact("assertj")
        guava = artifact("guava")
        root = tree((mockito, []), (assertj, []), (guava, []))
        evidence = UsageEvidence(
            main={guava: {"com.google.common.collect.Lists"}},
            test={
                mockito: {"org.mockito.Mockito"},
                assertj: {"org.assertj.core.api.Assertions"},
                guava: {"com.google.common.base.Strings"},
            },
        )

        analysis = EvidenceAnalyzer(evidence).analyze(root)

        assert analysis.test_artifacts_with_non_test_scope == [assertj]
        assert set(analysis.used_declared) == {mockito, assertj, guava}

    def test_test_usage_of_transitive_is_used_undeclared(self):
        hamcrest = artifact("hamcrest")
        root = tree((artifact("junit", scope="test"), [hamcrest]))
        evidence = UsageEvidence(test={hamcrest: {"org.hamcrest.Matcher"}})

        analysis = EvidenceAnalyzer(evidence).analyze(root)

        assert list(analysis.used_undeclared) == [hamcrest]
        assert analysis.test_artifacts_with_non_test_scope == []


class TestProjectDependencyAnalysis:
    """Tests for ProjectDependencyAnalysis transformations."""

    def _analysis(self):
        return ProjectDependencyAnalysis(
            used_declared=[artifact("used")],
            unused_declared=[
                artifact("unused"),
                artifact("unused-runtime", scope="runtime"),
                artifact("unused-provided", scope="provided"),
            ],
        )

    def test_ignore_non_compile_keeps_only_compile_scope(self):
        analysis = self._analysis().ignore_non_compile()

        assert analysis.unused_declared == [artifact("unused")]
        assert analysis.used_declared == [artifact("used")]

    def test_force_usage_moves_unused_to_used(self):
        analysis = self._analysis().force_declared_dependencies_usage(["org.example:unused"])

        assert artifact("unused") in analysis.used_declared
        assert artifact("unused") not in analysis.unused_declared

    def test_force_usage_of_used_dependency_fails(self):
        with pytest.raises(AnalysisError, match="declared but already detected as used"):
            self._analysis().force_declared_dependencies_usage(["org.example:used"])

    def test_force_usage_of_undeclared_dependency_fails(self):
        with pytest.raises(AnalysisError, match="not declared"):
            self._analysis().force_declared_dependencies_usage(["org.example:nope"])

    def test_no_forced_dependencies_is_a_no_op(self):
        analysis = self._analysis()

        assert analysis.force_declared_dependencies_usage([" "]) is analysis
