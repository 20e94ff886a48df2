"""Declared-dependency usage analysis from class usage evidence."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set

from .exceptions import AnalysisError
from .models import SCOPE_COMPILE, SCOPE_TEST, ArtifactCoordinate, CoordinateKey, DependencyNode

logger = logging.getLogger(__name__)


@dataclass
class UsageEvidence:
    """Class names referenced by main and test code, per artifact."""

    main: Dict[ArtifactCoordinate, Set[str]] = field(default_factory=dict)
    test: Dict[ArtifactCoordinate, Set[str]] = field(default_factory=dict)


@dataclass
class ProjectDependencyAnalysis:
    """
    Result of a dependency usage analysis.

    Lists are kept free of duplicates and in discovery order so reports are
    stable from run to run.
    """

    used_declared: List[ArtifactCoordinate] = field(default_factory=list)
    used_undeclared: Dict[ArtifactCoordinate, Set[str]] = field(default_factory=dict)
    unused_declared: List[ArtifactCoordinate] = field(default_factory=list)
    test_artifacts_with_non_test_scope: List[ArtifactCoordinate] = field(default_factory=list)

    @property
    def used_undeclared_artifacts(self) -> List[ArtifactCoordinate]:
        return list(self.used_undeclared)

    def ignore_non_compile(self) -> 'ProjectDependencyAnalysis':
        """Drop runtime, provided, test and system scoped artifacts from the unused declared list."""
        return ProjectDependencyAnalysis(
            used_declared=list(self.used_declared),
            used_undeclared=dict(self.used_undeclared),
            unused_declared=[artifact for artifact in self.unused_declared if artifact.scope == SCOPE_COMPILE],
            test_artifacts_with_non_test_scope=list(self.test_artifacts_with_non_test_scope),
        )

    def force_declared_dependencies_usage(self, force_used: Iterable[str]) -> 'ProjectDependencyAnalysis':
        """
        Treat declared-but-unused dependencies as used.

        Args:
            force_used: groupId:artifactId of the dependencies to force

        Raises:
            AnalysisError: if a forced dependency is already detected as used or is not declared
        """
        forced = {entry.strip() for entry in force_used if entry and entry.strip()}
        if not forced:
            return self

        forced_unused = [artifact for artifact in self.unused_declared if artifact.ga in forced]
        remaining = forced - {artifact.ga for artifact in forced_unused}

        if remaining:
            already_used = sorted(artifact.ga for artifact in self.used_declared if artifact.ga in remaining)
            if already_used:
                raise AnalysisError(
                    f"Trying to force use of dependencies which are declared but already detected as used: "
                    f"{already_used}"
                )
            raise AnalysisError(f"Trying to force use of dependencies which are not declared: {sorted(remaining)}")

        logger.info(f"Forcing {len(forced_unused)} declared dependencies as used")
        return ProjectDependencyAnalysis(
            used_declared=list(self.used_declared) + forced_unused,
            used_undeclared=dict(self.used_undeclared),
            unused_declared=[artifact for artifact in self.unused_declared if artifact not in forced_unused],
            test_artifacts_with_non_test_scope=list(self.test_artifacts_with_non_test_scope),
        )


class EvidenceAnalyzer:
    """
    Buckets the artifacts of a normalized tree using class usage evidence.

    Declared dependencies are the direct children of the tree root; every
    other node is a resolved transitive artifact. Evidence is matched to tree
    artifacts by group:artifact:type[:classifier], so a version change made by
    dependency management does not hide usage.
    """

    def __init__(self, evidence: UsageEvidence):
        self.evidence = evidence

    def analyze(self, root: DependencyNode) -> ProjectDependencyAnalysis:
        declared: Dict[CoordinateKey, ArtifactCoordinate] = {}
        for child in root.children:
            declared.setdefault(child.artifact.key, child.artifact)

        resolved: Dict[CoordinateKey, ArtifactCoordinate] = dict(declared)
        for node, depth in root.walk():
            if depth > 0:
                resolved.setdefault(node.artifact.key, node.artifact)

        main_used = self._match(self.evidence.main, resolved, "main")
        test_used = self._match(self.evidence.test, resolved, "test")

        used: Dict[CoordinateKey, Set[str]] = {}
        for usage in (main_used, test_used):
            for key, classes in usage.items():
                used.setdefault(key, set()).update(classes)

        analysis = ProjectDependencyAnalysis()
        for key, artifact in declared.items():
            if key in used:
                analysis.used_declared.append(artifact)
            else:
                analysis.unused_declared.append(artifact)

            if key in test_used and key not in main_used and artifact.scope != SCOPE_TEST:
                analysis.test_artifacts_with_non_test_scope.append(artifact)

        for key, classes in used.items():
            if key not in declared:
                analysis.used_undeclared[resolved[key]] = classes

        logger.info(f"Analyzed {len(declared)} declared and {len(resolved)} resolved artifacts: "
                    f"{len(analysis.used_declared)} used declared, {len(analysis.used_undeclared)} used undeclared, "
                    f"{len(analysis.unused_declared)} unused declared, "
                    f"{len(analysis.test_artifacts_with_non_test_scope)} non-test scoped test only")
        return analysis

    @staticmethod
    def _match(
        usage: Dict[ArtifactCoordinate, Set[str]],
        resolved: Dict[CoordinateKey, ArtifactCoordinate],
        label: str
    ) -> Dict[CoordinateKey, Set[str]]:
        matched: Dict[CoordinateKey, Set[str]] = {}
        for artifact, classes in usage.items():
            if artifact.key not in resolved:
                logger.debug(f"Ignoring {label} usage of {artifact}: not among resolved artifacts")
                continue
            if not classes:
                continue
            matched.setdefault(artifact.key, set()).update(classes)
        return matched
