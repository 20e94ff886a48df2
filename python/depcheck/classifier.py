"""Classification of analysis results into reportable dependency problems."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .analysis import ProjectDependencyAnalysis
from .config import AnalyzeConfig
from .exceptions import InvalidPatternError
from .models import SCOPE_RUNTIME, ArtifactCoordinate
from .patterns import filter_matching, filter_not_included

logger = logging.getLogger(__name__)

USED_DECLARED = "used declared"
USED_UNDECLARED = "used undeclared"
UNUSED_DECLARED = "unused declared"
NON_TEST_SCOPED = "non-test scoped test only"


@dataclass
class CategoryResult:
    """One usage category with its informational subsets."""

    name: str
    artifacts: List[ArtifactCoordinate] = field(default_factory=list)
    not_included: List[ArtifactCoordinate] = field(default_factory=list)
    ignored: List[ArtifactCoordinate] = field(default_factory=list)
    error: Optional[InvalidPatternError] = None


@dataclass
class DependencyReport:
    """Outcome of a classification run."""

    used_declared: CategoryResult
    used_undeclared: CategoryResult
    unused_declared: CategoryResult
    non_test_scoped: CategoryResult
    used_undeclared_classes: Dict[ArtifactCoordinate, Set[str]] = field(default_factory=dict)
    warning: bool = False

    @property
    def categories(self) -> List[CategoryResult]:
        return [self.used_declared, self.used_undeclared, self.unused_declared, self.non_test_scoped]

    @property
    def errors(self) -> List[InvalidPatternError]:
        return [category.error for category in self.categories if category.error is not None]


def _unique(artifacts: Iterable[ArtifactCoordinate]) -> List[ArtifactCoordinate]:
    return list(dict.fromkeys(artifacts))


class UsageClassifier:
    """
    Applies the runtime removal, include filter and ignore lists of an
    AnalyzeConfig to a ProjectDependencyAnalysis.

    The not-included and ignored subsets are informational: they are reported
    in verbose mode but never taken out of the category itself, and the
    warning verdict only looks at the categories.
    """

    def __init__(self, config: Optional[AnalyzeConfig] = None):
        self.config = config or AnalyzeConfig()

    def classify(self, analysis: ProjectDependencyAnalysis) -> DependencyReport:
        config = self.config

        unused_declared = list(analysis.unused_declared)
        if config.ignore_unused_runtime:
            unused_declared = [artifact for artifact in unused_declared if artifact.scope != SCOPE_RUNTIME]

        report = DependencyReport(
            used_declared=CategoryResult(USED_DECLARED, list(analysis.used_declared)),
            used_undeclared=CategoryResult(USED_UNDECLARED, analysis.used_undeclared_artifacts),
            unused_declared=CategoryResult(UNUSED_DECLARED, unused_declared),
            non_test_scoped=CategoryResult(NON_TEST_SCOPED, list(analysis.test_artifacts_with_non_test_scope)),
            used_undeclared_classes=dict(analysis.used_undeclared),
        )

        self._filter(report.used_declared, None)
        self._filter(report.used_undeclared, config.ignored_used_undeclared_dependencies)
        self._filter(report.unused_declared, config.ignored_unused_declared_dependencies)
        if config.ignore_all_non_test_scoped:
            self._filter(report.non_test_scoped, None)
            report.non_test_scoped.ignored = list(report.non_test_scoped.artifacts)
        else:
            self._filter(report.non_test_scoped, config.ignored_non_test_scoped_dependencies)

        report.warning = bool(report.used_undeclared.artifacts
                              or report.unused_declared.artifacts
                              or report.non_test_scoped.artifacts)

        logger.info(f"Classification complete: warning={report.warning}")
        return report

    def _filter(self, category: CategoryResult, category_ignores: Optional[List[str]]) -> None:
        """Fill the informational subsets of one category; a bad pattern only affects this category."""
        try:
            category.not_included = filter_not_included(category.artifacts, self.config.include_dependencies)
            if category_ignores is not None:
                category.ignored = _unique(
                    filter_matching(category.artifacts, self.config.ignored_dependencies)
                    + filter_matching(category.artifacts, category_ignores)
                )
        except InvalidPatternError as e:
            logger.warning(f"Skipping filters for {category.name} dependencies: {e}")
            category.not_included = []
            category.ignored = []
            category.error = e


def report_lines(report: DependencyReport, verbose: bool = False) -> List[Tuple[bool, str]]:
    """
    The report as (is_problem, message) lines.

    Problem lines are the findings that make up the warning verdict, all
    other lines are informational.
    """
    lines: List[Tuple[bool, str]] = []

    def artifacts(items: List[ArtifactCoordinate], problem: bool, classes: Optional[Dict] = None) -> None:
        if not items:
            lines.append((False, "   None"))
        for artifact in items:
            lines.append((problem, f"   {artifact}"))
            for class_name in sorted((classes or {}).get(artifact, ())):
                lines.append((problem, f"      class {class_name}"))

    if verbose and report.used_declared.artifacts:
        lines.append((False, "Used declared dependencies found:"))
        artifacts(report.used_declared.artifacts, False)

    if report.used_undeclared.artifacts:
        lines.append((True, "Used undeclared dependencies found:"))
        artifacts(report.used_undeclared.artifacts, True, report.used_undeclared_classes if verbose else None)

    if report.unused_declared.artifacts:
        lines.append((True, "Unused declared dependencies found:"))
        artifacts(report.unused_declared.artifacts, True)

    if report.non_test_scoped.artifacts:
        lines.append((True, "Non-test scoped test only dependencies found:"))
        artifacts(report.non_test_scoped.artifacts, True)

    if verbose:
        for category in report.categories:
            if category.not_included:
                lines.append((False, f"Not included {category.name} dependencies:"))
                artifacts(category.not_included, False)
        for category in report.categories:
            if category.ignored:
                lines.append((False, f"Ignored {category.name} dependencies:"))
                artifacts(category.ignored, False)

    if not lines:
        lines.append((False, "No dependency problems found"))
    return lines


def log_report(report: DependencyReport, config: AnalyzeConfig, log: logging.Logger = logger) -> None:
    """Log the report, findings at warning level or at error level when failing on warnings."""
    for problem, message in report_lines(report, config.verbose):
        if not problem:
            log.info(message)
        elif config.fail_on_warning:
            log.error(message)
        else:
            log.warning(message)
