"""Builds verbose dependency trees from raw resolver graphs."""

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .cycles import CycleBreaker
from .management import ManagementIndex
from .models import (
    SCOPE_TEST,
    DependencyManagementEntry,
    DependencyNode,
    Project,
)

logger = logging.getLogger(__name__)


class DependencyGraphBuilder:
    """
    Builds the verbose dependency tree of a project in four phases:

    Phase 1: Resolve the raw graph
    - Nodes may be shared between parents and the graph may contain cycles
    - No version resolution happens here beyond what the resolver did

    Phase 2: Break cycles so the remaining phases always terminate

    Phase 3: Prune transitive test dependencies
    - Direct dependencies are kept whatever their scope
    - Below them, test-scoped nodes are dropped with their subtrees
    - The result is an owned tree rooted at a synthetic project node

    Phase 4: Apply dependency management to transitive nodes
    - Versions are overridden, scopes are only annotated
    """

    def __init__(self, resolver=None):
        """Initialize the graph builder."""
        self.resolver = resolver
        self.cycle_breaker = CycleBreaker()
        self.management = ManagementIndex()

        # Statistics from the last build
        self.pruned_count = 0
        self.managed_count = 0

    def set_dependency_management(self, entries: Iterable[DependencyManagementEntry]) -> None:
        """Set dependency management entries, replacing any previous index."""
        self.management = ManagementIndex(entries)
        logger.info(f"DependencyManagement set with {len(self.management)} entries")

    def build_verbose_graph(self, project: Project, resolver=None) -> DependencyNode:
        """
        Resolve, clean and manage the dependency graph of a project.

        Raises:
            ResolutionError: if the resolver cannot produce a graph
            MalformedGraphError: if the raw graph has nodes without artifacts
        """
        resolver = resolver or self.resolver
        if resolver is None:
            raise ValueError("No resolver configured for DependencyGraphBuilder")

        self.management = ManagementIndex.from_project(project)

        logger.info(f"PHASE 1: Resolving raw dependency graph for {project.full_name}")
        raw_root = resolver.resolve(project, self.management)

        logger.info("PHASE 2: Breaking dependency cycles")
        acyclic_root = self.cycle_breaker.break_cycles(raw_root)

        # Don't want transitive test dependencies included in analysis
        logger.info("PHASE 3: Pruning transitive test dependencies")
        pruned_root = self.prune_transitive_test_dependencies(acyclic_root, project)

        logger.info("PHASE 4: Applying dependency management")
        self.apply_dependency_management(pruned_root)

        logger.info(f"Verbose tree complete: {pruned_root.count_nodes()} nodes, "
                    f"{len(pruned_root.children)} direct dependencies, "
                    f"{self.pruned_count} test edges pruned, {self.managed_count} nodes managed")
        return pruned_root

    def prune_transitive_test_dependencies(self, raw_root: DependencyNode, project: Project) -> DependencyNode:
        """
        Copy the graph under a new project root, leaving out transitive test dependencies.

        The raw graph is never modified: shared raw nodes are copied once per
        occurrence so the result is a tree. Which children a raw node keeps is
        computed once per node object, since two raw nodes with the same
        coordinates can carry different children.
        """
        self.pruned_count = 0
        new_root = DependencyNode(artifact=project.artifact)
        kept_children: Dict[int, List[DependencyNode]] = {}

        for child in raw_root.children:
            new_root.add_child(self._copy_without_test_dependencies(child, kept_children))

        logger.info(f"Pruned {self.pruned_count} transitive test dependencies")
        return new_root

    def _kept_children(
        self,
        node: DependencyNode,
        kept_children: Dict[int, List[DependencyNode]]
    ) -> List[DependencyNode]:
        if id(node) not in kept_children:
            kept = []
            for child in node.children:
                if child.scope == SCOPE_TEST:
                    self.pruned_count += 1
                    logger.debug(f"Pruning transitive test dependency {child.artifact} (from {node.artifact})")
                else:
                    kept.append(child)
            kept_children[id(node)] = kept
        return kept_children[id(node)]

    def _copy_without_test_dependencies(
        self,
        top: DependencyNode,
        kept_children: Dict[int, List[DependencyNode]]
    ) -> DependencyNode:
        """Copy the subtree under a direct dependency."""
        top_copy = top.copy()
        on_path: Set[Tuple[str, ...]] = {top.artifact.identity}
        stack = [(top, top_copy, iter(self._kept_children(top, kept_children)))]

        while stack:
            source, target, pending = stack[-1]
            child = next(pending, None)

            if child is None:
                on_path.discard(source.artifact.identity)
                stack.pop()
                continue

            child_identity = child.artifact.identity
            if child_identity in on_path:
                logger.debug(f"Not expanding {child.artifact} again below itself")
                continue

            child_copy = child.copy()
            target.add_child(child_copy)
            on_path.add(child_identity)
            stack.append((child, child_copy, iter(self._kept_children(child, kept_children))))

        return top_copy

    def apply_dependency_management(self, root: DependencyNode, management: Optional[ManagementIndex] = None) -> int:
        """
        Apply management overrides to every node below the direct dependencies.

        Direct dependencies are never overridden. Returns the number of nodes
        whose version or scope annotation was changed.
        """
        management = management if management is not None else self.management
        self.managed_count = 0

        if not len(management):
            logger.info("No dependency management entries to apply")
            return 0

        for child in root.children:
            for transitive in child.children:
                for node, _ in transitive.walk():
                    entry = management.get(node.artifact)
                    if entry is not None and self._apply_management(node, entry):
                        self.managed_count += 1

        logger.info(f"Applied dependency management to {self.managed_count} transitive nodes")
        return self.managed_count

    @staticmethod
    def _apply_management(node: DependencyNode, entry: DependencyManagementEntry) -> bool:
        changed = False

        if entry.version and entry.version != node.artifact.version:
            logger.debug(f"Managing version of {node.artifact} to {entry.version}")
            node.metadata.pre_managed_version = node.artifact.version
            node.artifact = node.artifact.with_version(entry.version)
            changed = True

        if entry.scope and entry.scope != node.scope:
            logger.debug(f"Recording managed scope {entry.scope} for {node.artifact}")
            node.metadata.pre_managed_scope = node.scope
            # The node keeps its resolved scope, only the annotation records the managed one
            node.metadata.managed_scope = entry.scope
            changed = True

        return changed

    def close(self):
        """Close resources."""
        if self.resolver is not None and hasattr(self.resolver, "close"):
            self.resolver.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
