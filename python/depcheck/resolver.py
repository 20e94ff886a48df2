"""Resolvers that produce the raw dependency graph of a project."""

import logging
from typing import Dict, Optional, Set, Tuple

from .api_client import DepsDevClient
from .exceptions import ResolutionError
from .management import ManagementIndex
from .models import ArtifactCoordinate, DependencyNode, Project
from .parsers import FileParser, build_raw_graph

logger = logging.getLogger(__name__)


def _is_excluded(artifact: ArtifactCoordinate, exclusions: Set[str]) -> bool:
    """Exclusions are groupId:artifactId, either part may be *."""
    return any(candidate in exclusions for candidate in (
        artifact.ga,
        f"{artifact.group_id}:*",
        f"*:{artifact.artifact_id}",
        "*:*",
    ))


class GraphFileResolver:
    """Reads an already resolved raw graph from a nodes/edges JSON file."""

    def __init__(self, path: str):
        self.path = path

    def resolve(self, project: Project, management: Optional[ManagementIndex] = None) -> DependencyNode:
        """
        Raises:
            ResolutionError: if the graph file can't be read
            MalformedGraphError: if the graph file is not a valid graph
        """
        root = FileParser.parse_raw_graph(self.path)
        if root.artifact.ga != f"{project.group_id}:{project.artifact_id}":
            logger.debug(f"Graph root {root.artifact} is not the project {project.full_name}")
        return root

    def close(self):
        pass


class DepsDevResolver:
    """
    Builds the raw graph from deps.dev, one resolved graph per declared dependency.

    deps.dev knows nothing about Maven scopes, so every node below a declared
    dependency inherits the declared scope. Exclusions declared on a dependency
    cut the excluded artifacts and everything only reachable through them.
    """

    def __init__(self, client: Optional[DepsDevClient] = None):
        self.client = client or DepsDevClient()

    def resolve(self, project: Project, management: Optional[ManagementIndex] = None) -> DependencyNode:
        """
        Raises:
            ResolutionError: if a declared dependency has no version or deps.dev has no graph for it
        """
        management = management if management is not None else ManagementIndex.from_project(project)
        root = DependencyNode(artifact=project.artifact)

        for declared in project.dependencies:
            artifact = declared
            if not artifact.version:
                managed_version = management.managed_version(artifact)
                if not managed_version:
                    raise ResolutionError(f"No version for declared dependency {artifact.ga}")
                artifact = artifact.with_version(managed_version)

            document = self.client.get_dependency_graph(artifact)
            if document is None:
                raise ResolutionError(f"deps.dev has no dependency graph for {artifact.ga}:{artifact.version}")
            if document.get('error'):
                logger.warning(f"deps.dev reported a partial graph for {artifact.ga}: {document['error']}")

            child = self._graph_for(artifact, document, project.exclusions.get(artifact.ga, set()))
            root.children.append(child)

        logger.info(f"Resolved {len(project.dependencies)} declared dependencies from deps.dev")
        return root

    def _graph_for(self, declared: ArtifactCoordinate, document: Dict, exclusions: Set[str]) -> DependencyNode:
        top = build_raw_graph(document, default_scope=declared.scope)
        # The declared coordinate wins over what deps.dev reports for the node itself
        top.artifact = declared

        if exclusions:
            seen: Set[Tuple[str, ...]] = set()
            stack = [top]
            while stack:
                node = stack.pop()
                if node.artifact.identity in seen:
                    continue
                seen.add(node.artifact.identity)

                kept = []
                for child in node.children:
                    if _is_excluded(child.artifact, exclusions):
                        logger.debug(f"Excluding {child.artifact.ga} below {declared.ga}")
                        continue
                    kept.append(child)
                node.children = kept
                stack.extend(kept)

        return top

    def close(self):
        self.client.close()
