"""Lookup of <dependencyManagement> overrides by artifact identity."""

import logging
from typing import Dict, Iterable, Iterator, Optional

from .models import ArtifactCoordinate, CoordinateKey, DependencyManagementEntry

logger = logging.getLogger(__name__)


class ManagementIndex:
    """
    Read-only map from CoordinateKey to the project's management entry.

    Entries are keyed by group:artifact:type[:classifier]; version and scope are
    not part of the key. When the same key is declared more than once the last
    declaration wins, the same as building the map in declaration order.
    """

    def __init__(self, entries: Iterable[DependencyManagementEntry] = ()):
        self._entries: Dict[CoordinateKey, DependencyManagementEntry] = {}
        for entry in entries:
            if entry.key in self._entries:
                logger.debug(f"Duplicate dependencyManagement entry for {entry.key}, last declaration wins")
            self._entries[entry.key] = entry

    @classmethod
    def from_project(cls, project) -> 'ManagementIndex':
        index = cls(project.dependency_management if project is not None else ())
        logger.info(f"DependencyManagement index built with {len(index)} entries")
        return index

    def get(self, artifact: ArtifactCoordinate) -> Optional[DependencyManagementEntry]:
        """Management entry for the artifact, or None when it is not managed."""
        return self._entries.get(artifact.key)

    def managed_version(self, artifact: ArtifactCoordinate) -> Optional[str]:
        entry = self.get(artifact)
        return entry.version if entry else None

    def __contains__(self, item) -> bool:
        if isinstance(item, ArtifactCoordinate):
            item = item.key
        return item in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[DependencyManagementEntry]:
        return iter(self._entries.values())
