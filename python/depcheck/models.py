"""Core data models for depcheck."""

import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple

SCOPE_COMPILE = "compile"
SCOPE_PROVIDED = "provided"
SCOPE_RUNTIME = "runtime"
SCOPE_TEST = "test"
SCOPE_SYSTEM = "system"

SNAPSHOT_SUFFIX = "-SNAPSHOT"
SNAPSHOT_TIMESTAMP = re.compile(r"^(.*)-(\d{8}\.\d{6})-(\d+)$")


@dataclass(frozen=True)
class CoordinateKey:
    """Artifact identity used for dependency management lookups (no version, no scope)."""

    group_id: str
    artifact_id: str
    type: str = "jar"
    classifier: str = ""

    def __str__(self) -> str:
        key = f"{self.group_id}:{self.artifact_id}:{self.type}"
        if self.classifier:
            key += f":{self.classifier}"
        return key


@dataclass(frozen=True)
class ArtifactCoordinate:
    """Represents a resolved or declared Maven artifact."""

    group_id: str
    artifact_id: str
    version: str
    type: str = "jar"
    classifier: str = ""
    scope: str = SCOPE_COMPILE

    def __post_init__(self):
        """Normalize optional fields so equality is not split by None vs empty."""
        if not self.type:
            object.__setattr__(self, "type", "jar")
        if self.classifier is None:
            object.__setattr__(self, "classifier", "")
        if self.scope is None:
            object.__setattr__(self, "scope", "")
        if self.version is None:
            object.__setattr__(self, "version", "")

    @property
    def key(self) -> CoordinateKey:
        return CoordinateKey(self.group_id, self.artifact_id, self.type, self.classifier)

    @property
    def identity(self) -> Tuple[str, str, str, str, str]:
        """Full artifact identity, scope excluded."""
        return (self.group_id, self.artifact_id, self.version, self.type, self.classifier)

    @property
    def conflict_id(self) -> str:
        return str(self.key)

    @property
    def ga(self) -> str:
        return f"{self.group_id}:{self.artifact_id}"

    @property
    def base_version(self) -> str:
        """Collapse timestamped snapshots (1.0-20240101.120000-3) to 1.0-SNAPSHOT."""
        match = SNAPSHOT_TIMESTAMP.match(self.version)
        if match:
            return f"{match.group(1)}{SNAPSHOT_SUFFIX}"
        return self.version

    def with_version(self, version: str) -> "ArtifactCoordinate":
        return replace(self, version=version)

    def __str__(self) -> str:
        text = f"{self.group_id}:{self.artifact_id}:{self.type}"
        if self.classifier:
            text += f":{self.classifier}"
        text += f":{self.version}"
        if self.scope:
            text += f":{self.scope}"
        return text

    @classmethod
    def parse(cls, text: str, has_scope: bool = False) -> "ArtifactCoordinate":
        """
        Parse Maven colon notation.

        Without scope: g:a:v, g:a:type:v or g:a:type:classifier:v.
        With scope (dependency:tree style): g:a:type:v:scope or g:a:type:classifier:v:scope.
        """
        parts = [part.strip() for part in text.strip().split(":")]
        scope = SCOPE_COMPILE
        if has_scope:
            if len(parts) < 4:
                raise ValueError(f"Can not parse scoped artifact coordinate <{text}>")
            scope = parts.pop()

        if len(parts) == 3:
            group_id, artifact_id, version = parts
            return cls(group_id, artifact_id, version, scope=scope)
        if len(parts) == 4:
            group_id, artifact_id, type_, version = parts
            return cls(group_id, artifact_id, version, type_, scope=scope)
        if len(parts) == 5:
            group_id, artifact_id, type_, classifier, version = parts
            return cls(group_id, artifact_id, version, type_, classifier, scope)
        raise ValueError(f"Can not parse artifact coordinate <{text}>")


@dataclass
class ManagementMetadata:
    """Annotations recorded when dependency management touches a node."""

    pre_managed_version: Optional[str] = None
    pre_managed_scope: Optional[str] = None
    managed_scope: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.pre_managed_version is None and self.pre_managed_scope is None and self.managed_scope is None

    def to_dict(self) -> Dict[str, str]:
        """Only the fields that were set, keyed the way Maven names them."""
        data = {}
        if self.pre_managed_version is not None:
            data["preManagedVersion"] = self.pre_managed_version
        if self.pre_managed_scope is not None:
            data["preManagedScope"] = self.pre_managed_scope
        if self.managed_scope is not None:
            data["managedScope"] = self.managed_scope
        return data


@dataclass
class DependencyNode:
    """
    A node in a dependency graph.

    Raw resolver output may share nodes between parents and may even contain
    cycles; normalized trees give every node exactly one parent.
    """

    artifact: ArtifactCoordinate
    children: List['DependencyNode'] = field(default_factory=list, repr=False)
    parent: Optional['DependencyNode'] = field(default=None, repr=False)
    metadata: ManagementMetadata = field(default_factory=ManagementMetadata)

    def __eq__(self, other) -> bool:
        """Equality based on object identity for graph node sharing."""
        return self is other

    def __hash__(self) -> int:
        """Hash based on object identity for graph node sharing."""
        return id(self)

    @property
    def scope(self) -> str:
        return self.artifact.scope

    @property
    def is_root(self) -> bool:
        return self.parent is None or self.parent is self

    def add_child(self, child: 'DependencyNode') -> None:
        """Add a child dependency to this node."""
        if child not in self.children:  # Avoid duplicates
            self.children.append(child)
        child.parent = self

    def copy(self) -> 'DependencyNode':
        """Detached copy of this node without children or parent."""
        return DependencyNode(artifact=self.artifact, metadata=replace(self.metadata))

    def walk(self) -> Iterator[Tuple['DependencyNode', int]]:
        """Pre-order walk yielding (node, depth). Only safe on acyclic graphs."""
        stack = [(self, 0)]
        while stack:
            node, depth = stack.pop()
            yield node, depth
            for child in reversed(node.children):
                stack.append((child, depth + 1))

    def count_nodes(self) -> int:
        return sum(1 for _ in self.walk())


@dataclass(frozen=True)
class DependencyManagementEntry:
    """A <dependencyManagement> override; unset fields mean no override."""

    key: CoordinateKey
    version: Optional[str] = None
    scope: Optional[str] = None


@dataclass
class Project:
    """The analyzed project as declared in its build file."""

    group_id: str
    artifact_id: str
    version: str
    packaging: str = "jar"
    name: Optional[str] = None
    description: Optional[str] = None
    dependencies: List[ArtifactCoordinate] = field(default_factory=list)
    dependency_management: List[DependencyManagementEntry] = field(default_factory=list)
    exclusions: Dict[str, Set[str]] = field(default_factory=dict)  # "g:a" -> {"g:a", ...}
    optional: Set[str] = field(default_factory=set)  # "g:a" of <optional>true</optional> dependencies
    base_dir: Optional[Path] = None
    build_dir: Optional[Path] = None

    @property
    def artifact(self) -> ArtifactCoordinate:
        """The project itself as an artifact; the empty scope marks the graph root."""
        return ArtifactCoordinate(self.group_id, self.artifact_id, self.version, self.packaging, scope="")

    @property
    def full_name(self) -> str:
        return f"{self.group_id}:{self.artifact_id}:{self.version}"
