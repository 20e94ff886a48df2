"""Input file parsers: pom.xml projects, raw dependency graphs and usage evidence."""

import json
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple
from urllib.parse import urlparse

import requests

from .analysis import UsageEvidence
from .exceptions import AnalysisError, MalformedGraphError, ProjectParseError, ResolutionError
from .models import (
    SCOPE_COMPILE,
    ArtifactCoordinate,
    CoordinateKey,
    DependencyManagementEntry,
    DependencyNode,
    Project,
)
from .session import DEFAULT_TIMEOUT, create_session

logger = logging.getLogger(__name__)

MAVEN_CENTRAL_URL = "https://repo1.maven.org/maven2"
MAVEN_CENTRAL_PREFIX = "maven-central:"


def _is_url(path: str) -> bool:
    """Check if a path is a URL."""
    try:
        result = urlparse(path)
        return result.scheme in ('http', 'https')
    except ValueError:
        return False


def _read_content(path: str) -> str:
    """
    Read content from either a file path or URL.

    Raises:
        OSError: If the file can't be read
        requests.RequestException: If URL fetch fails
    """
    if _is_url(path):
        logger.info(f"Fetching content from URL: {path}")
        with create_session() as session:
            response = session.get(path, timeout=DEFAULT_TIMEOUT)
            response.raise_for_status()
            return response.text
    else:
        logger.info(f"Reading content from file: {path}")
        with open(path, 'r') as f:
            return f.read()


def _strip_namespaces(root: ET.Element) -> ET.Element:
    """Drop XML namespaces in place so POMs with and without xmlns read the same."""
    for elem in root.iter():
        if isinstance(elem.tag, str) and '}' in elem.tag:
            elem.tag = elem.tag.split('}', 1)[1]
    return root


def get_element_text(parent: ET.Element, tag_name: str) -> Optional[str]:
    """Get text content of a child element."""
    elem = parent.find(tag_name)
    if elem is not None and elem.text:
        return elem.text.strip()
    return None


def resolve_property(value: Optional[str], properties: Dict[str, str], max_iterations: int = 10) -> Optional[str]:
    """
    Resolve ${property} references in a string with nesting support.
    Returns None if unresolvable.
    """
    if not value or '${' not in value:
        return value

    resolved = value
    iterations = 0

    while '${' in resolved and iterations < max_iterations:
        start_idx = resolved.find('${')
        end_idx = resolved.find('}', start_idx)

        if start_idx == -1 or end_idx == -1:
            break

        prop_name = resolved[start_idx + 2:end_idx]
        prop_value = properties.get(prop_name)

        if prop_value is None:
            return None

        resolved = resolved[:start_idx] + prop_value + resolved[end_idx + 1:]
        iterations += 1

    if '${' in resolved:
        return None

    return resolved


def parse_properties(root: ET.Element) -> Dict[str, str]:
    """Parse all properties from <properties> section."""
    properties = {}

    props_elem = root.find('properties')
    if props_elem is not None:
        for prop in props_elem:
            if isinstance(prop.tag, str) and prop.text:
                properties[prop.tag] = prop.text.strip()

    return properties


def project_properties(root: ET.Element) -> Dict[str, str]:
    """Built-in ${project.*} properties of a POM."""
    properties = {}
    parent_elem = root.find('parent')

    group_id = get_element_text(root, 'groupId')
    version = get_element_text(root, 'version')
    if parent_elem is not None:
        parent_version = get_element_text(parent_elem, 'version')
        if parent_version:
            properties['project.parent.version'] = parent_version
        group_id = group_id or get_element_text(parent_elem, 'groupId')
        version = version or parent_version

    artifact_id = get_element_text(root, 'artifactId')
    if group_id:
        properties['project.groupId'] = group_id
    if artifact_id:
        properties['project.artifactId'] = artifact_id
    if version:
        properties['project.version'] = version
        properties['version'] = version
    return properties


def download_pom_from_maven_central(
    group_id: str,
    artifact_id: str,
    version: str,
    session: requests.Session
) -> Optional[ET.Element]:
    """Download a POM file from Maven Central and return parsed root element."""
    group_path = group_id.replace('.', '/')
    url = f"{MAVEN_CENTRAL_URL}/{group_path}/{artifact_id}/{version}/{artifact_id}-{version}.pom"

    logger.info(f"Downloading POM from Maven Central: {group_id}:{artifact_id}:{version}")
    logger.debug(f"URL: {url}")

    try:
        response = session.get(url, timeout=DEFAULT_TIMEOUT)
        if not response.ok:
            logger.warning(f"Failed to download POM {group_id}:{artifact_id}:{version}: HTTP {response.status_code}")
            return None
        return _strip_namespaces(ET.fromstring(response.content))
    except (requests.RequestException, ET.ParseError) as e:
        logger.warning(f"Error downloading POM {group_id}:{artifact_id}:{version}: {e}")
        return None


class PomReader:
    """
    Reads a POM together with its parent hierarchy and imported BOMs.

    Parents are looked up at their relativePath first, then on Maven Central
    unless the reader is offline.
    """

    def __init__(self, offline: bool = False, session: Optional[requests.Session] = None):
        self.offline = offline
        self.session = session

    def _download(self, group_id: str, artifact_id: str, version: str) -> Optional[ET.Element]:
        if self.offline:
            logger.warning(f"Offline, not downloading {group_id}:{artifact_id}:{version}")
            return None
        if self.session is None:
            self.session = create_session()
        return download_pom_from_maven_central(group_id, artifact_id, version, self.session)

    def parse_parent_pom_data(
        self,
        root: ET.Element,
        current_file_path: str,
        seen: Optional[Set[str]] = None
    ) -> Tuple[Dict[str, str], List[ET.Element]]:
        """
        Recursively parse parent POM hierarchy.
        Returns (properties_dict, list_of_pom_roots) where list is ordered oldest-first.
        """
        properties = {}
        pom_hierarchy = []
        seen = seen if seen is not None else set()

        parent_elem = root.find('parent')
        if parent_elem is None:
            return properties, pom_hierarchy

        parent_group_id = get_element_text(parent_elem, 'groupId')
        parent_artifact_id = get_element_text(parent_elem, 'artifactId')
        parent_version = get_element_text(parent_elem, 'version')
        # An empty <relativePath/> disables the local lookup
        relative_path = get_element_text(parent_elem, 'relativePath')
        if relative_path is None and parent_elem.find('relativePath') is None:
            relative_path = '../pom.xml'

        parent_id = f"{parent_group_id}:{parent_artifact_id}:{parent_version}"
        if parent_id in seen:
            logger.warning(f"Parent POM cycle detected at {parent_id}")
            return properties, pom_hierarchy
        seen.add(parent_id)

        parent_root = None
        parent_doc_path = None

        # Parents of downloaded POMs can only be downloaded as well
        if not current_file_path.startswith(MAVEN_CENTRAL_PREFIX) and relative_path:
            parent_path = (Path(current_file_path).resolve().parent / relative_path).resolve()
            if parent_path.is_dir():
                parent_path = parent_path / 'pom.xml'

            if parent_path.exists():
                try:
                    candidate_root = _strip_namespaces(ET.parse(parent_path).getroot())

                    # Verify coordinates match
                    cand_group = get_element_text(candidate_root, 'groupId')
                    if cand_group is None and candidate_root.find('parent') is not None:
                        cand_group = get_element_text(candidate_root.find('parent'), 'groupId')
                    cand_artifact = get_element_text(candidate_root, 'artifactId')

                    if parent_group_id == cand_group and parent_artifact_id == cand_artifact:
                        logger.info(f"Found parent POM at: {parent_path}")
                        parent_root = candidate_root
                        parent_doc_path = str(parent_path)
                    else:
                        logger.info(f"Local POM at {parent_path} has different coordinates, will try Maven Central")
                except ET.ParseError as e:
                    logger.debug(f"Error reading local parent POM {parent_path}: {e}")

        if parent_root is None and parent_group_id and parent_artifact_id and parent_version:
            parent_root = self._download(parent_group_id, parent_artifact_id, parent_version)
            if parent_root is not None:
                parent_doc_path = f"{MAVEN_CENTRAL_PREFIX}{parent_id}"

        if parent_root is None:
            logger.warning(f"Could not resolve parent POM {parent_id}")
            return properties, pom_hierarchy

        # Recursively get grandparent data first
        grandparent_props, grandparent_hierarchy = self.parse_parent_pom_data(parent_root, parent_doc_path, seen)
        properties.update(grandparent_props)
        pom_hierarchy.extend(grandparent_hierarchy)

        # Then get parent's own properties (override grandparent)
        properties.update(parse_properties(parent_root))

        pom_hierarchy.append(parent_root)
        return properties, pom_hierarchy

    def parse_dependency_management(
        self,
        root: ET.Element,
        properties: Dict[str, str],
        seen_boms: Optional[Set[str]] = None
    ) -> List[DependencyManagementEntry]:
        """
        Parse <dependencyManagement> section including BOM imports.

        Imported entries come first so the POM's own declarations win when the
        list is indexed with last-declaration-wins semantics.
        """
        imported: List[DependencyManagementEntry] = []
        entries: List[DependencyManagementEntry] = []
        seen_boms = seen_boms if seen_boms is not None else set()

        deps_elem = root.find('dependencyManagement/dependencies')
        if deps_elem is None:
            return entries

        for dep in deps_elem.findall('dependency'):
            group_id = resolve_property(get_element_text(dep, 'groupId'), properties)
            artifact_id = resolve_property(get_element_text(dep, 'artifactId'), properties)
            raw_version = get_element_text(dep, 'version')
            version = resolve_property(raw_version, properties)
            scope = get_element_text(dep, 'scope')
            dep_type = get_element_text(dep, 'type') or 'jar'
            classifier = get_element_text(dep, 'classifier') or ''

            if not group_id or not artifact_id:
                logger.debug(f"Skipping dependencyManagement entry with unresolvable coordinates in {root.tag}")
                continue

            # Handle BOM imports (scope=import, type=pom)
            if scope == 'import' and dep_type == 'pom':
                if not version:
                    logger.debug(f"Could not resolve version {raw_version} for BOM import {group_id}:{artifact_id}")
                    continue

                bom_id = f"{group_id}:{artifact_id}:{version}"
                if bom_id in seen_boms:
                    continue
                seen_boms.add(bom_id)

                logger.info(f"Importing BOM: {bom_id}")
                bom_root = self._download(group_id, artifact_id, version)
                if bom_root is not None:
                    bom_properties = {**properties, **parse_properties(bom_root), **project_properties(bom_root)}
                    bom_entries = self.parse_dependency_management(bom_root, bom_properties, seen_boms)
                    imported.extend(bom_entries)
                    logger.info(f"Imported {len(bom_entries)} managed dependencies from BOM {group_id}:{artifact_id}")
                else:
                    logger.warning(f"Failed to import BOM: {bom_id}")
                continue

            if raw_version and not version:
                logger.debug(f"Could not resolve version {raw_version} for {group_id}:{artifact_id}")

            entries.append(DependencyManagementEntry(
                key=CoordinateKey(group_id, artifact_id, dep_type, classifier),
                version=version or None,
                scope=scope or None,
            ))

        logger.info(f"Parsed {len(entries)} managed dependencies from dependencyManagement")
        return imported + entries


def parse_exclusions(dep_elem: ET.Element) -> Set[str]:
    """Parse <exclusions> from a dependency element."""
    exclusions = set()

    exclusions_elem = dep_elem.find('exclusions')
    if exclusions_elem is None:
        return exclusions

    for exclusion in exclusions_elem.findall('exclusion'):
        ex_group = get_element_text(exclusion, 'groupId')
        ex_artifact = get_element_text(exclusion, 'artifactId')

        if ex_group and ex_artifact:
            exclusions.add(f"{ex_group}:{ex_artifact}")
            logger.debug(f"Found exclusion: {ex_group}:{ex_artifact}")

    return exclusions


def _graph_node_artifact(index: int, node: Dict[str, Any], default_scope: str) -> ArtifactCoordinate:
    """Artifact of a raw graph node, in either the flat or the deps.dev versionKey form."""
    if not isinstance(node, dict):
        raise MalformedGraphError(f"Graph node {index} is not an object")

    version_key = node.get('versionKey')
    if version_key:
        group_id, _, artifact_id = (version_key.get('name') or '').partition(':')
        version = version_key.get('version')
    else:
        group_id = node.get('groupId')
        artifact_id = node.get('artifactId')
        version = node.get('version')

    if not group_id or not artifact_id:
        raise MalformedGraphError(f"Graph node {index} has no groupId/artifactId")

    return ArtifactCoordinate(
        group_id,
        artifact_id,
        version or '',
        node.get('type') or 'jar',
        node.get('classifier') or '',
        node.get('scope') or default_scope,
    )


def _node_index(value: Any, count: int) -> int:
    index = int(value)
    if index < 0 or index >= count:
        raise IndexError(f"node index {index} out of range for {count} nodes")
    return index


def build_raw_graph(document: Dict[str, Any], default_scope: str = SCOPE_COMPILE) -> DependencyNode:
    """
    Build a raw dependency graph from a nodes/edges document.

    The node with relation SELF is the root, or the first node if none is
    marked. A node reached by several edges is shared, and cycles are kept as
    they are.

    Raises:
        MalformedGraphError: if nodes lack coordinates or edges point nowhere
    """
    if not isinstance(document, dict):
        raise MalformedGraphError("Dependency graph document must be an object")

    raw_nodes = document.get('nodes') or []
    if not raw_nodes:
        raise MalformedGraphError("Dependency graph has no nodes")

    nodes = [DependencyNode(artifact=_graph_node_artifact(i, node, default_scope))
             for i, node in enumerate(raw_nodes)]

    root_index = 0
    for i, node in enumerate(raw_nodes):
        if node.get('relation') == 'SELF':
            root_index = i
            break

    for edge in document.get('edges') or []:
        try:
            source = nodes[_node_index(edge['fromNode'], len(nodes))]
            target = nodes[_node_index(edge['toNode'], len(nodes))]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise MalformedGraphError(f"Invalid dependency graph edge {edge}: {e}") from e

        if target not in source.children:
            source.children.append(target)

    root = nodes[root_index]
    logger.info(f"Built raw dependency graph for {root.artifact} with {len(nodes)} nodes")
    return root


def build_usage_evidence(document: Dict[str, Any]) -> UsageEvidence:
    """
    Build usage evidence from a {"main": {...}, "test": {...}} document.

    Keys are artifact coordinates (g:a:v, g:a:type:v or g:a:type:classifier:v),
    values are the referenced class names.

    Raises:
        AnalysisError: if the document is not in the expected shape
    """
    if not isinstance(document, dict):
        raise AnalysisError("Usage evidence document must be an object")

    evidence = UsageEvidence()
    for section, target in (('main', evidence.main), ('test', evidence.test)):
        entries = document.get(section) or {}
        if not isinstance(entries, dict):
            raise AnalysisError(f"Usage evidence section '{section}' must map artifacts to class names")

        for coordinate, classes in entries.items():
            try:
                artifact = ArtifactCoordinate.parse(coordinate)
            except ValueError as e:
                raise AnalysisError(f"Invalid artifact in {section} usage evidence: {e}") from e
            if not isinstance(classes, list):
                raise AnalysisError(f"Classes used from {coordinate} must be a list")
            target.setdefault(artifact, set()).update(str(name) for name in classes)

    logger.info(f"Loaded usage evidence for {len(evidence.main)} main and {len(evidence.test)} test artifacts")
    return evidence


class FileParser:
    """Parser for the input files of an analysis."""

    @staticmethod
    def _load_json(file_path: str) -> Any:
        return json.loads(_read_content(file_path))

    @staticmethod
    def parse_raw_graph(file_path: str) -> DependencyNode:
        """Parse a nodes/edges JSON graph file. Supports both local files and URLs."""
        try:
            document = FileParser._load_json(file_path)
        except (OSError, ValueError, requests.RequestException) as e:
            raise ResolutionError(f"Could not read dependency graph {file_path}: {e}") from e
        return build_raw_graph(document)

    @staticmethod
    def parse_usage_evidence(file_path: str) -> UsageEvidence:
        """Parse a usage evidence JSON file. Supports both local files and URLs."""
        try:
            document = FileParser._load_json(file_path)
        except (OSError, ValueError, requests.RequestException) as e:
            raise AnalysisError(f"Could not read usage evidence {file_path}: {e}") from e
        return build_usage_evidence(document)

    @staticmethod
    def parse_pom_file(file_path: str, offline: bool = False) -> Project:
        """
        Parse a Maven pom.xml file into a Project.

        Properties, dependencyManagement and BOM imports are collected from
        the whole parent hierarchy. Declared dependencies without a version
        or scope take them from dependencyManagement.

        Raises:
            ProjectParseError: if the file can't be read or has no coordinates
        """
        try:
            root = _strip_namespaces(ET.parse(file_path).getroot())
        except (OSError, ET.ParseError) as e:
            raise ProjectParseError(f"Error parsing pom.xml file {file_path}: {e}") from e

        reader = PomReader(offline=offline)
        try:
            return FileParser._build_project(root, file_path, reader)
        finally:
            if reader.session is not None:
                reader.session.close()

    @staticmethod
    def _build_project(root: ET.Element, file_path: str, reader: PomReader) -> Project:
        # Load parent POM data (properties and hierarchy)
        parent_properties, pom_hierarchy = reader.parse_parent_pom_data(root, file_path)
        logger.info(f"Loaded {len(parent_properties)} properties from parent POM hierarchy")

        builtin_properties = project_properties(root)
        current_properties = parse_properties(root)
        all_properties = {**parent_properties, **builtin_properties, **current_properties}
        logger.info(f"Loaded {len(all_properties)} properties total ({len(current_properties)} from current pom.xml)")

        project_group = builtin_properties.get('project.groupId')
        project_artifact = builtin_properties.get('project.artifactId')
        project_version = resolve_property(builtin_properties.get('project.version'), all_properties)
        if not project_group or not project_artifact:
            raise ProjectParseError(f"{file_path} has no groupId/artifactId")

        # Parse ALL dependencyManagement sections with FINAL merged properties, oldest first
        dependency_management: List[DependencyManagementEntry] = []
        for pom_root in pom_hierarchy + [root]:
            dependency_management.extend(reader.parse_dependency_management(pom_root, all_properties))
        logger.info(f"Total {len(dependency_management)} managed dependency entries")

        managed: Dict[CoordinateKey, DependencyManagementEntry] = {
            entry.key: entry for entry in dependency_management
        }

        pom_path = Path(file_path).resolve()
        base_dir = pom_path.parent
        build_directory = get_element_text(root, 'build/directory')
        build_directory = resolve_property(build_directory, {**all_properties, 'project.basedir': str(base_dir),
                                                             'basedir': str(base_dir)})
        build_dir = Path(build_directory) if build_directory else base_dir / 'target'
        if not build_dir.is_absolute():
            build_dir = base_dir / build_dir

        project = Project(
            group_id=project_group,
            artifact_id=project_artifact,
            version=project_version or 'unknown',
            packaging=get_element_text(root, 'packaging') or 'jar',
            name=get_element_text(root, 'name'),
            description=get_element_text(root, 'description'),
            dependency_management=dependency_management,
            base_dir=base_dir,
            build_dir=build_dir,
        )

        # Root <dependencies> section only, not <dependencyManagement> or <build>
        dependency_nodes = root.findall('dependencies/dependency')
        if not dependency_nodes:
            logger.info("No root <dependencies> section found (parent POM)")

        for dep in dependency_nodes:
            group_id = resolve_property(get_element_text(dep, 'groupId'), all_properties)
            artifact_id = resolve_property(get_element_text(dep, 'artifactId'), all_properties)
            if not group_id or not artifact_id:
                logger.warning(f"Skipping dependency with unresolvable coordinates in {file_path}")
                continue

            key = CoordinateKey(
                group_id,
                artifact_id,
                get_element_text(dep, 'type') or 'jar',
                get_element_text(dep, 'classifier') or '',
            )
            entry = managed.get(key)

            # Get scope - check managed scopes before defaulting to 'compile'
            scope = get_element_text(dep, 'scope')
            if not scope:
                scope = entry.scope if entry and entry.scope else SCOPE_COMPILE

            raw_version = get_element_text(dep, 'version')
            if raw_version:
                version = resolve_property(raw_version, all_properties)
                if not version:
                    logger.warning(f"Skipping dependency with unresolvable version: {key}:{raw_version}")
                    continue
            else:
                version = entry.version if entry else None
                if not version:
                    logger.warning(f"Skipping dependency with no version: {key}")
                    continue
                logger.info(f"Resolved version for {key} from dependencyManagement: {version}")

            artifact = ArtifactCoordinate(group_id, artifact_id, version, key.type, key.classifier, scope)
            project.dependencies.append(artifact)
            logger.debug(f"Added dependency from pom.xml: {artifact}")

            if get_element_text(dep, 'optional') == 'true':
                project.optional.add(artifact.ga)

            dep_exclusions = parse_exclusions(dep)
            if dep_exclusions:
                project.exclusions[artifact.ga] = dep_exclusions
                logger.info(f"Dependency {artifact.ga} has {len(dep_exclusions)} exclusions")

        logger.info(f"Parsed {len(project.dependencies)} dependencies from {file_path}")
        return project
