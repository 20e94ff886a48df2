"""Output formatters for dependency trees and analysis reports."""

import json
import logging
import os
import re
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from packageurl import PackageURL
from cyclonedx.model import ExternalReference, ExternalReferenceType, XsUri
from cyclonedx.model.bom import Bom
from cyclonedx.model.component import Component, ComponentType, ComponentScope
from cyclonedx.output.json import JsonV1Dot6

from .models import SCOPE_COMPILE, ArtifactCoordinate, DependencyNode

logger = logging.getLogger(__name__)


class OutputFormatter:
    """Formatter for various output formats."""

    @staticmethod
    def format_as_maven_tree(root: DependencyNode) -> str:
        """Format as Maven dependency:tree output, with management annotations."""
        lines = [str(root.artifact)]

        # (node, prefix, is_last)
        stack = [(child, "", i == len(root.children) - 1)
                 for i, child in reversed(list(enumerate(root.children)))]
        while stack:
            node, prefix, is_last = stack.pop()
            connector = "\\- " if is_last else "+- "
            lines.append(f"{prefix}{connector}{node.artifact}{OutputFormatter._management_note(node)}")

            child_prefix = prefix + ("   " if is_last else "|  ")
            for i in reversed(range(len(node.children))):
                stack.append((node.children[i], child_prefix, i == len(node.children) - 1))

        return '\n'.join(lines) + '\n'

    @staticmethod
    def _management_note(node: DependencyNode) -> str:
        notes = []
        if node.metadata.pre_managed_version is not None:
            notes.append(f"version managed from {node.metadata.pre_managed_version}")
        if node.metadata.pre_managed_scope is not None:
            notes.append(f"scope managed from {node.metadata.pre_managed_scope}")
        return f" ({'; '.join(notes)})" if notes else ""

    @staticmethod
    def format_as_xml(root: DependencyNode) -> str:
        """Format the tree as a <project> document with nested <dependencies>."""
        project = OutputFormatter._xml_element(root.artifact, is_root=True)

        stack = [(child, project) for child in reversed(root.children)]
        while stack:
            node, parent = stack.pop()
            element = OutputFormatter._xml_element(node.artifact, is_root=False)
            parent.find('dependencies').append(element)
            stack.extend((child, element) for child in reversed(node.children))

        ET.indent(project, space="  ")
        return ET.tostring(project, encoding='unicode', xml_declaration=True) + '\n'

    @staticmethod
    def _xml_element(artifact: ArtifactCoordinate, is_root: bool) -> ET.Element:
        element = ET.Element('project' if is_root else 'dependency')
        ET.SubElement(element, 'groupId').text = artifact.group_id
        ET.SubElement(element, 'artifactId').text = artifact.artifact_id
        ET.SubElement(element, 'version').text = artifact.version
        if is_root:
            ET.SubElement(element, 'packaging').text = artifact.type
        else:
            ET.SubElement(element, 'scope').text = artifact.scope
            ET.SubElement(element, 'type').text = artifact.type
            if artifact.classifier:
                ET.SubElement(element, 'classifier').text = artifact.classifier
        ET.SubElement(element, 'dependencies')
        return element

    @staticmethod
    def format_as_json(root: DependencyNode) -> str:
        """Format the tree as nested JSON objects."""
        def to_dict(node: DependencyNode) -> Dict[str, Any]:
            data = {
                'groupId': node.artifact.group_id,
                'artifactId': node.artifact.artifact_id,
                'version': node.artifact.version,
                'type': node.artifact.type,
            }
            if node.artifact.classifier:
                data['classifier'] = node.artifact.classifier
            if node.artifact.scope:
                data['scope'] = node.artifact.scope
            data.update(node.metadata.to_dict())
            data['children'] = []
            return data

        document = to_dict(root)
        stack = [(child, document) for child in reversed(root.children)]
        while stack:
            node, parent = stack.pop()
            data = to_dict(node)
            parent['children'].append(data)
            stack.extend((child, data) for child in reversed(node.children))

        return json.dumps(document, indent=2) + '\n'

    @staticmethod
    def format_as_sbom(root: DependencyNode, command_line: Optional[str] = None) -> str:
        """Generate a CycloneDX SBOM in JSON format with the tree as its dependency graph."""
        from . import __version__

        bom = Bom()
        bom.serial_number = uuid4()

        tool_component = Component(
            name="depcheck",
            version=__version__,
            type=ComponentType.APPLICATION,
            bom_ref=f"depcheck@{__version__}",
            external_references=[ExternalReference(
                type=ExternalReferenceType.DOCUMENTATION,
                url=XsUri("https://maven.apache.org/plugins/maven-dependency-plugin/")
            )]
        )
        bom.metadata.tools.components.add(tool_component)
        bom.metadata.timestamp = datetime.now(timezone.utc).replace(microsecond=0)
        bom.metadata.component = OutputFormatter._artifact_to_component(root.artifact, ComponentType.APPLICATION)

        # Same artifact can sit at several places in the tree; one component per purl
        components: Dict[str, Component] = {}
        dependency_map: Dict[str, List[str]] = {OutputFormatter._build_purl(root.artifact): []}
        for node, depth in root.walk():
            purl = OutputFormatter._build_purl(node.artifact)
            if depth > 0 and purl not in components:
                components[purl] = OutputFormatter._artifact_to_component(node.artifact, ComponentType.LIBRARY, node)
            depends_on = dependency_map.setdefault(purl, [])
            for child in node.children:
                child_purl = OutputFormatter._build_purl(child.artifact)
                if child_purl not in depends_on:
                    depends_on.append(child_purl)

        for component in components.values():
            bom.components.add(component)

        sbom = json.loads(JsonV1Dot6(bom).output_as_string())

        # Parse and add dependencies manually (easier than using the API)
        sbom['dependencies'] = sorted(
            ({"ref": ref, "dependsOn": sorted(depends_on)} for ref, depends_on in dependency_map.items()),
            key=lambda d: d['ref']
        )
        sbom['components'] = sorted(sbom.get('components', []), key=lambda c: c.get('purl', ''))

        metadata = sbom.setdefault('metadata', {})
        if command_line:
            metadata.setdefault('properties', []).append({'name': 'commandLine', 'value': command_line})

        # UTC with Z suffix, no microseconds
        if 'timestamp' in metadata:
            match = re.match(r'(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})', metadata['timestamp'])
            if match:
                metadata['timestamp'] = match.group(1) + 'Z'

        return json.dumps(sbom, indent=2) + '\n'

    @staticmethod
    def _maven_scope_to_cyclonedx(maven_scope: str) -> ComponentScope:
        """
        Map Maven scope to CycloneDX ComponentScope.

        Maven scopes:
          compile, runtime -> REQUIRED (needed at runtime)
          test, provided, system -> EXCLUDED (not needed at runtime)
        """
        scope_lower = (maven_scope or SCOPE_COMPILE).lower()

        if scope_lower in ("test", "provided", "system"):
            return ComponentScope.EXCLUDED
        return ComponentScope.REQUIRED

    @staticmethod
    def _artifact_to_component(
        artifact: ArtifactCoordinate,
        component_type: ComponentType,
        node: Optional[DependencyNode] = None
    ) -> Component:
        """Convert an artifact to a CycloneDX Component."""
        purl_str = OutputFormatter._build_purl(artifact)

        tags = []
        if node is not None:
            for name, value in node.metadata.to_dict().items():
                tags.append(f"{name}:{value}")

        component = Component(
            name=artifact.artifact_id,
            version=artifact.version,
            type=component_type,
            group=artifact.group_id,
            purl=PackageURL.from_string(purl_str),
            bom_ref=purl_str,
            tags=tags if tags else None
        )
        if node is not None:
            component.scope = OutputFormatter._maven_scope_to_cyclonedx(artifact.scope)
        return component

    @staticmethod
    def _build_purl(artifact: ArtifactCoordinate) -> str:
        """Build a Package URL (purl) string for an artifact."""
        qualifiers = {}
        if artifact.type and artifact.type != 'jar':
            qualifiers['type'] = artifact.type
        if artifact.classifier:
            qualifiers['classifier'] = artifact.classifier
        return PackageURL(
            type='maven',
            namespace=artifact.group_id,
            name=artifact.artifact_id,
            version=artifact.version or None,
            qualifiers=qualifiers or None,
        ).to_string()

    @staticmethod
    def format_dependency_xml(artifacts: Iterable[ArtifactCoordinate]) -> str:
        """<dependency> snippets to paste into a pom for the given artifacts."""
        snippets = []
        for artifact in artifacts:
            element = ET.Element('dependency')
            ET.SubElement(element, 'groupId').text = artifact.group_id
            ET.SubElement(element, 'artifactId').text = artifact.artifact_id
            ET.SubElement(element, 'version').text = artifact.base_version
            if artifact.classifier and artifact.classifier.strip():
                ET.SubElement(element, 'classifier').text = artifact.classifier
            if artifact.scope != SCOPE_COMPILE:
                ET.SubElement(element, 'scope').text = artifact.scope
            ET.indent(element, space="  ")
            snippets.append(ET.tostring(element, encoding='unicode'))
        return '\n'.join(snippets) + '\n' if snippets else ''

    @staticmethod
    def format_scriptable_output(
        artifacts: Iterable[ArtifactCoordinate],
        base_dir: Path,
        flag: str
    ) -> str:
        """One flag:pom:conflictId:classifier:baseVersion:scope line per artifact."""
        pom_file = f"{os.path.abspath(base_dir)}{os.sep}pom.xml"
        lines = [
            f"{flag}:{pom_file}:{artifact.conflict_id}:{artifact.classifier}:{artifact.base_version}:{artifact.scope}"
            for artifact in artifacts
        ]
        return '\n'.join(lines) + '\n' if lines else ''
