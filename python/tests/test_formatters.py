"""Tests for tree, snippet and scriptable output formatting."""

import json
import os
import xml.etree.ElementTree as ET
from pathlib import Path

from depcheck.formatters import OutputFormatter
from depcheck.models import ArtifactCoordinate, DependencyNode


def sample_tree() -> DependencyNode:
    root = DependencyNode(ArtifactCoordinate("com.acme", "app", "1.0.0", scope=""))
    a = DependencyNode(ArtifactCoordinate("org.example", "a", "1.0"))
    b = DependencyNode(ArtifactCoordinate("org.example", "b", "2.0", scope="test"))
    c = DependencyNode(ArtifactCoordinate("org.example", "c", "3.0", classifier="linux"))
    root.add_child(a)
    root.add_child(b)
    a.add_child(c)
    c.metadata.pre_managed_version = "2.5"
    c.metadata.pre_managed_scope = "runtime"
    c.metadata.managed_scope = "compile"
    return root


class TestTreeFormats:
    """Tests for the tree output formats."""

    def test_maven_tree(self):
        output = OutputFormatter.format_as_maven_tree(sample_tree())

        assert output.splitlines() == [
            "com.acme:app:jar:1.0.0",
            "+- org.example:a:jar:1.0:compile",
            "|  \\- org.example:c:jar:linux:3.0:compile (version managed from 2.5; scope managed from runtime)",
            "\\- org.example:b:jar:2.0:test",
        ]

    def test_xml_nests_dependencies(self):
        output = OutputFormatter.format_as_xml(sample_tree())
        project = ET.fromstring(output.split('?>', 1)[1])

        assert project.findtext('packaging') == 'jar'
        a, b = project.findall('dependencies/dependency')
        assert a.findtext('artifactId') == 'a'
        assert b.findtext('scope') == 'test'
        assert a.findtext('dependencies/dependency/classifier') == 'linux'

    def test_json_carries_management_metadata(self):
        document = json.loads(OutputFormatter.format_as_json(sample_tree()))

        c = document['children'][0]['children'][0]
        assert c['preManagedVersion'] == '2.5'
        assert c['managedScope'] == 'compile'
        assert 'scope' not in document

    def test_sbom_components_and_dependencies(self):
        sbom = json.loads(OutputFormatter.format_as_sbom(sample_tree(), "tree pom.xml --format sbom"))

        purls = [component['purl'] for component in sbom['components']]
        assert purls == sorted(purls)
        assert "pkg:maven/org.example/c@3.0?classifier=linux" in purls
        assert sbom['metadata']['component']['name'] == 'app'
        assert sbom['metadata']['timestamp'].endswith('Z')
        assert {'name': 'commandLine', 'value': 'tree pom.xml --format sbom'} in sbom['metadata']['properties']

        dependencies = {entry['ref']: entry['dependsOn'] for entry in sbom['dependencies']}
        assert dependencies["pkg:maven/com.acme/app@1.0.0"] == [
            "pkg:maven/org.example/a@1.0", "pkg:maven/org.example/b@2.0",
        ]
        scopes = {component['name']: component.get('scope') for component in sbom['components']}
        assert scopes['b'] == 'excluded'
        assert scopes['a'] == 'required'


class TestAnalysisOutput:
    """Tests for analysis related output."""

    def test_dependency_xml_snippet(self):
        snippet = OutputFormatter.format_dependency_xml([
            ArtifactCoordinate("org.example", "lib", "1.2-20240101.120000-3", classifier="tests", scope="test"),
        ])
        element = ET.fromstring(snippet)

        assert element.findtext('version') == '1.2-SNAPSHOT'
        assert element.findtext('classifier') == 'tests'
        assert element.findtext('scope') == 'test'

    def test_compile_scope_is_omitted(self):
        snippet = OutputFormatter.format_dependency_xml([ArtifactCoordinate("g", "a", "1")])

        assert '<scope>' not in snippet
        assert '<classifier>' not in snippet
        assert OutputFormatter.format_dependency_xml([]) == ''

    def test_scriptable_output(self, tmp_path):
        output = OutputFormatter.format_scriptable_output(
            [ArtifactCoordinate("org.example", "lib", "1.0", scope="runtime")],
            Path(tmp_path),
            "$$$%%%",
        )

        pom = f"{os.path.abspath(tmp_path)}{os.sep}pom.xml"
        assert output == f"$$$%%%:{pom}:org.example:lib:jar::1.0:runtime\n"
