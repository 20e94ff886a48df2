"""Main CLI entry point for depcheck."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .analysis import EvidenceAnalyzer
from .classifier import UsageClassifier, log_report
from .config import DEFAULT_SCRIPTABLE_FLAG, AnalyzeConfig
from .exceptions import AnalysisError, DepcheckError
from .formatters import OutputFormatter
from .graph_builder import DependencyGraphBuilder
from .models import DependencyNode, Project
from .parsers import FileParser
from .resolver import DepsDevResolver, GraphFileResolver

logger = logging.getLogger(__name__)

LOG_LEVELS = ['TRACE', 'DEBUG', 'INFO', 'WARN', 'WARNING', 'ERROR']


def setup_logging(verbose: bool = False, log_level: Optional[str] = None):
    """Configure logging based on verbosity flags."""
    if log_level:
        name = log_level.upper()
        name = {'TRACE': 'DEBUG', 'WARN': 'WARNING'}.get(name, name)
        level = getattr(logging, name, logging.WARNING)
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format='%(levelname)s: %(message)s'
    )


def build_tree(project: Project, graph_file: Optional[str]) -> DependencyNode:
    """Resolve and normalize the dependency tree of a project."""
    resolver = GraphFileResolver(graph_file) if graph_file else DepsDevResolver()
    with DependencyGraphBuilder(resolver) as graph_builder:
        return graph_builder.build_verbose_graph(project)


def write_output(output: str, output_file: str):
    if output_file == '-':
        print(output, end='')
    else:
        with open(output_file, 'w') as f:
            f.write(output)
        logger.info(f"Output written to: {output_file}")
        print(f"Output written to: {output_file}")


def handle_tree(args) -> int:
    """Handle the 'tree' subcommand."""
    setup_logging(args.verbose, args.loglevel)

    project = FileParser.parse_pom_file(args.input, offline=args.offline)
    logger.info(f"Project {project.full_name} with {len(project.dependencies)} declared dependencies")

    root = build_tree(project, args.graph)

    if args.output_format == 'xml':
        output = OutputFormatter.format_as_xml(root)
    elif args.output_format == 'json':
        output = OutputFormatter.format_as_json(root)
    elif args.output_format == 'sbom':
        output = OutputFormatter.format_as_sbom(root, ' '.join(sys.argv[1:]))
    else:
        output = OutputFormatter.format_as_maven_tree(root)

    write_output(output, args.output)
    return 0


def handle_analyze(args) -> int:
    """Handle the 'analyze' subcommand."""
    setup_logging(args.verbose, args.loglevel)
    config = AnalyzeConfig.from_args(args)

    if config.skip:
        logger.info("Skipping plugin execution")
        return 0

    project = FileParser.parse_pom_file(args.input, offline=args.offline)

    if project.packaging in config.ignored_packagings:
        logger.info(f"Skipping {project.packaging} project")
        return 0

    build_dir = Path(args.build_dir) if args.build_dir else None
    if build_dir is not None and not build_dir.exists():
        logger.info("Skipping project with no build directory")
        return 0

    root = build_tree(project, args.graph)
    evidence = FileParser.parse_usage_evidence(args.usage)

    analysis = EvidenceAnalyzer(evidence).analyze(root)
    if config.used_dependencies:
        try:
            analysis = analysis.force_declared_dependencies_usage(config.used_dependencies)
        except AnalysisError as e:
            raise AnalysisError(f"Cannot analyze dependencies: {e}") from e
    if config.ignore_non_compile:
        analysis = analysis.ignore_non_compile()

    report = UsageClassifier(config).classify(analysis)
    log_report(report, config, logging.getLogger('depcheck'))

    missing = report.used_undeclared.artifacts
    if config.output_xml and missing:
        logger.info("Add the following to your pom to correct the missing dependencies: ")
        print(OutputFormatter.format_dependency_xml(missing), end='')

    if config.scriptable_output and missing:
        logger.info("Missing dependencies: ")
        print(OutputFormatter.format_scriptable_output(missing, project.base_dir, config.scriptable_flag), end='')

    if report.warning and config.fail_on_warning:
        logger.error("Dependency problems found")
        return 1
    return 0


def add_common_arguments(parser: argparse.ArgumentParser):
    parser.add_argument('input', help='Project pom.xml')
    parser.add_argument('--graph', metavar='FILE',
                        help='Raw dependency graph JSON (nodes/edges); resolved from deps.dev if omitted')
    parser.add_argument('--offline', action='store_true',
                        help='Never download parent POMs or BOMs from Maven Central')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Verbose output')
    parser.add_argument('--loglevel', type=str.upper, choices=LOG_LEVELS,
                        help='Set log level')


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog='depcheck',
        description='Verbose Maven dependency trees and declared dependency usage analysis'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Subcommands')

    # Tree command
    tree_parser = subparsers.add_parser('tree', help='Print the verbose dependency tree')
    add_common_arguments(tree_parser)
    tree_parser.add_argument('output', nargs='?', default='-',
                             help='Output file (default: stdout, use - for stdout)')
    tree_parser.add_argument('--format', dest='output_format', default='text',
                             choices=['text', 'xml', 'json', 'sbom'],
                             help='Output format (text, xml, json, sbom). Default: text')
    tree_parser.set_defaults(func=handle_tree)

    # Analyze command
    analyze_parser = subparsers.add_parser('analyze', help='Find used undeclared and unused declared dependencies')
    add_common_arguments(analyze_parser)
    analyze_parser.add_argument('--usage', metavar='FILE', required=True,
                                help='Usage evidence JSON mapping artifacts to the classes main and test code use')
    analyze_parser.add_argument('--build-dir', metavar='DIR',
                                help='Build output directory; analysis is skipped if it does not exist')
    analyze_parser.add_argument('--fail-on-warning', action='store_true',
                                help='Exit with status 1 if dependency problems are found')
    analyze_parser.add_argument('--ignore-non-compile', action='store_true',
                                help='Only report unused declared dependencies with compile scope')
    analyze_parser.add_argument('--ignore-unused-runtime', action='store_true',
                                help='Never report runtime scoped dependencies as unused')
    analyze_parser.add_argument('--ignore-all-non-test-scoped', action='store_true',
                                help='Ignore all non-test scoped test only dependencies')
    analyze_parser.add_argument('--output-xml', action='store_true',
                                help='Print <dependency> snippets for used undeclared dependencies')
    analyze_parser.add_argument('--scriptable-output', action='store_true',
                                help='Print used undeclared dependencies in a script friendly format')
    analyze_parser.add_argument('--scriptable-flag', default=DEFAULT_SCRIPTABLE_FLAG,
                                help=f'Line prefix for scriptable output. Default: {DEFAULT_SCRIPTABLE_FLAG}')
    analyze_parser.add_argument('--used-dependency', dest='used_dependencies', action='append', metavar='G:A',
                                help='Force a declared dependency to be treated as used (repeatable)')
    analyze_parser.add_argument('--ignored-dependency', dest='ignored_dependencies', action='append',
                                metavar='PATTERN', help='Ignore matching dependencies in every category')
    analyze_parser.add_argument('--ignored-used-undeclared', dest='ignored_used_undeclared_dependencies',
                                action='append', metavar='PATTERN')
    analyze_parser.add_argument('--ignored-unused-declared', dest='ignored_unused_declared_dependencies',
                                action='append', metavar='PATTERN')
    analyze_parser.add_argument('--ignored-non-test-scoped', dest='ignored_non_test_scoped_dependencies',
                                action='append', metavar='PATTERN')
    analyze_parser.add_argument('--ignored-packaging', dest='ignored_packagings', action='append',
                                metavar='PACKAGING', help='Packagings to skip. Default: pom, ear')
    analyze_parser.add_argument('--include-dependency', dest='include_dependencies', action='append',
                                metavar='PATTERN', help='Only include matching dependencies in the report')
    analyze_parser.add_argument('--skip', action='store_true', help='Skip the analysis')
    analyze_parser.set_defaults(func=handle_analyze)

    # Parse arguments
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    # Execute command
    try:
        return args.func(args)
    except DepcheckError as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
