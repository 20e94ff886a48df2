"""Options of the dependency usage analysis."""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

DEFAULT_SCRIPTABLE_FLAG = "$$$%%%"
DEFAULT_IGNORED_PACKAGINGS = ["pom", "ear"]


def _split_value(value: str) -> List[str]:
    # Commas inside a version range such as [1.0,2.0) or (,1.0],[1.2,) do not separate patterns
    parts = []
    depth = 0
    start = 0
    for i, char in enumerate(value):
        if char in '[(':
            depth += 1
        elif char in '])':
            depth = max(depth - 1, 0)
        elif char == ',' and depth == 0 and not value[i + 1:].lstrip().startswith(('[', '(')):
            parts.append(value[start:i])
            start = i + 1
    parts.append(value[start:])
    return parts


def split_patterns(values: Optional[Iterable[str]]) -> List[str]:
    """Flatten repeated and comma-separated option values, dropping blanks."""
    patterns = []
    for value in values or []:
        for part in _split_value(value):
            part = part.strip()
            if part:
                patterns.append(part)
    return patterns


@dataclass
class AnalyzeConfig:
    """
    Analysis options.

    Pattern lists use the groupId:artifactId:type:version syntax described in
    depcheck.patterns.
    """

    # Fail the run when dependency problems are found
    fail_on_warning: bool = False
    # Print the not-included and ignored sections
    verbose: bool = False
    # Only report unused declared dependencies with compile scope
    ignore_non_compile: bool = False
    # Never report runtime scoped dependencies as unused
    ignore_unused_runtime: bool = False
    ignore_all_non_test_scoped: bool = False
    output_xml: bool = False
    scriptable_output: bool = False
    scriptable_flag: str = DEFAULT_SCRIPTABLE_FLAG
    # groupId:artifactId of dependencies to force as used
    used_dependencies: List[str] = field(default_factory=list)
    ignored_dependencies: List[str] = field(default_factory=list)
    ignored_used_undeclared_dependencies: List[str] = field(default_factory=list)
    ignored_unused_declared_dependencies: List[str] = field(default_factory=list)
    ignored_non_test_scoped_dependencies: List[str] = field(default_factory=list)
    ignored_packagings: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORED_PACKAGINGS))
    include_dependencies: List[str] = field(default_factory=list)
    skip: bool = False

    @classmethod
    def from_args(cls, args) -> 'AnalyzeConfig':
        """Build the config from an argparse namespace; missing attributes keep their defaults."""
        defaults = cls()
        ignored_packagings = getattr(args, 'ignored_packagings', None)

        return cls(
            fail_on_warning=getattr(args, 'fail_on_warning', False),
            verbose=getattr(args, 'verbose', False),
            ignore_non_compile=getattr(args, 'ignore_non_compile', False),
            ignore_unused_runtime=getattr(args, 'ignore_unused_runtime', False),
            ignore_all_non_test_scoped=getattr(args, 'ignore_all_non_test_scoped', False),
            output_xml=getattr(args, 'output_xml', False),
            scriptable_output=getattr(args, 'scriptable_output', False),
            scriptable_flag=getattr(args, 'scriptable_flag', None) or defaults.scriptable_flag,
            used_dependencies=split_patterns(getattr(args, 'used_dependencies', None)),
            ignored_dependencies=split_patterns(getattr(args, 'ignored_dependencies', None)),
            ignored_used_undeclared_dependencies=split_patterns(
                getattr(args, 'ignored_used_undeclared_dependencies', None)),
            ignored_unused_declared_dependencies=split_patterns(
                getattr(args, 'ignored_unused_declared_dependencies', None)),
            ignored_non_test_scoped_dependencies=split_patterns(
                getattr(args, 'ignored_non_test_scoped_dependencies', None)),
            ignored_packagings=(split_patterns(ignored_packagings) if ignored_packagings is not None
                                else defaults.ignored_packagings),
            include_dependencies=split_patterns(getattr(args, 'include_dependencies', None)),
            skip=getattr(args, 'skip', False),
        )
