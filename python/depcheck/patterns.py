"""Strict artifact filter patterns.

Pattern syntax is ``[groupId]:[artifactId]:[type]:[version]``. Every segment is
optional and supports full and partial ``*`` wildcards; an empty segment is an
implicit wildcard. For example ``org.apache.*`` matches every artifact whose
group id starts with ``org.apache.`` and ``:::*-SNAPSHOT`` matches every
snapshot. A version segment starting with ``[`` or ``(`` is a Maven version
range such as ``[1.0,2.0)``.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .exceptions import InvalidPatternError
from .models import ArtifactCoordinate

logger = logging.getLogger(__name__)

RESTRICTION_PATTERN = re.compile(r'\s*([\[(])([^\[\]()]*)([\])])\s*(,|$)')


def compare_versions(v1: str, v2: str) -> int:
    """Simple version comparison. Returns >0 if v1 > v2, <0 if v1 < v2, 0 if equal."""
    if v1 == v2:
        return 0

    parts1 = re.split(r'[.\-]', v1)
    parts2 = re.split(r'[.\-]', v2)

    min_length = min(len(parts1), len(parts2))
    for i in range(min_length):
        part1 = parts1[i]
        part2 = parts2[i]

        try:
            num1 = int(part1)
            num2 = int(part2)
            if num1 != num2:
                return num1 - num2
        except ValueError:
            if part1 != part2:
                return 1 if part1 > part2 else -1

    return len(parts1) - len(parts2)


@dataclass(frozen=True)
class Restriction:
    """One bracketed part of a version range."""

    lower: Optional[str]
    lower_inclusive: bool
    upper: Optional[str]
    upper_inclusive: bool

    def contains(self, version: str) -> bool:
        if self.lower is not None:
            cmp = compare_versions(version, self.lower)
            if cmp < 0 or (cmp == 0 and not self.lower_inclusive):
                return False
        if self.upper is not None:
            cmp = compare_versions(version, self.upper)
            if cmp > 0 or (cmp == 0 and not self.upper_inclusive):
                return False
        return True


def parse_version_range(version_range: str) -> List[Restriction]:
    """
    Parse a Maven version range like ``[1.0,2.0)``, ``[1.5]`` or ``(,1.0],[1.2,)``.

    Raises:
        InvalidPatternError: if the range is malformed
    """
    restrictions = []
    position = 0
    version_range = version_range.strip()

    while position < len(version_range):
        match = RESTRICTION_PATTERN.match(version_range, position)
        if not match:
            raise InvalidPatternError(version_range, f"unexpected text at position {position}")

        opening, body, closing, separator = match.groups()
        lower_inclusive = opening == '['
        upper_inclusive = closing == ']'
        bounds = [bound.strip() for bound in body.split(',')]

        if len(bounds) == 1:
            # [1.0] pins a single version
            if not bounds[0] or not (lower_inclusive and upper_inclusive):
                raise InvalidPatternError(version_range, "single version restrictions must use [version]")
            restrictions.append(Restriction(bounds[0], True, bounds[0], True))
        elif len(bounds) == 2:
            lower = bounds[0] or None
            upper = bounds[1] or None
            if lower is not None and upper is not None and compare_versions(lower, upper) > 0:
                raise InvalidPatternError(version_range, f"lower bound {lower} is greater than upper bound {upper}")
            restrictions.append(Restriction(lower, lower_inclusive, upper, upper_inclusive))
        else:
            raise InvalidPatternError(version_range, "too many bounds in restriction")

        position = match.end()
        if not separator and position < len(version_range):
            raise InvalidPatternError(version_range, "restrictions must be separated by commas")

    if not restrictions:
        raise InvalidPatternError(version_range, "empty version range")
    return restrictions


def _matches_token(token: str, pattern: str) -> bool:
    # support full wildcard and implied wildcard
    if pattern == '*' or not pattern:
        return True
    # support contains wildcard
    if len(pattern) > 1 and pattern.startswith('*') and pattern.endswith('*'):
        return pattern[1:-1] in token
    # support leading wildcard
    if pattern.startswith('*'):
        return token.endswith(pattern[1:])
    # support trailing wildcard
    if pattern.endswith('*'):
        return token.startswith(pattern[:-1])
    # support version ranges
    if pattern.startswith('[') or pattern.startswith('('):
        return any(restriction.contains(token) for restriction in parse_version_range(pattern))
    return token == pattern


def pattern_matches(pattern: str, artifact: ArtifactCoordinate) -> bool:
    """True if a single strict pattern matches the artifact."""
    tokens = [artifact.group_id, artifact.artifact_id, artifact.type, artifact.base_version]
    pattern_tokens = pattern.split(':')

    # fail immediately if pattern tokens outnumber tokens to match
    if len(pattern_tokens) > len(tokens):
        return False

    return all(_matches_token(token, pattern_token) for token, pattern_token in zip(tokens, pattern_tokens))


class ArtifactPatternFilter:
    """A set of strict patterns; an artifact matches when any pattern does."""

    def __init__(self, patterns: Iterable[str] = ()):
        self.patterns = [pattern.strip() for pattern in patterns if pattern and pattern.strip()]

    def __bool__(self) -> bool:
        return bool(self.patterns)

    def matches(self, artifact: ArtifactCoordinate) -> bool:
        return any(pattern_matches(pattern, artifact) for pattern in self.patterns)


def filter_not_included(artifacts: Iterable[ArtifactCoordinate], includes: Iterable[str]) -> List[ArtifactCoordinate]:
    """
    Artifacts that do not match the include patterns.

    No filtering is applied if there are no include patterns.
    """
    include_filter = ArtifactPatternFilter(includes)
    if not include_filter:
        return []
    return [artifact for artifact in artifacts if not include_filter.matches(artifact)]


def filter_matching(artifacts: Iterable[ArtifactCoordinate], excludes: Iterable[str]) -> List[ArtifactCoordinate]:
    """Artifacts that match any of the exclude patterns."""
    exclude_filter = ArtifactPatternFilter(excludes)
    if not exclude_filter:
        return []
    return [artifact for artifact in artifacts if exclude_filter.matches(artifact)]
