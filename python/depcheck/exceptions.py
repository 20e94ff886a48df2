"""Errors raised while building and analyzing dependency graphs."""


class DepcheckError(Exception):
    """Base class for all depcheck errors."""


class ProjectParseError(DepcheckError):
    """A project build file could not be read."""


class ResolutionError(DepcheckError):
    """The resolver could not produce a raw dependency graph."""


class MalformedGraphError(DepcheckError):
    """A graph node is missing the artifact data needed to process it."""


class AnalysisError(DepcheckError):
    """Dependency usage could not be analyzed."""


class InvalidPatternError(DepcheckError):
    """An artifact filter pattern could not be interpreted."""

    def __init__(self, pattern: str, reason: str):
        super().__init__(f"Invalid pattern '{pattern}': {reason}")
        self.pattern = pattern
        self.reason = reason
