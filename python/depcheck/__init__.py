"""depcheck - verbose Maven dependency trees and declared-dependency usage analysis."""

__version__ = "1.0.0"
