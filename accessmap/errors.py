"""
Exception hierarchy for accessmap.

Construction problems and lookup problems are separate classes so callers
can tell "rebuild the graph" apart from "fix the identifier you typed".
Condition-evaluation errors never reach callers of the evaluator; they are
raised by condition evaluators and converted into decisions internally.
"""

from typing import Optional


class AccessMapError(Exception):
    """Base class for all accessmap errors."""


class GraphConstructionError(AccessMapError):
    """Raised when a snapshot cannot be compiled into a graph."""

    def __init__(self, message: str, identifier: Optional[str] = None):
        super().__init__(message)
        self.identifier = identifier


class AccessLookupError(AccessMapError, LookupError):
    """Raised when a query names an identifier absent from the graph."""

    kind = "identifier"

    def __init__(self, identifier: str):
        super().__init__(f"{self.kind} not found: {identifier}")
        self.identifier = identifier


class PrincipalNotFoundError(AccessLookupError):
    kind = "principal"


class ResourceNotFoundError(AccessLookupError):
    kind = "resource"


class ConditionEvaluationError(AccessMapError):
    """Raised by a condition evaluator that cannot decide a condition block."""


class SnapshotError(AccessMapError):
    """Raised when a snapshot file cannot be read or decoded."""
