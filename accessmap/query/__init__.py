"""Queries over a built access graph."""

from accessmap.query.engine import HighRiskFinding, QueryEngine

__all__ = ["HighRiskFinding", "QueryEngine"]
