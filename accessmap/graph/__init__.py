"""Access graph: store, layered evaluator, policy compiler and builder."""

from accessmap.graph.access_graph import AccessGraph
from accessmap.graph.builder import GraphBuilder, build_graph
from accessmap.graph.compiler import PolicyCompiler
from accessmap.graph.evaluator import AccessDecision, Decision

__all__ = [
    "AccessDecision",
    "AccessGraph",
    "Decision",
    "GraphBuilder",
    "PolicyCompiler",
    "build_graph",
]
