"""path command: how a principal reaches a resource, directly or via roles."""

from __future__ import annotations

import logging

from rich.tree import Tree

from accessmap.cli_utils import console, load_graph, print_json
from accessmap.iam.conditions import EvaluationContext
from accessmap.models import AccessPath, PolicyType
from accessmap.query.engine import QueryEngine

logger = logging.getLogger(__name__)


def run_path(
    data: str,
    source: str,
    target: str,
    action: str,
    max_hops: int,
    max_paths: int,
    context: EvaluationContext,
    output_format: str,
) -> None:
    """
    Find access paths from a principal to a resource.

    Args:
        data: Snapshot file
        source: Source principal ARN
        target: Target resource ARN
        action: Action to perform on the target
        max_hops: Longest path to report
        max_paths: Stop after this many paths
        context: Evaluation context from global flags
        output_format: 'text' or 'json'

    Raises:
        PrincipalNotFoundError / ResourceNotFoundError: unknown source or target
    """
    logger.info("path: from=%s, to=%s, action=%s, max_hops=%d", source, target, action, max_hops)
    _, graph = load_graph(data)
    paths = QueryEngine(graph, context).find_paths(source, target, action, max_hops=max_hops, max_paths=max_paths)

    if output_format == 'json':
        print_json({'paths': [p.to_dict() for p in paths]})
        return

    if not paths:
        console.print(f"[yellow]No path found from {source} to {target} for {action}[/yellow]")
        return

    console.print(f"[green]Found {len(paths)} path(s):[/green]\n")
    for i, path in enumerate(paths, 1):
        _display_path_tree(i, path)


def _display_path_tree(index: int, path: AccessPath) -> None:
    console.print(f"[bold]Path {index}[/bold] ({path.hop_count} hop{'s' if path.hop_count != 1 else ''})")

    tree = Tree(f"[cyan]{path.source}[/cyan]")
    current = tree
    for hop in path.hops:
        label = "AssumeRole" if hop.policy_type == PolicyType.TRUST else hop.action
        current = current.add(f"[dim]↓ {label}[/dim]")
        current = current.add(f"[cyan]{hop.target}[/cyan]")

    console.print(tree)
    console.print()
