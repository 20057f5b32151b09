"""can-access command: a single authorization decision with its deciding stage."""

from __future__ import annotations

import logging

from accessmap.cli_utils import console, load_graph, print_json
from accessmap.iam.conditions import EvaluationContext

logger = logging.getLogger(__name__)


def run_can_access(
    data: str,
    principal: str,
    action: str,
    resource: str,
    context: EvaluationContext,
    output_format: str,
) -> bool:
    """
    Returns:
        True when access is allowed

    Raises:
        PrincipalNotFoundError / ResourceNotFoundError: unknown principal or resource
    """
    _, graph = load_graph(data)
    graph.require_principal(principal)
    graph.require_resource(resource)

    decision = graph.explain_access(principal, action, resource, context)
    logger.info("can-access %s %s %s -> %s (%s)", principal, action, resource, decision.allowed, decision.stage)

    if output_format == 'json':
        print_json({
            'principal': principal,
            'action': action,
            'resource': resource,
            'allowed': decision.allowed,
            'stage': decision.stage,
        })
    elif decision.allowed:
        console.print(f"[green]✓ ALLOWED[/green] [dim](decided by {decision.stage})[/dim]")
    else:
        console.print(f"[red]✗ DENIED[/red] [dim](decided by {decision.stage})[/dim]")

    return decision.allowed
