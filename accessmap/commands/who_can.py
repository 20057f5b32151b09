"""who-can command: principals allowed to perform an action on a resource."""

from __future__ import annotations

import logging

from rich.table import Table

from accessmap.cli_utils import console, load_graph, print_json
from accessmap.iam.conditions import EvaluationContext
from accessmap.query.engine import QueryEngine

logger = logging.getLogger(__name__)


def run_who_can(data: str, resource: str, action: str, context: EvaluationContext, output_format: str) -> None:
    """
    Args:
        data: Snapshot file
        resource: Resource ARN (or pattern such as "*")
        action: Action to check
        context: Evaluation context from global flags
        output_format: 'text' or 'json'
    """
    logger.info("who-can: resource=%s, action=%s", resource, action)
    _, graph = load_graph(data)
    principals = QueryEngine(graph, context).who_can(resource, action)

    if output_format == 'json':
        print_json({
            'resource': resource,
            'action': action,
            'principals': [
                {'arn': p.arn, 'type': p.type.value, 'name': p.name} for p in principals
            ],
        })
        return

    if not principals:
        console.print(f"[yellow]No principals can perform {action} on {resource}[/yellow]")
        return

    table = Table(title=f"Who can {action} on {resource}")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("ARN", overflow="fold")
    for p in principals:
        table.add_row(p.name or "-", p.type.value, p.arn)

    console.print(table)
    console.print(f"[green]{len(principals)} principal(s) found[/green]")
